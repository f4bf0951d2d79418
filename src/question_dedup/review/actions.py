"""Admin actions that can be applied to a cluster."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from question_dedup.errors import InvalidAction


class ApproveDuplicates(BaseModel):
    type: Literal["approve_duplicates"] = "approve_duplicates"
    keep_question_id: str | None = None


class ApproveVariants(BaseModel):
    type: Literal["approve_variants"] = "approve_variants"


class ExcludeQuestion(BaseModel):
    type: Literal["exclude_question"] = "exclude_question"
    question_id: str


class SplitAction(BaseModel):
    type: Literal["split"] = "split"
    strategy: Literal["auto", "threshold"] = "auto"
    threshold: float | None = Field(None, ge=0.0, le=1.0)
    min_cluster_size: int | None = None
    override: bool = False


class Reset(BaseModel):
    type: Literal["reset"] = "reset"


class FlagReview(BaseModel):
    type: Literal["flag_review"] = "flag_review"
    reason: str | None = None


class ClearReview(BaseModel):
    type: Literal["clear_review"] = "clear_review"


class ApproveAdditions(BaseModel):
    type: Literal["approve_additions"] = "approve_additions"
    ids: list[str] = Field(min_length=1)


class RejectAdditions(BaseModel):
    type: Literal["reject_additions"] = "reject_additions"
    ids: list[str] = Field(min_length=1)


ClusterAction = Annotated[
    Union[
        ApproveDuplicates,
        ApproveVariants,
        ExcludeQuestion,
        SplitAction,
        Reset,
        FlagReview,
        ClearReview,
        ApproveAdditions,
        RejectAdditions,
    ],
    Field(discriminator="type"),
]

_action_adapter: TypeAdapter[ClusterAction] = TypeAdapter(ClusterAction)


def parse_action(data: dict) -> ClusterAction:
    """Validate a raw action payload (e.g. decoded JSON).

    Raises:
        InvalidAction: If the payload has an unknown ``type`` or bad fields.
    """
    try:
        return _action_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidAction(f"Invalid cluster action: {e.errors(include_url=False)}") from e

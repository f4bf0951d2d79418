from question_dedup.models.audit_log import AuditLog
from question_dedup.models.base import Base
from question_dedup.models.pair_flag import DedupePairFlag
from question_dedup.models.question_cluster import QuestionCluster

__all__ = [
    "AuditLog",
    "Base",
    "DedupePairFlag",
    "QuestionCluster",
]

"""CLI entry point: python -m question_dedup.cli {cluster,split-preview,action}"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import structlog

from question_dedup.clustering.pair_index import build_pair_score_index
from question_dedup.clustering.types import SimilarityPair
from question_dedup.config.dedup import DedupConfig, load_dedup_config
from question_dedup.config.settings import get_settings
from question_dedup.db.engine import dispose_engine
from question_dedup.db.session import create_tables, get_session_factory
from question_dedup.errors import ClusterError
from question_dedup.logging_config import configure_logging
from question_dedup.regeneration.sources import (
    JsonEmbeddingStore,
    JsonNeighborSource,
    gather_similarity_pairs,
)
from question_dedup.review.actions import parse_action
from question_dedup.review.operations import apply_action_to_stored_cluster
from question_dedup.worker.orchestrator import preview_split, regenerate_scope


def load_pairs(path: Path) -> list[SimilarityPair]:
    """Read pairs from a JSON list of ``{"a_id", "b_id", "score"}`` objects."""
    data = json.loads(path.read_text(encoding="utf-8"))
    return [SimilarityPair(str(p["a_id"]), str(p["b_id"]), float(p["score"])) for p in data]


async def _run_and_close(coro):
    try:
        return await coro
    finally:
        await dispose_engine()


async def gather_pairs_from_neighbors(path: Path, config: DedupConfig) -> list[SimilarityPair]:
    """Collapse a saved neighbour file into pairs using the ``neighbors`` config."""
    source = JsonNeighborSource(path)
    return await gather_similarity_pairs(
        source,
        source.question_ids,
        top_k=config.neighbors.top_k,
        max_concurrent=config.neighbors.max_concurrent_requests,
    )


async def run_cluster(
    scope: str,
    pairs_path: Path | None,
    config: DedupConfig,
    neighbors_path: Path | None = None,
) -> dict:
    if neighbors_path is not None:
        pairs = await gather_pairs_from_neighbors(neighbors_path, config)
    else:
        pairs = load_pairs(pairs_path) if pairs_path else []
    await create_tables()
    return await regenerate_scope(scope, pairs, get_session_factory(), config)


async def run_split_preview(
    scope: str,
    cluster_id: str,
    pairs_path: Path | None,
    config: DedupConfig,
    embeddings_path: Path | None = None,
) -> dict:
    pairs = load_pairs(pairs_path) if pairs_path else []
    store = JsonEmbeddingStore(embeddings_path) if embeddings_path else None
    result = await preview_split(
        scope, cluster_id, get_session_factory(), pairs, embedding_store=store, config=config
    )
    return {
        "cluster_id": cluster_id,
        "split_found": result.split_found,
        "threshold": result.threshold,
        "score": result.score,
        "subclusters": [c.member_ids for c in result.subclusters],
    }


async def run_action(
    scope: str,
    cluster_id: str,
    action_json: str,
    operator: str,
    pairs_path: Path | None,
    config: DedupConfig,
    embeddings_path: Path | None = None,
) -> dict:
    action = parse_action(json.loads(action_json))
    pair_index = build_pair_score_index(load_pairs(pairs_path)) if pairs_path else None
    async with get_session_factory()() as session:
        result = await apply_action_to_stored_cluster(
            session,
            scope,
            cluster_id,
            action,
            operator=operator,
            pair_index=pair_index,
            embedding_store=JsonEmbeddingStore(embeddings_path) if embeddings_path else None,
            split_config=config.split,
        )
    return {
        "action": result.action,
        "deleted": result.deleted,
        "cluster": result.cluster.model_dump(mode="json") if result.cluster else None,
        "previous_id": result.previous_id,
        "created": [c.id for c in result.created],
        "threshold": result.threshold,
    }


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="question_dedup.cli",
        description="Question deduplication CLI",
    )
    subparsers = parser.add_subparsers(dest="command")

    cluster_parser = subparsers.add_parser(
        "cluster", help="Cluster a scope from a pairs or neighbours file"
    )
    cluster_parser.add_argument("--scope", required=True, help="Scope ID (e.g. exam ID)")
    source_group = cluster_parser.add_mutually_exclusive_group(required=True)
    source_group.add_argument("--pairs", help="JSON file of similarity pairs")
    source_group.add_argument("--neighbors", help="JSON file of per-question neighbour lists")

    preview_parser = subparsers.add_parser(
        "split-preview", help="Show the auto-split result for a stored cluster"
    )
    preview_parser.add_argument("--scope", required=True)
    preview_parser.add_argument("--cluster-id", required=True)
    preview_parser.add_argument("--pairs", default=None, help="JSON file of similarity pairs")
    preview_parser.add_argument("--embeddings", default=None, help="JSON file of embeddings")

    action_parser = subparsers.add_parser("action", help="Apply an admin action to a cluster")
    action_parser.add_argument("--scope", required=True)
    action_parser.add_argument("--cluster-id", required=True)
    action_parser.add_argument(
        "--action", required=True, help='Action JSON, e.g. \'{"type": "approve_variants"}\''
    )
    action_parser.add_argument("--operator", default="cli")
    action_parser.add_argument("--pairs", default=None, help="JSON file of similarity pairs")
    action_parser.add_argument("--embeddings", default=None, help="JSON file of embeddings")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    settings = get_settings()
    configure_logging(json_output=settings.log_json, log_level=settings.log_level)
    config = load_dedup_config(settings.dedup_config_path)
    log = structlog.get_logger()

    try:
        if args.command == "cluster":
            pairs_path = Path(args.pairs) if args.pairs else None
            neighbors_path = Path(args.neighbors) if args.neighbors else None
            output = asyncio.run(
                _run_and_close(run_cluster(args.scope, pairs_path, config, neighbors_path))
            )
        elif args.command == "split-preview":
            pairs_path = Path(args.pairs) if args.pairs else None
            embeddings_path = Path(args.embeddings) if args.embeddings else None
            output = asyncio.run(
                _run_and_close(
                    run_split_preview(
                        args.scope, args.cluster_id, pairs_path, config, embeddings_path
                    )
                )
            )
        else:
            pairs_path = Path(args.pairs) if args.pairs else None
            embeddings_path = Path(args.embeddings) if args.embeddings else None
            output = asyncio.run(
                _run_and_close(
                    run_action(
                        args.scope,
                        args.cluster_id,
                        args.action,
                        args.operator,
                        pairs_path,
                        config,
                        embeddings_path,
                    )
                )
            )
    except ClusterError as e:
        log.error("command_rejected", command=args.command, code=e.code, error=str(e))
        sys.exit(2)

    print(json.dumps(output, indent=2))


if __name__ == "__main__":
    main()

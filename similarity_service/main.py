"""Process entry point for the similarity engine.

The hosting process owns the registry: ``create_boundary`` builds the
resolver, registry, allocator, and metrics explicitly and wires them into a
``SimilarityBoundary``. Nothing here is a module-level singleton.

The command line mirrors the boundary operations for local use::

    python -m similarity_service.main similarity "the cat sat" "a cat is sitting"
    python -m similarity_service.main rank fruit banana car apple
"""

import argparse
import json
import sys
from typing import List, Optional

import structlog

from similarity_libs.common.config import SimilarityConfig
from similarity_libs.common.logging import configure_logging
from .api.boundary import SimilarityBoundary
from .api.ownership import BufferAllocator
from .loaders.model_resolver import ModelResolver
from .runtime.metrics import MetricsCollector
from .runtime.model_registry import ModelRegistry

logger = structlog.get_logger("similarity_service")


def create_boundary(
    config: Optional[SimilarityConfig] = None,
    resolver: Optional[ModelResolver] = None,
    metrics: Optional[MetricsCollector] = None,
) -> SimilarityBoundary:
    """Wire up a boundary with its own registry; no model is loaded yet."""
    config = config or SimilarityConfig()
    metrics = metrics or MetricsCollector("similarity-service")
    resolver = resolver or ModelResolver(
        legacy_families=config.ml_similarity_legacy_families,
        revision=config.ml_similarity_revision,
        cache_dir=config.ml_similarity_cache_dir,
    )
    registry = ModelRegistry(
        resolver,
        default_model_id=config.ml_similarity_model_id,
        default_max_length=config.ml_similarity_max_length,
        metrics=metrics,
    )
    return SimilarityBoundary(
        registry,
        allocator=BufferAllocator(metrics),
        metrics=metrics,
        threshold=config.ml_similarity_threshold,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Text embedding and semantic similarity")
    parser.add_argument("--model-id", default="", help="Hub repository or local directory (default: configured model)")
    parser.add_argument("--gpu", action="store_true", help="Use CUDA when available")
    parser.add_argument("--max-length", type=int, default=0, help="Truncation length; non-positive uses the default")

    subparsers = parser.add_subparsers(dest="command", required=True)

    tokenize = subparsers.add_parser("tokenize", help="Show token ids and tokens")
    tokenize.add_argument("text")

    embed = subparsers.add_parser("embed", help="Print the normalized embedding")
    embed.add_argument("text")

    similarity = subparsers.add_parser("similarity", help="Cosine similarity of two texts")
    similarity.add_argument("text1")
    similarity.add_argument("text2")

    rank = subparsers.add_parser("rank", help="Most similar candidate to a query")
    rank.add_argument("query")
    rank.add_argument("candidates", nargs="+")

    match = subparsers.add_parser("match", help="Most similar candidate above a threshold")
    match.add_argument("query")
    match.add_argument("candidates", nargs="+")
    match.add_argument("--threshold", type=float, default=None)

    subparsers.add_parser("describe", help="Describe the loaded model")
    return parser


def run_command(boundary: SimilarityBoundary, args: argparse.Namespace) -> int:
    """Execute one CLI command against an initialized boundary."""
    if args.command == "tokenize":
        result = boundary.tokenize(args.text.encode("utf-8"), args.max_length)
        if result.error:
            return 1
        try:
            output = {
                "token_ids": result.token_ids[:result.length],
                "tokens": [token.decode("utf-8") for token in result.tokens[:result.length]],
            }
        finally:
            boundary.release_tokenization(result)
    elif args.command == "embed":
        result = boundary.embed(args.text.encode("utf-8"), args.max_length)
        if result.error:
            return 1
        try:
            output = {"embedding": result.data[:result.length]}
        finally:
            boundary.release_embedding(result.data, result.length)
    elif args.command == "similarity":
        score = boundary.similarity(args.text1.encode("utf-8"), args.text2.encode("utf-8"), args.max_length)
        if score == -1.0:
            return 1
        output = {"score": score}
    elif args.command in ("rank", "match"):
        candidates = [candidate.encode("utf-8") for candidate in args.candidates]
        if args.command == "rank":
            result = boundary.rank(args.query.encode("utf-8"), candidates, args.max_length)
        else:
            result = boundary.match(args.query.encode("utf-8"), candidates, args.threshold, args.max_length)
        if result.index < 0 and result.score == -1.0:
            return 1
        output = {"index": result.index, "score": result.score}
    else:
        description = boundary.describe_model()
        if not description:
            return 1
        try:
            output = json.loads(description.value)
        finally:
            boundary.release_text(description)

    print(json.dumps(output))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI function."""
    args = build_parser().parse_args(argv)

    config = SimilarityConfig()
    configure_logging(
        "similarity-service",
        config.ml_log_level,
        config.ml_log_format,
        environment=config.ml_env,
    )

    boundary = create_boundary(config)
    use_cpu = config.ml_similarity_use_cpu and not args.gpu
    if not boundary.initialize(args.model_id.encode("utf-8"), use_cpu):
        logger.error("Model initialization failed", model_id=args.model_id or config.ml_similarity_model_id)
        return 1

    return run_command(boundary, args)


if __name__ == "__main__":
    sys.exit(main())

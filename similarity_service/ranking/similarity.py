"""Cosine similarity and top-1 candidate search.

Embeddings coming out of the pipeline are unit-normalized, so the dot
product is the cosine similarity.
"""

from dataclasses import dataclass
from typing import Optional, Sequence
import torch
import structlog

from ..encoders.embedding_pipeline import EmbeddingPipeline
from ..errors import EmptyCandidateSetError, EncodingError

logger = structlog.get_logger("similarity_service.similarity")

NO_MATCH_INDEX = -1


@dataclass(frozen=True)
class RankResult:
    """Best candidate position and its similarity score."""
    index: int
    score: float

    @property
    def matched(self) -> bool:
        return self.index != NO_MATCH_INDEX


def cosine(a: torch.Tensor, b: torch.Tensor) -> float:
    """Dot product of two unit-normalized embeddings."""
    return float(torch.dot(a, b))


class SimilarityEngine:
    """Scores texts against each other using an ``EmbeddingPipeline``."""

    def __init__(self, pipeline: EmbeddingPipeline):
        self.pipeline = pipeline

    def similarity(self, text1: str, text2: str, max_length: Optional[int] = None) -> float:
        """Cosine similarity between two independently embedded texts."""
        embedding1 = self.pipeline.embed(text1, max_length)
        embedding2 = self.pipeline.embed(text2, max_length)
        return cosine(embedding1, embedding2)

    def rank(
        self,
        query: str,
        candidates: Sequence[str],
        max_length: Optional[int] = None,
    ) -> RankResult:
        """Find the candidate most similar to ``query``.

        Candidates are scored in order; a later candidate only wins with a
        strictly greater score, so ties go to the earliest index.

        Raises ``EmptyCandidateSetError`` for an empty candidate sequence.
        """
        if len(candidates) == 0:
            raise EmptyCandidateSetError()

        query_embedding = self.pipeline.embed(query, max_length)

        best_index = NO_MATCH_INDEX
        best_score = float("-inf")
        for index, candidate in enumerate(candidates):
            score = cosine(query_embedding, self.pipeline.embed(candidate, max_length))
            if score > best_score:
                best_index = index
                best_score = score

        if best_index == NO_MATCH_INDEX:
            # Only reachable when every score is NaN.
            raise EncodingError("No candidate produced a comparable score")

        logger.debug(
            "Ranked candidates",
            candidate_count=len(candidates),
            best_index=best_index,
            best_score=best_score
        )
        return RankResult(index=best_index, score=best_score)

    def match(
        self,
        query: str,
        candidates: Sequence[str],
        threshold: float,
        max_length: Optional[int] = None,
    ) -> RankResult:
        """Rank, then reject the winner if it scores below ``threshold``.

        A rejected match keeps the best score but reports index ``-1`` so
        callers can route to their default.
        """
        result = self.rank(query, candidates, max_length)
        if result.score < threshold:
            logger.info(
                "Best candidate below threshold",
                best_index=result.index,
                best_score=result.score,
                threshold=threshold
            )
            return RankResult(index=NO_MATCH_INDEX, score=result.score)
        return result

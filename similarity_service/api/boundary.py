"""Sentinel-returning entry points for callers across the call boundary.

``SimilarityBoundary`` is the only place where engine exceptions become
sentinel values:

- ``initialize`` -> ``False``
- ``similarity`` -> ``-1.0``
- ``rank``/``match`` -> ``SimilarityResult(index=-1, score=-1.0)``
- ``embed``/``tokenize`` -> record with ``error=True`` and NULL buffers
- ``describe_model`` -> NULL string

Each failure is logged and counted. Buffers inside returned records belong to
the caller and must be handed back through the paired ``release_*`` call
(see ``similarity_service.api.ownership`` for the contract).
"""

import ctypes
import json
import time
from typing import Any, Callable, List, Optional, TypeVar
import structlog

from similarity_libs.common.config import DEFAULT_THRESHOLD
from .ownership import AllocationShape, BufferAllocator
from .records import (
    EmbeddingResult,
    SimilarityResult,
    TokenizationResult,
    SENTINEL_SCORE,
    failed_embedding,
    failed_similarity,
    failed_tokenization,
)
from ..errors import EncodingError, SimilarityError
from ..runtime.metrics import MetricsCollector
from ..runtime.model_registry import ModelRegistry

logger = structlog.get_logger("similarity_service.boundary")

T = TypeVar("T")


def decode_text(value: Any) -> str:
    """Convert a caller-supplied text (UTF-8 bytes, ``c_char_p`` or str) to str."""
    if isinstance(value, ctypes.c_char_p):
        value = value.value
    if value is None:
        raise EncodingError("Text pointer is NULL")
    if isinstance(value, str):
        return value
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise EncodingError(f"Unsupported text type: {type(value).__name__}")
    try:
        return bytes(value).decode("utf-8")
    except UnicodeDecodeError as e:
        raise EncodingError(f"Text is not valid UTF-8: {e}") from e


def decode_candidates(candidates: Any, num_candidates: Optional[int] = None) -> List[str]:
    """Read a candidate array; ``num_candidates`` bounds raw pointer arrays."""
    if candidates is None:
        if num_candidates:
            raise EncodingError("Candidate array pointer is NULL")
        return []
    if num_candidates is None:
        return [decode_text(candidate) for candidate in candidates]
    if num_candidates < 0:
        raise EncodingError(f"Negative candidate count: {num_candidates}")
    return [decode_text(candidates[index]) for index in range(num_candidates)]


class SimilarityBoundary:
    """Entry points exposed to the caller.

    Parameters
    - registry: ``ModelRegistry`` owning the active model
    - allocator: ``BufferAllocator`` tracking buffers handed to the caller
    - metrics: Optional ``MetricsCollector``
    - threshold: Default threshold for ``match``
    """

    def __init__(
        self,
        registry: ModelRegistry,
        allocator: Optional[BufferAllocator] = None,
        metrics: Optional[MetricsCollector] = None,
        threshold: float = DEFAULT_THRESHOLD,
    ):
        self.registry = registry
        self.metrics = metrics
        self.allocator = allocator or BufferAllocator(metrics)
        self.threshold = threshold

    def _call(self, operation: str, sentinel: Callable[[], T], func: Callable[[], T]) -> T:
        start_time = time.time()
        status = "success"
        try:
            return func()
        except SimilarityError as e:
            status = "error"
            logger.error(
                f"Error in {operation}",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e)
            )
            self._record_error(operation, type(e).__name__)
            return sentinel()
        except Exception as e:
            status = "error"
            logger.exception(f"Unexpected error in {operation}", operation=operation, error=str(e))
            self._record_error(operation, "UnexpectedError")
            return sentinel()
        finally:
            if self.metrics is not None:
                self.metrics.record_operation(operation, status, time.time() - start_time)

    def _record_error(self, operation: str, error_type: str) -> None:
        if self.metrics is not None:
            self.metrics.record_error(operation, error_type)

    def initialize(self, model_id: Any, use_cpu: bool) -> bool:
        """Load and install a model; an empty id selects the default model."""
        def run() -> bool:
            return self.registry.initialize(decode_text(model_id), bool(use_cpu))

        return self._call("initialize", lambda: False, run)

    def tokenize(self, text: Any, max_length: int = 0) -> TokenizationResult:
        """Tokenize ``text``; release the result with ``release_tokenization``."""
        def run() -> TokenizationResult:
            decoded = decode_text(text)
            with self.registry.acquire() as handle:
                output = handle.tokenizer.tokenize(decoded, max_length)
                token_ids, length = self.allocator.alloc_int32(output.token_ids)
                tokens, _ = self.allocator.alloc_text_array(output.tokens)
            return TokenizationResult(token_ids=token_ids, tokens=tokens, length=length, error=False)

        return self._call("tokenize", failed_tokenization, run)

    def release_tokenization(self, result: Optional[TokenizationResult]) -> None:
        """Release both buffers of a ``TokenizationResult`` exactly once."""
        if result is None:
            return
        self.allocator.release(result.token_ids, AllocationShape.INT32, result.length)
        self.allocator.release(result.tokens, AllocationShape.TEXT_ARRAY, result.length)

    def embed(self, text: Any, max_length: int = 0) -> EmbeddingResult:
        """Embed ``text``; release ``data``/``length`` with ``release_embedding``."""
        def run() -> EmbeddingResult:
            decoded = decode_text(text)
            with self.registry.acquire() as handle:
                embedding = handle.pipeline.embed(decoded, max_length)
                data, length = self.allocator.alloc_float32(embedding.numpy())
            return EmbeddingResult(data=data, length=length, error=False)

        return self._call("embed", failed_embedding, run)

    def release_embedding(self, data: Any, length: int) -> None:
        """Release an embedding buffer returned by ``embed``."""
        self.allocator.release(data, AllocationShape.FLOAT32, length)

    def similarity(self, text1: Any, text2: Any, max_length: int = 0) -> float:
        """Cosine similarity of two texts, ``-1.0`` on any failure."""
        def run() -> float:
            first, second = decode_text(text1), decode_text(text2)
            with self.registry.acquire() as handle:
                return handle.engine.similarity(first, second, max_length)

        return self._call("similarity", lambda: SENTINEL_SCORE, run)

    def rank(
        self,
        query: Any,
        candidates: Any,
        max_length: int = 0,
        num_candidates: Optional[int] = None,
    ) -> SimilarityResult:
        """Index and score of the candidate most similar to ``query``."""
        def run() -> SimilarityResult:
            decoded_query = decode_text(query)
            decoded_candidates = decode_candidates(candidates, num_candidates)
            with self.registry.acquire() as handle:
                result = handle.engine.rank(decoded_query, decoded_candidates, max_length)
            return SimilarityResult(index=result.index, score=result.score)

        return self._call("rank", failed_similarity, run)

    def match(
        self,
        query: Any,
        candidates: Any,
        threshold: Optional[float] = None,
        max_length: int = 0,
        num_candidates: Optional[int] = None,
    ) -> SimilarityResult:
        """Like ``rank``, but index ``-1`` when the best score is below ``threshold``."""
        limit = self.threshold if threshold is None else threshold

        def run() -> SimilarityResult:
            decoded_query = decode_text(query)
            decoded_candidates = decode_candidates(candidates, num_candidates)
            with self.registry.acquire() as handle:
                result = handle.engine.match(decoded_query, decoded_candidates, limit, max_length)
            return SimilarityResult(index=result.index, score=result.score)

        return self._call("match", failed_similarity, run)

    def describe_model(self) -> ctypes.c_char_p:
        """JSON description of the installed model; release with ``release_text``."""
        def run() -> ctypes.c_char_p:
            with self.registry.acquire() as handle:
                description = json.dumps(handle.describe(), sort_keys=True)
            return self.allocator.alloc_text(description)

        return self._call("describe_model", ctypes.c_char_p, run)

    def release_text(self, pointer: Any) -> None:
        """Release a single string returned by the boundary."""
        self.allocator.release(pointer, AllocationShape.TEXT)

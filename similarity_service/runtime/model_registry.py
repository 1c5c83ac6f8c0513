"""Model registry holding at most one loaded similarity model.

The registry is a two-state machine, ``Uninitialized`` or ``Ready(handle)``,
guarded by a single lock. A new model is fully built outside the lock and
installed with one assignment under it, so no caller can observe a partly
constructed handle. Every operation holds the lock for its whole duration,
which serializes embedding work process-wide.
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Union
import torch
import structlog

from similarity_libs.common.config import DEFAULT_MAX_LENGTH, DEFAULT_MODEL_ID
from ..batching.device import select_device
from ..encoders.embedding_pipeline import EmbeddingPipeline
from ..encoders.tokenizer_adapter import TokenizerAdapter
from ..errors import InitializationError, NotInitializedError
from ..loaders.model_resolver import LoadedModel, ModelResolver, WeightFormat
from ..ranking.similarity import SimilarityEngine
from .metrics import MetricsCollector

logger = structlog.get_logger("similarity_service.model_registry")


@dataclass(frozen=True)
class ModelHandle:
    """An installed model; immutable once built."""
    model_id: str
    weight_format: WeightFormat
    device: torch.device
    hidden_size: int
    max_position_embeddings: int
    tokenizer: TokenizerAdapter
    pipeline: EmbeddingPipeline
    engine: SimilarityEngine
    loaded_at: float

    @classmethod
    def from_loaded(cls, loaded: LoadedModel, default_max_length: int) -> "ModelHandle":
        tokenizer = TokenizerAdapter(
            loaded.tokenizer,
            default_max_length,
            max_positions=loaded.config.max_position_embeddings,
        )
        pipeline = EmbeddingPipeline(tokenizer, loaded.encoder, loaded.device)
        return cls(
            model_id=loaded.model_id,
            weight_format=loaded.weight_format,
            device=loaded.device,
            hidden_size=loaded.config.hidden_size,
            max_position_embeddings=loaded.config.max_position_embeddings,
            tokenizer=tokenizer,
            pipeline=pipeline,
            engine=SimilarityEngine(pipeline),
            loaded_at=time.time(),
        )

    def describe(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "weight_format": self.weight_format.value,
            "device": str(self.device),
            "hidden_size": self.hidden_size,
            "max_position_embeddings": self.max_position_embeddings,
            "loaded_at": self.loaded_at,
        }


@dataclass(frozen=True)
class Uninitialized:
    """No model has been installed yet."""


@dataclass(frozen=True)
class Ready:
    """A model is installed and usable."""
    handle: ModelHandle


RegistryState = Union[Uninitialized, Ready]


class ModelRegistry:
    """Owns the single active ``ModelHandle``.

    Parameters
    - resolver: ``ModelResolver`` used to build new handles
    - default_model_id: Model used when ``initialize`` gets an empty id
    - default_max_length: Truncation length for non-positive max lengths
    - metrics: Optional ``MetricsCollector`` for load outcomes

    Handles are replaced on re-initialization and never torn down
    explicitly; the last one lives until the process exits.
    """

    def __init__(
        self,
        resolver: ModelResolver,
        default_model_id: str = DEFAULT_MODEL_ID,
        default_max_length: int = DEFAULT_MAX_LENGTH,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.resolver = resolver
        self.default_model_id = default_model_id
        self.default_max_length = default_max_length
        self.metrics = metrics
        self._lock = threading.Lock()
        self._state: RegistryState = Uninitialized()

    @property
    def state(self) -> RegistryState:
        with self._lock:
            return self._state

    @property
    def is_initialized(self) -> bool:
        return isinstance(self.state, Ready)

    def initialize(self, model_id: str, use_cpu: bool) -> bool:
        """Load a model and install it, replacing any previous one.

        Returns ``False`` and keeps the previous state if loading fails.
        """
        model_id = model_id or self.default_model_id
        try:
            device = select_device(use_cpu)
            loaded = self.resolver.load(model_id, device)
            handle = ModelHandle.from_loaded(loaded, self.default_max_length)
        except InitializationError as e:
            logger.error("Failed to initialize similarity model", model_id=model_id, error=str(e))
            self._record_load("unknown", "failure")
            return False

        with self._lock:
            replaced = self._state
            self._state = Ready(handle)

        if isinstance(replaced, Ready):
            logger.info(
                "Replaced similarity model",
                previous_model_id=replaced.handle.model_id,
                model_id=handle.model_id
            )
        logger.info(
            "Similarity model initialized",
            model_id=handle.model_id,
            weight_format=handle.weight_format.value,
            device=str(handle.device),
            hidden_size=handle.hidden_size
        )
        self._record_load(handle.weight_format.value, "success")
        if self.metrics is not None:
            self.metrics.set_embedding_dimension(handle.hidden_size)
        return True

    @contextmanager
    def acquire(self) -> Iterator[ModelHandle]:
        """Hold the registry lock and yield the installed handle.

        Raises ``NotInitializedError`` if no model has been installed. The
        handle must not be kept past the ``with`` block.
        """
        with self._lock:
            state = self._state
            if isinstance(state, Uninitialized):
                raise NotInitializedError()
            yield state.handle

    def _record_load(self, weight_format: str, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_model_load(weight_format, status)

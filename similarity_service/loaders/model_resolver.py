"""Model resolution and loading for the similarity engine.

Resolves ``config.json``, ``tokenizer.json`` and a weights file for a model
identifier (Hugging Face Hub repository or local directory), chooses the
weight format, forces the approximate GELU activation, and builds a BERT
encoder on the selected device.

Weight format selection
- Model ids matching a legacy family prefix go straight to ``pytorch_model.bin``
- Everything else tries ``model.safetensors`` first and falls back to
  ``pytorch_model.bin`` once if the safetensors file cannot be retrieved
- The format actually used is recorded on the result for diagnostics
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Sequence, Tuple

import torch
import structlog
from huggingface_hub import hf_hub_download
from huggingface_hub.errors import HfHubHTTPError, LocalEntryNotFoundError
from safetensors.torch import load_file as load_safetensors
from tokenizers import Tokenizer
from transformers import BertConfig, BertModel

from similarity_libs.common.metrics import measure_time
from ..errors import InitializationError

logger = structlog.get_logger("similarity_service.model_resolver")

CONFIG_FILENAME = "config.json"
TOKENIZER_FILENAME = "tokenizer.json"
SAFETENSORS_FILENAME = "model.safetensors"
PYTORCH_FILENAME = "pytorch_model.bin"

# Tanh approximation of GELU, always used regardless of config.json.
APPROXIMATE_GELU = "gelu_pytorch_tanh"

# (model_id, filename) -> local path
Fetcher = Callable[[str, str], str]

_FETCH_ERRORS = (HfHubHTTPError, LocalEntryNotFoundError, OSError)
_IGNORED_PREFIXES = ("pooler.", "cls.")


class WeightFormat(str, Enum):
    """Weight file formats the resolver knows how to load."""
    SAFETENSORS = "safetensors"
    PYTORCH = "pytorch"


@dataclass(frozen=True)
class ResolvedArtifacts:
    """Local paths for every file needed to build a model."""
    model_id: str
    config_path: str
    tokenizer_path: str
    weights_path: str
    weight_format: WeightFormat


class BertEncoder:
    """Forward capability over a loaded ``BertModel``.

    Calling the encoder returns the last hidden states with shape
    ``(batch, tokens, hidden_size)``.
    """

    def __init__(self, model: BertModel):
        self.model = model

    def __call__(
        self,
        token_ids: torch.Tensor,
        token_type_ids: torch.Tensor,
        attention_mask: torch.Tensor,
    ) -> torch.Tensor:
        with torch.inference_mode():
            output = self.model(
                input_ids=token_ids,
                token_type_ids=token_type_ids,
                attention_mask=attention_mask,
            )
        return output.last_hidden_state


@dataclass(frozen=True)
class LoadedModel:
    """Everything produced by a successful load."""
    model_id: str
    config: BertConfig
    tokenizer: Tokenizer
    encoder: BertEncoder
    weight_format: WeightFormat
    device: torch.device


class ModelResolver:
    """Resolves and loads BERT-family encoders.

    Parameters
    - legacy_families: Model id prefixes that only ship ``pytorch_model.bin``
    - revision: Hub revision to download from
    - cache_dir: Optional Hub cache directory
    - fetch: Optional replacement for the Hub download function
    """

    def __init__(
        self,
        legacy_families: Sequence[str] = (),
        revision: str = "main",
        cache_dir: Optional[str] = None,
        fetch: Optional[Fetcher] = None,
    ):
        self.legacy_families = tuple(legacy_families)
        self.revision = revision
        self.cache_dir = cache_dir
        self._hub_fetch = fetch or self._download

    def _download(self, model_id: str, filename: str) -> str:
        return hf_hub_download(
            repo_id=model_id,
            filename=filename,
            revision=self.revision,
            cache_dir=self.cache_dir,
        )

    @staticmethod
    def _local_fetch(model_id: str, filename: str) -> str:
        path = os.path.join(model_id, filename)
        if not os.path.isfile(path):
            raise FileNotFoundError(f"{filename} not found in {model_id}")
        return path

    def _fetcher_for(self, model_id: str) -> Fetcher:
        if os.path.isdir(model_id):
            return self._local_fetch
        return self._hub_fetch

    def is_legacy_family(self, model_id: str) -> bool:
        """Check whether a model id belongs to a legacy-checkpoint family."""
        return any(model_id.startswith(prefix) for prefix in self.legacy_families)

    def _select_weights(self, model_id: str, fetch: Fetcher) -> Tuple[str, WeightFormat]:
        """Pick the weights file, trying safetensors at most once."""
        if self.is_legacy_family(model_id):
            logger.info("Using legacy checkpoint for model family", model_id=model_id)
            return fetch(model_id, PYTORCH_FILENAME), WeightFormat.PYTORCH

        try:
            return fetch(model_id, SAFETENSORS_FILENAME), WeightFormat.SAFETENSORS
        except _FETCH_ERRORS as e:
            logger.warning(
                "Safetensors weights unavailable, falling back to legacy checkpoint",
                model_id=model_id,
                error=str(e)
            )

        return fetch(model_id, PYTORCH_FILENAME), WeightFormat.PYTORCH

    def resolve(self, model_id: str) -> ResolvedArtifacts:
        """Resolve local paths for config, tokenizer, and weights.

        Raises ``InitializationError`` when any required file is missing.
        """
        fetch = self._fetcher_for(model_id)
        try:
            config_path = fetch(model_id, CONFIG_FILENAME)
            tokenizer_path = fetch(model_id, TOKENIZER_FILENAME)
            weights_path, weight_format = self._select_weights(model_id, fetch)
        except Exception as e:
            raise InitializationError(f"Failed to resolve artifacts for {model_id}: {e}") from e

        logger.info(
            "Resolved model artifacts",
            model_id=model_id,
            weight_format=weight_format.value,
            weights_path=weights_path
        )
        return ResolvedArtifacts(
            model_id=model_id,
            config_path=config_path,
            tokenizer_path=tokenizer_path,
            weights_path=weights_path,
            weight_format=weight_format,
        )

    @staticmethod
    def load_config(config_path: str) -> BertConfig:
        """Load ``config.json`` and force the approximate GELU activation."""
        config = BertConfig.from_json_file(config_path)
        config.hidden_act = APPROXIMATE_GELU
        return config

    @staticmethod
    def load_weights(artifacts: ResolvedArtifacts, device: torch.device) -> Dict[str, torch.Tensor]:
        """Read weights with the loader matching the resolved format."""
        if artifacts.weight_format == WeightFormat.SAFETENSORS:
            # Memory-mapped read, no pickle deserialization.
            return load_safetensors(artifacts.weights_path, device=str(device))
        return torch.load(artifacts.weights_path, map_location=device, weights_only=True)

    @staticmethod
    def normalize_state_dict(state_dict: Dict[str, torch.Tensor]) -> Dict[str, torch.Tensor]:
        """Strip the ``bert.`` prefix and drop pooler/head tensors."""
        normalized = {}
        for name, tensor in state_dict.items():
            if name.startswith("bert."):
                name = name[len("bert."):]
            if name.startswith(_IGNORED_PREFIXES):
                continue
            normalized[name] = tensor
        return normalized

    def build_model(
        self,
        config: BertConfig,
        state_dict: Dict[str, torch.Tensor],
        device: torch.device,
    ) -> BertModel:
        """Construct the encoder and install the checkpoint weights."""
        model = BertModel(config, add_pooling_layer=False)
        missing, unexpected = model.load_state_dict(
            self.normalize_state_dict(state_dict), strict=False
        )
        missing = [name for name in missing if not name.endswith("position_ids")]
        if missing:
            raise InitializationError(f"Checkpoint is missing encoder weights: {missing[:5]}")
        if unexpected:
            logger.warning("Ignoring unexpected checkpoint tensors", tensors=list(unexpected)[:5])

        model.to(device=device, dtype=torch.float32)
        model.eval()
        return model

    @measure_time("model_load")
    def load(self, model_id: str, device: torch.device) -> LoadedModel:
        """Resolve and fully construct a model.

        Either returns a complete ``LoadedModel`` or raises
        ``InitializationError``; nothing partially built escapes.
        """
        artifacts = self.resolve(model_id)
        try:
            config = self.load_config(artifacts.config_path)
            tokenizer = Tokenizer.from_file(artifacts.tokenizer_path)
            state_dict = self.load_weights(artifacts, device)
            model = self.build_model(config, state_dict, device)
        except InitializationError:
            raise
        except Exception as e:
            raise InitializationError(f"Failed to load model {model_id}: {e}") from e

        logger.info(
            "Model loaded successfully",
            model_id=model_id,
            weight_format=artifacts.weight_format.value,
            hidden_size=config.hidden_size,
            device=str(device)
        )
        return LoadedModel(
            model_id=model_id,
            config=config,
            tokenizer=tokenizer,
            encoder=BertEncoder(model),
            weight_format=artifacts.weight_format,
            device=device,
        )

"""Embedding pipeline: tokenize, forward, mean pool, L2 normalize.

Every call embeds exactly one text (batch size 1) as a single segment, so
token type ids are all zeros.
"""

from typing import Callable, Optional
import torch
import structlog

from .tokenizer_adapter import TokenizerAdapter
from ..errors import EncodingError

logger = structlog.get_logger("similarity_service.embedding_pipeline")

# forward(token_ids, token_type_ids, attention_mask) -> hidden states (1, tokens, hidden)
Encoder = Callable[[torch.Tensor, torch.Tensor, torch.Tensor], torch.Tensor]


def mean_pool(hidden_states: torch.Tensor, attention_mask: torch.Tensor) -> torch.Tensor:
    """Average token vectors over real tokens.

    Parameters
    - hidden_states: ``(batch, tokens, hidden)``
    - attention_mask: ``(batch, tokens)`` with 1 for real tokens, 0 for padding

    Returns
    - ``(batch, hidden)``
    """
    mask = attention_mask.unsqueeze(-1).to(hidden_states.dtype)
    summed = (hidden_states * mask).sum(dim=1)
    counts = mask.sum(dim=1)
    return summed / counts


def l2_normalize(embeddings: torch.Tensor) -> torch.Tensor:
    """Scale each row to unit Euclidean norm along the embedding dimension."""
    norm = embeddings.pow(2).sum(dim=-1, keepdim=True).sqrt()
    if bool((norm == 0).any()):
        raise EncodingError("Cannot normalize a zero-norm embedding")
    if not bool(torch.isfinite(norm).all()):
        raise EncodingError("Cannot normalize a non-finite embedding")
    return embeddings / norm


class EmbeddingPipeline:
    """Turns text into a unit-norm float32 embedding.

    Parameters
    - tokenizer: ``TokenizerAdapter`` for the loaded model
    - encoder: forward capability returning per-token hidden states
    - device: device the encoder lives on
    """

    def __init__(self, tokenizer: TokenizerAdapter, encoder: Encoder, device: torch.device):
        self.tokenizer = tokenizer
        self.encoder = encoder
        self.device = device

    def embed(self, text: str, max_length: Optional[int] = None) -> torch.Tensor:
        """Embed a single text.

        Returns a 1-D float32 tensor of the model's hidden size on the CPU.
        Raises ``EncodingError`` if tokenization or the forward pass fails.
        """
        encoding = self.tokenizer.tokenize(text, max_length)
        if len(encoding) == 0:
            raise EncodingError("Text produced no tokens to pool")

        token_ids = torch.tensor([encoding.token_ids], dtype=torch.long, device=self.device)
        attention_mask = torch.tensor([encoding.attention_mask], dtype=torch.long, device=self.device)
        token_type_ids = torch.zeros_like(token_ids)

        try:
            hidden_states = self.encoder(token_ids, token_type_ids, attention_mask)
        except Exception as e:
            raise EncodingError(f"Forward pass failed: {e}") from e

        pooled = mean_pool(hidden_states, attention_mask)
        embedding = l2_normalize(pooled.to(torch.float32))

        logger.debug(
            "Text embedded",
            token_count=len(encoding),
            dimension=embedding.shape[-1]
        )
        return embedding.squeeze(0).cpu()

"""Tokenizer adapter with per-call truncation."""

from dataclasses import dataclass
from typing import List, Optional
from tokenizers import Tokenizer
import structlog

from similarity_libs.common.config import DEFAULT_MAX_LENGTH
from ..errors import EncodingError

logger = structlog.get_logger("similarity_service.tokenizer")


@dataclass(frozen=True)
class TokenizationOutput:
    """Token ids, attention mask, and token strings of equal length."""
    token_ids: List[int]
    attention_mask: List[int]
    tokens: List[str]

    def __len__(self) -> int:
        return len(self.token_ids)


def effective_max_length(
    max_length: Optional[int],
    default: int = DEFAULT_MAX_LENGTH,
    max_positions: Optional[int] = None,
) -> int:
    """Map a missing or non-positive max length to the default.

    When ``max_positions`` is given the result never exceeds it.
    """
    if max_length is None or max_length <= 0:
        max_length = default
    if max_positions is not None:
        return min(max_length, max_positions)
    return max_length


class TokenizerAdapter:
    """Wraps a ``tokenizers.Tokenizer`` and configures truncation on every call.

    Truncation is always longest-first, from the right, with no stride.
    Padding is disabled; each call encodes a single sequence with the
    tokenizer's special tokens.

    Parameters
    - tokenizer: ``tokenizers.Tokenizer`` of the loaded model
    - default_max_length: Limit used for missing or non-positive max lengths
    - max_positions: Model position limit; every limit is capped to it
    """

    def __init__(
        self,
        tokenizer: Tokenizer,
        default_max_length: int = DEFAULT_MAX_LENGTH,
        max_positions: Optional[int] = None,
    ):
        self.tokenizer = tokenizer
        self.default_max_length = default_max_length
        self.max_positions = max_positions

    def tokenize(self, text: str, max_length: Optional[int] = None) -> TokenizationOutput:
        """Encode ``text`` truncated to ``max_length`` tokens.

        Raises ``EncodingError`` when the tokenizer rejects the input, or
        when the limit cannot even hold the special tokens (the tokenizer
        would otherwise skip truncation and return the whole sequence).
        """
        limit = effective_max_length(max_length, self.default_max_length, self.max_positions)
        special_tokens = self.tokenizer.num_special_tokens_to_add(False)
        if limit < special_tokens:
            raise EncodingError(
                f"max_length {limit} cannot hold the {special_tokens} special tokens"
            )
        try:
            # Reset every call so no configuration leaks between requests.
            self.tokenizer.no_padding()
            self.tokenizer.enable_truncation(
                max_length=limit,
                stride=0,
                strategy="longest_first",
                direction="right",
            )
            encoding = self.tokenizer.encode(text, add_special_tokens=True)
        except Exception as e:
            raise EncodingError(f"Tokenization failed: {e}") from e

        output = TokenizationOutput(
            token_ids=list(encoding.ids),
            attention_mask=list(encoding.attention_mask),
            tokens=list(encoding.tokens),
        )
        logger.debug("Text tokenized", token_count=len(output), max_length=limit)
        return output

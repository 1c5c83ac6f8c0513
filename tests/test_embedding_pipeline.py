"""Tests for the embedding pipeline."""

import pytest
import torch
from tokenizers import Tokenizer
from tokenizers.models import WordLevel
from tokenizers.pre_tokenizers import Whitespace

from similarity_service.encoders.embedding_pipeline import EmbeddingPipeline, l2_normalize, mean_pool
from similarity_service.encoders.tokenizer_adapter import TokenizerAdapter
from similarity_service.errors import EncodingError
from tests.conftest import VOCAB, bag_of_words_encoder


def test_mean_pool_ignores_padding():
    """Padded positions contribute neither to the sum nor the count."""
    hidden = torch.tensor([[[1.0, 2.0], [3.0, 4.0], [100.0, 100.0]]])
    mask = torch.tensor([[1, 1, 0]])

    pooled = mean_pool(hidden, mask)

    assert torch.allclose(pooled, torch.tensor([[2.0, 3.0]]))


def test_l2_normalize_unit_norm():
    normalized = l2_normalize(torch.tensor([[3.0, 4.0]]))
    assert torch.allclose(normalized, torch.tensor([[0.6, 0.8]]))


def test_l2_normalize_rejects_zero_vector():
    with pytest.raises(EncodingError):
        l2_normalize(torch.zeros(1, 4))


@pytest.mark.parametrize("text", ["the cat sat", "", "stock market crashed", "zebra quokka"])
def test_embedding_is_unit_norm_float32(bert_pipeline, text):
    """Every embedding is a 1-D float32 vector with unit L2 norm."""
    embedding = bert_pipeline.embed(text)

    assert embedding.dtype == torch.float32
    assert embedding.shape == (32,)
    assert abs(float(embedding.norm()) - 1.0) < 1e-5


def test_embedding_is_deterministic(bert_pipeline):
    first = bert_pipeline.embed("the dog ran")
    second = bert_pipeline.embed("the dog ran")
    assert torch.equal(first, second)


def test_bag_of_words_embedding(bow_pipeline):
    """Mean pooling of one-hot states gives the normalized token histogram."""
    embedding = bow_pipeline.embed("cat cat")

    expected = torch.zeros(len(VOCAB))
    for token, count in (("[CLS]", 1), ("cat", 2), ("[SEP]", 1)):
        expected[VOCAB.index(token)] = count
    expected = expected / expected.norm()

    assert torch.allclose(embedding, expected, atol=1e-6)


def test_forward_receives_single_segment_inputs(adapter):
    """Token type ids are all zeros and the mask covers every token."""
    seen = {}

    def forward(token_ids, token_type_ids, attention_mask):
        seen["token_ids"] = token_ids
        seen["token_type_ids"] = token_type_ids
        seen["attention_mask"] = attention_mask
        return torch.ones(token_ids.shape[0], token_ids.shape[1], 8)

    EmbeddingPipeline(adapter, forward, torch.device("cpu")).embed("the cat sat")

    assert seen["token_ids"].shape == (1, 5)
    assert torch.count_nonzero(seen["token_type_ids"]) == 0
    assert seen["attention_mask"].tolist() == [[1, 1, 1, 1, 1]]


def test_max_length_limits_forward_input(adapter):
    lengths = []

    def forward(token_ids, token_type_ids, attention_mask):
        lengths.append(token_ids.shape[1])
        return torch.ones(1, token_ids.shape[1], 4)

    pipeline = EmbeddingPipeline(adapter, forward, torch.device("cpu"))
    pipeline.embed("one two three four five six seven eight", max_length=4)

    assert lengths == [4]


def test_forward_failure_is_encoding_error(adapter):
    def forward(token_ids, token_type_ids, attention_mask):
        raise RuntimeError("index out of range in self")

    pipeline = EmbeddingPipeline(adapter, forward, torch.device("cpu"))
    with pytest.raises(EncodingError):
        pipeline.embed("the cat")


def test_l2_normalize_rejects_nan():
    with pytest.raises(EncodingError):
        l2_normalize(torch.tensor([[float("nan"), 1.0]]))


def test_empty_encoding_is_encoding_error():
    """A tokenizer without special tokens can produce nothing to pool."""
    bare = Tokenizer(WordLevel({token: index for index, token in enumerate(VOCAB)}, unk_token="[UNK]"))
    bare.pre_tokenizer = Whitespace()
    pipeline = EmbeddingPipeline(TokenizerAdapter(bare), bag_of_words_encoder, torch.device("cpu"))

    with pytest.raises(EncodingError):
        pipeline.embed("")

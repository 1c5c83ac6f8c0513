"""Shared fixtures: an offline tokenizer, a tiny BERT, and model directories."""

from pathlib import Path

import pytest
import torch
from safetensors.torch import save_file
from tokenizers import Tokenizer
from tokenizers.models import WordLevel
from tokenizers.normalizers import Lowercase
from tokenizers.pre_tokenizers import Whitespace
from tokenizers.processors import TemplateProcessing
from transformers import BertConfig, BertModel

from similarity_service.encoders.embedding_pipeline import EmbeddingPipeline
from similarity_service.encoders.tokenizer_adapter import TokenizerAdapter
from similarity_service.loaders.model_resolver import ModelResolver

VOCAB = [
    "[PAD]", "[UNK]", "[CLS]", "[SEP]",
    "the", "a", "is", "cat", "sat", "sitting", "dog", "ran",
    "stock", "market", "crashed", "fruit", "banana", "car", "apple",
    "one", "two", "three", "four", "five", "six", "seven", "eight",
]
CLS_ID = VOCAB.index("[CLS]")
SEP_ID = VOCAB.index("[SEP]")
TINY_MAX_POSITIONS = 64


def build_tokenizer() -> Tokenizer:
    """WordLevel tokenizer that wraps every input in [CLS] ... [SEP]."""
    tokenizer = Tokenizer(WordLevel({token: index for index, token in enumerate(VOCAB)}, unk_token="[UNK]"))
    tokenizer.normalizer = Lowercase()
    tokenizer.pre_tokenizer = Whitespace()
    tokenizer.post_processor = TemplateProcessing(
        single="[CLS] $A [SEP]",
        special_tokens=[("[CLS]", CLS_ID), ("[SEP]", SEP_ID)],
    )
    return tokenizer


def build_bert_config() -> BertConfig:
    return BertConfig(
        vocab_size=len(VOCAB),
        hidden_size=32,
        num_hidden_layers=2,
        num_attention_heads=4,
        intermediate_size=64,
        max_position_embeddings=TINY_MAX_POSITIONS,
        hidden_act="gelu",
    )


def build_bert() -> BertModel:
    torch.manual_seed(0)
    model = BertModel(build_bert_config(), add_pooling_layer=False)
    model.eval()
    return model


def bag_of_words_encoder(token_ids, token_type_ids, attention_mask):
    """Forward stand-in whose mean-pooled output is a bag-of-words vector."""
    return torch.nn.functional.one_hot(token_ids, num_classes=len(VOCAB)).float()


def write_model_dir(directory: Path, safetensors: bool = True, pytorch: bool = False, prefix: str = "") -> Path:
    """Write config, tokenizer, and weights for the tiny BERT into ``directory``."""
    directory.mkdir(parents=True, exist_ok=True)
    model = build_bert()
    model.config.to_json_file(str(directory / "config.json"), use_diff=False)
    build_tokenizer().save(str(directory / "tokenizer.json"))

    state_dict = {f"{prefix}{name}": tensor.contiguous() for name, tensor in model.state_dict().items()}
    if safetensors:
        save_file(state_dict, str(directory / "model.safetensors"))
    if pytorch:
        torch.save(state_dict, str(directory / "pytorch_model.bin"))
    return directory


@pytest.fixture
def tokenizer():
    return build_tokenizer()


@pytest.fixture
def adapter(tokenizer):
    return TokenizerAdapter(tokenizer, default_max_length=TINY_MAX_POSITIONS)


@pytest.fixture
def bert_pipeline(adapter):
    model = build_bert()

    def forward(token_ids, token_type_ids, attention_mask):
        with torch.inference_mode():
            return model(
                input_ids=token_ids,
                token_type_ids=token_type_ids,
                attention_mask=attention_mask,
            ).last_hidden_state

    return EmbeddingPipeline(adapter, forward, torch.device("cpu"))


@pytest.fixture
def bow_pipeline(adapter):
    return EmbeddingPipeline(adapter, bag_of_words_encoder, torch.device("cpu"))


@pytest.fixture
def model_dir(tmp_path):
    return write_model_dir(tmp_path / "tiny-bert")


def offline_fetch(model_id, filename):
    """Hub stand-in for tests: nothing is ever available remotely."""
    raise FileNotFoundError(f"{model_id}/{filename} is not available offline")


@pytest.fixture
def resolver():
    return ModelResolver(legacy_families=["legacy-org/"], fetch=offline_fetch)

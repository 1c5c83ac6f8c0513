"""Tests for the command line entry point."""

import json

import pytest

from similarity_service.main import build_parser, main


@pytest.fixture
def cli_env(monkeypatch):
    monkeypatch.setenv("ML_SIMILARITY_MAX_LENGTH", "64")
    monkeypatch.setenv("ML_LOG_FORMAT", "console")


def run(capsys, *argv):
    code = main(list(argv))
    return code, capsys.readouterr().out


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_similarity_command(cli_env, capsys, model_dir):
    code, out = run(capsys, "--model-id", str(model_dir), "similarity", "the cat sat", "the cat sat")

    assert code == 0
    assert json.loads(out)["score"] == pytest.approx(1.0, abs=1e-5)


def test_rank_command(cli_env, capsys, model_dir):
    code, out = run(capsys, "--model-id", str(model_dir), "rank", "fruit", "banana", "car", "apple")

    assert code == 0
    assert json.loads(out)["index"] in (0, 1, 2)


def test_tokenize_command(cli_env, capsys, model_dir):
    code, out = run(capsys, "--model-id", str(model_dir), "--max-length", "3", "tokenize", "the cat sat")

    assert code == 0
    assert json.loads(out)["tokens"] == ["[CLS]", "the", "[SEP]"]


def test_embed_and_describe_commands(cli_env, capsys, model_dir):
    code, out = run(capsys, "--model-id", str(model_dir), "embed", "the cat")
    assert code == 0
    assert len(json.loads(out)["embedding"]) == 32

    code, out = run(capsys, "--model-id", str(model_dir), "describe")
    assert code == 0
    assert json.loads(out)["weight_format"] == "safetensors"


def test_initialize_failure_exit_code(cli_env, capsys, tmp_path):
    code, out = run(capsys, "--model-id", str(tmp_path / "missing"), "similarity", "a", "b")
    assert code == 1
    assert out == ""

"""Result record layouts returned across the call boundary."""

import ctypes

FloatPointer = ctypes.POINTER(ctypes.c_float)
Int32Pointer = ctypes.POINTER(ctypes.c_int32)
TextArrayPointer = ctypes.POINTER(ctypes.c_char_p)

SENTINEL_INDEX = -1
SENTINEL_SCORE = -1.0


class EmbeddingResult(ctypes.Structure):
    """Embedding vector; release ``data``/``length`` with ``release_embedding``."""
    _fields_ = [
        ("data", FloatPointer),
        ("length", ctypes.c_int32),
        ("error", ctypes.c_bool),
    ]


class TokenizationResult(ctypes.Structure):
    """Token ids and token strings; release with ``release_tokenization``."""
    _fields_ = [
        ("token_ids", Int32Pointer),
        ("tokens", TextArrayPointer),
        ("length", ctypes.c_int32),
        ("error", ctypes.c_bool),
    ]


class SimilarityResult(ctypes.Structure):
    """Best candidate index and score; returned by value, nothing to release."""
    _fields_ = [
        ("index", ctypes.c_int32),
        ("score", ctypes.c_float),
    ]


def failed_embedding() -> EmbeddingResult:
    return EmbeddingResult(data=FloatPointer(), length=0, error=True)


def failed_tokenization() -> TokenizationResult:
    return TokenizationResult(
        token_ids=Int32Pointer(),
        tokens=TextArrayPointer(),
        length=0,
        error=True,
    )


def failed_similarity() -> SimilarityResult:
    return SimilarityResult(index=SENTINEL_INDEX, score=SENTINEL_SCORE)

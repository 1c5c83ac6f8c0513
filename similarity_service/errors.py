"""Error taxonomy for the similarity engine.

Errors are raised internally and only turned into sentinel values by the
boundary layer (``similarity_service.api.boundary``).
"""


class SimilarityError(Exception):
    """Base class for engine errors."""
    pass


class InitializationError(SimilarityError):
    """Model artifacts could not be resolved, parsed, or constructed."""
    pass


class NotInitializedError(SimilarityError):
    """An operation ran before any model was installed."""

    def __init__(self, message: str = "Similarity model not initialized"):
        super().__init__(message)


class EncodingError(SimilarityError):
    """Input text could not be decoded, tokenized, or embedded."""
    pass


class EmptyCandidateSetError(SimilarityError):
    """Ranking was requested against an empty candidate sequence."""

    def __init__(self, message: str = "Empty candidate list"):
        super().__init__(message)

"""Tokenization and embedding.

Exports the ``TokenizerAdapter`` (per-call truncation) and the
``EmbeddingPipeline`` (tokenize, forward, mean pool, L2 normalize).
"""

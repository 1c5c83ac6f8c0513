"""Semantic similarity engine package.

Layout:
- ``api``: the call boundary (result records, buffer ownership, sentinels).
- ``encoders``: tokenizer adapter and the embedding pipeline.
- ``loaders``: model artifact resolution and weight loading.
- ``ranking``: cosine similarity and nearest-candidate search.
- ``runtime``: the model registry and service-local metrics.
- ``batching``: compute device selection.

Import convenience:
- from similarity_service.main import create_boundary
"""

"""Similarity scoring and nearest-candidate search over embeddings."""

"""Compute device selection for model loading and inference."""

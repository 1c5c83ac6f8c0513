"""Shared libraries for the semantic similarity engine.

Subpackages:
- ``similarity_libs.common``: configuration, logging, and metrics.

Notes:
- Avoid engine-specific logic; keep modules cohesive and broadly useful.
"""

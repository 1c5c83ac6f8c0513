"""Call boundary for the similarity engine.

Contains:
- ``records``: ``ctypes`` result layouts handed to the caller
- ``ownership``: the allocation ledger and its release contract
- ``boundary``: ``SimilarityBoundary``, the sentinel-returning entry points
"""

"""Model artifact resolution and loading.

Exports the ``ModelResolver`` which picks a weight format, applies the fixed
configuration overrides, and builds the encoder on the requested device.
"""

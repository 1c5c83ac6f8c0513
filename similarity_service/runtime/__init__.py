"""Runtime state for the engine: the model registry and metrics facade."""

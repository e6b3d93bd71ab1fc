from __future__ import annotations


class EngineNotReadyError(RuntimeError):
    """Raised when the engine is driven before its collaborators are in place."""

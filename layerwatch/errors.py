from __future__ import annotations


class LayerwatchError(Exception):
    """Base class for errors raised by layerwatch."""


class InterfaceNotFoundError(LayerwatchError):
    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = list(available)
        super().__init__(f"Capture interface not found: {name}")


class CaptureBackendError(LayerwatchError):
    """A frame source could not be started or has failed irrecoverably."""

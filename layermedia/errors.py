"""Exception taxonomy shared by every pipeline.

Cancellation is not an error: it is reported as ``Status.CANCELLED`` on the
terminal progress event.
"""

from __future__ import annotations


class LayerMediaError(Exception):
    """Base class for all layermedia errors."""


class SpawnError(LayerMediaError):
    """An external binary (ffmpeg/ffprobe) is missing or cannot be executed."""


class LoadError(LayerMediaError):
    """The render surface could not load the artwork URL."""


class EncodeError(LayerMediaError):
    """The encoder exited with a non-zero status."""

    def __init__(self, message: str, returncode: int | None = None, output_tail: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output_tail = output_tail


class ProbeError(LayerMediaError):
    """ffprobe ran but its output could not be used."""


class TransferError(LayerMediaError):
    """A single object-storage request failed."""

    def __init__(self, message: str, status_code: int | None = None, path: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.path = path


class RemoteNotFound(TransferError):
    """The remote path does not exist (HTTP 404)."""


class ValidationError(LayerMediaError):
    """Input rejected before any work was started."""


class BusyError(LayerMediaError):
    """A single-flight operation is already in progress."""

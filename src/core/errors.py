"""Error types shared by the core and adapters."""

from __future__ import annotations


class DualProbeError(RuntimeError):
    """Base class for all dualprobe failures."""


class ChannelError(DualProbeError):
    """A single channel could not be acquired, read, or written.

    The core always degrades these to an absent channel or a missing message.
    """


class HandleFormatError(ValueError):
    """A handle file does not have the four-line shape."""


class ScanDirectoryError(DualProbeError):
    """The handle directory could not be opened for a scan."""


class SessionSetupError(DualProbeError):
    """A server session could not acquire one of its resources."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage

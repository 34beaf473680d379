"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass

# Fixed capacity of every segment; the socket read buffer matches it.
DEFAULT_SEGMENT_CAPACITY = 1024
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_ACCEPT_TIMEOUT = 120.0
DEFAULT_LINGER_SECONDS = 10.0
LISTEN_BACKLOG = 5


@dataclass(frozen=True)
class ProbeConfig:
    """Client-side probe settings."""

    handle_directory: str
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    max_workers: int = 1
    segment_capacity: int = DEFAULT_SEGMENT_CAPACITY


@dataclass(frozen=True)
class ServeConfig:
    """Server-side session settings."""

    shm_message: str
    socket_message: str
    accept_timeout: float = DEFAULT_ACCEPT_TIMEOUT
    linger_seconds: float = DEFAULT_LINGER_SECONDS
    segment_capacity: int = DEFAULT_SEGMENT_CAPACITY
    backlog: int = LISTEN_BACKLOG

"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to sockets, segments, or the handle file format.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True)
class HandleRecord:
    """How to reach one advertised server."""

    network_address: str
    port: int
    shm_key_path: str
    shm_project_id: int


class ChannelKind(str, Enum):
    MEMORY = "memory"
    NETWORK = "network"


class Classification(str, Enum):
    """Connectivity pattern of one server, derived from its open channels."""

    FULL = "full"
    NETWORK_ONLY = "network_only"
    MEMORY_ONLY = "memory_only"
    NONE = "none"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def legacy_label(self) -> Optional[str]:
        # Historical names only; they say nothing about where a server runs.
        return _LEGACY_LABELS.get(self)


_LABELS = {
    Classification.FULL: "Full",
    Classification.NETWORK_ONLY: "Network only",
    Classification.MEMORY_ONLY: "Memory only",
    Classification.NONE: "None",
}

_LEGACY_LABELS = {
    Classification.FULL: "Host",
    Classification.NETWORK_ONLY: "Container",
    Classification.NONE: "VM",
}


@dataclass
class ConnectionResult:
    """Per-server outcome of one connection attempt.

    A channel is ``None`` when its acquisition failed. The network channel is
    owned by this result and closed by :meth:`release`; the memory channel is
    a read-only capability and is never destroyed from the client side.
    """

    handle_source_id: str
    network_channel: Optional[Any] = None
    memory_channel: Optional[Any] = None
    released: bool = field(default=False, compare=False)

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        if self.network_channel is not None:
            self.network_channel.close()


@dataclass(frozen=True)
class RetrievedMessage:
    """One message read from one channel of one server."""

    handle_source_id: str
    channel: ChannelKind
    text: str


@dataclass(frozen=True)
class SessionSummary:
    """Aggregate view of a full probe cycle."""

    total_servers: int
    counts: dict[Classification, int]
    messages: list[RetrievedMessage]


@dataclass(frozen=True)
class ServerSetupInfo:
    """Inputs a server session needs before it can publish itself."""

    listen_port_hint: int
    shm_key_path: str
    shm_project_id: int
    handle_output_directory: str
    handle_output_name: str


class SessionState(str, Enum):
    INIT = "init"
    SOCKET_BOUND = "socket_bound"
    SEGMENT_CREATED = "segment_created"
    HANDLE_PUBLISHED = "handle_published"
    SEGMENT_WRITTEN = "segment_written"
    CLIENT_ACCEPTED = "client_accepted"
    ACCEPT_TIMED_OUT = "accept_timed_out"
    SOCKET_WRITTEN = "socket_written"
    TORN_DOWN = "torn_down"


@dataclass
class SessionResources:
    """Resources held by a server session, filled in as they are acquired."""

    listening_socket: Optional[Any] = None
    segment: Optional[Any] = None
    accepted_client_socket: Optional[Any] = None
    published_handle_path: Optional[str] = None


@dataclass(frozen=True)
class SessionOutcome:
    """What a finished server session did."""

    final_state: SessionState
    states_visited: tuple[SessionState, ...]
    client_accepted: bool
    bytes_sent: int
    teardown_errors: tuple[str, ...]

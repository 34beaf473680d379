"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for handle storage, the network channel,
and the shared-memory channel so that the core can be exercised with fakes
and reused with different transports.

The shared-memory contract is split in two capabilities: a reader only ever
gets a :class:`ReadableSegment`, and only the server that created a segment
holds an :class:`OwnedSegment` that can destroy it.
"""

from __future__ import annotations

import threading
from typing import Optional, Protocol

from core.models import HandleRecord


class HandleStorePort(Protocol):
    """Handle record persistence required by the registry and the server."""

    def list_handle_paths(self, directory: str) -> list[str]:
        ...

    def read(self, path: str) -> Optional[HandleRecord]:
        ...

    def write(self, directory: str, name: str, record: HandleRecord) -> str:
        ...

    def delete(self, path: str) -> None:
        ...


class NetworkChannel(Protocol):
    def recv(self, bufsize: int) -> bytes:
        ...

    def close(self) -> None:
        ...


class NetworkPort(Protocol):
    """Stream-socket operations used by both sides."""

    def connect(
        self,
        address: str,
        port: int,
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> NetworkChannel:
        ...

    def listen(self, port: int, backlog: int):
        ...

    def bound_address(self, listener) -> tuple[str, int]:
        ...

    def wait_for_client(
        self,
        listener,
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
    ):
        ...

    def send_once(self, client, payload: bytes) -> int:
        ...


class ReadableSegment(Protocol):
    """Reader-side capability: attach, copy out, detach."""

    segment_id: int

    def read_text(self) -> str:
        ...


class OwnedSegment(Protocol):
    """Creator-side capability: write and destroy."""

    segment_id: int
    capacity: int

    def write_text(self, text: str) -> None:
        ...

    def destroy(self) -> None:
        ...


class SegmentPort(Protocol):
    """Key derivation and lookup/creation of shared-memory segments."""

    def derive_key(self, key_path: str, project_id: int) -> int:
        ...

    def locate(self, key: int) -> ReadableSegment:
        ...

    def create(self, key: int, capacity: int) -> OwnedSegment:
        ...

"""System V shared-memory adapter.

Implements the core SegmentPort on top of ``sysv_ipc``. Keys come from
``ftok(path, project_id)`` so a server and its clients agree on a segment
without exchanging ids.

Two capabilities are handed out:
- ReadOnlySegment: what a client gets from ``locate``; it can only
  attach, copy out, and detach.
- OwnedSysVSegment: what the creating server gets from ``create``; it can
  write the message and destroy the segment.
"""

from __future__ import annotations

import contextlib
import logging
import os

import sysv_ipc

from core.collector import decode_payload
from core.errors import ChannelError

LOGGER = logging.getLogger(__name__)

SEGMENT_MODE = 0o666


class ReadOnlySegment:
    """Reader-side handle to an existing segment, kept detached between reads."""

    def __init__(self, segment_id: int, capacity: int) -> None:
        self.segment_id = segment_id
        self.capacity = capacity

    def read_text(self) -> str:
        """Attach, copy the NUL-terminated text, detach."""

        try:
            memory = sysv_ipc.attach(self.segment_id)
        except sysv_ipc.Error as exc:
            raise ChannelError(f"Failed to attach shared memory segment: {exc}") from exc

        try:
            raw = memory.read(self.capacity)
        except sysv_ipc.Error as exc:
            with contextlib.suppress(sysv_ipc.Error):
                memory.detach()
            raise ChannelError(f"Failed to read shared memory segment: {exc}") from exc

        try:
            memory.detach()
        except sysv_ipc.Error as exc:
            raise ChannelError(f"Failed to detach shared memory segment: {exc}") from exc
        return decode_payload(raw)

    def __repr__(self) -> str:
        return f"ReadOnlySegment(segment_id={self.segment_id}, capacity={self.capacity})"


class OwnedSysVSegment:
    """Creator-side handle; the only object allowed to destroy the segment."""

    def __init__(self, memory: sysv_ipc.SharedMemory) -> None:
        self._memory = memory
        self.segment_id = memory.id
        self.capacity = memory.size

    def write_text(self, text: str) -> None:
        """Write ``text`` truncated to capacity and NUL-terminated."""

        payload = text.encode("utf-8")[: self.capacity - 1] + b"\0"
        try:
            self._memory.attach()
        except sysv_ipc.Error as exc:
            raise ChannelError(f"Failed to attach shared memory segment: {exc}") from exc
        try:
            self._memory.write(payload)
        except sysv_ipc.Error as exc:
            with contextlib.suppress(sysv_ipc.Error):
                self._memory.detach()
            raise ChannelError(f"Failed to write shared memory segment: {exc}") from exc
        try:
            self._memory.detach()
        except sysv_ipc.Error as exc:
            raise ChannelError(f"Failed to detach shared memory segment: {exc}") from exc

    def destroy(self) -> None:
        if self._memory.attached:
            self._memory.detach()
        self._memory.remove()
        LOGGER.debug("Removed shared memory segment %s", self.segment_id)


class SysVSegments:
    """Key derivation and segment lookup/creation for the SegmentPort contract."""

    def derive_key(self, key_path: str, project_id: int) -> int:
        if not key_path or not os.path.exists(key_path):
            raise ChannelError(f"Failed to generate key: no such path {key_path!r}")
        try:
            key = sysv_ipc.ftok(key_path, project_id, silence_warning=True)
        except (OSError, ValueError, TypeError) as exc:
            raise ChannelError(f"Failed to generate key: {exc}") from exc
        if key == -1:
            raise ChannelError(f"Failed to generate key for {key_path!r}:{project_id}")
        return key

    def locate(self, key: int) -> ReadOnlySegment:
        """Find an existing segment; never creates one."""

        try:
            memory = sysv_ipc.SharedMemory(key)
        except sysv_ipc.Error as exc:
            raise ChannelError(f"Failed to connect to shared memory segment: {exc}") from exc
        segment = ReadOnlySegment(memory.id, memory.size)
        # Opening attaches; leave the segment detached until a read.
        try:
            memory.detach()
        except sysv_ipc.Error as exc:
            raise ChannelError(f"Failed to detach shared memory segment: {exc}") from exc
        return segment

    def create(self, key: int, capacity: int) -> OwnedSysVSegment:
        """Create the segment, or open it if it already exists."""

        try:
            memory = sysv_ipc.SharedMemory(
                key,
                sysv_ipc.IPC_CREAT,
                mode=SEGMENT_MODE,
                size=capacity,
                init_character=b"\0",
            )
        except (sysv_ipc.Error, ValueError) as exc:
            raise ChannelError(str(exc)) from exc
        segment = OwnedSysVSegment(memory)
        try:
            memory.detach()
        except sysv_ipc.Error as exc:
            with contextlib.suppress(sysv_ipc.Error):
                memory.remove()
            raise ChannelError(f"Failed to detach shared memory segment: {exc}") from exc
        return segment

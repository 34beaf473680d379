"""One-shot message retrieval over each open channel of a server.

Every channel is read at most once per call and never rewound; a failed or
empty read simply produces no message.
"""

from __future__ import annotations

import logging
from typing import List

from core.config import DEFAULT_SEGMENT_CAPACITY
from core.errors import ChannelError
from core.models import ChannelKind, ConnectionResult, RetrievedMessage

LOGGER = logging.getLogger(__name__)


def decode_payload(raw: bytes) -> str:
    """Interpret raw channel bytes as text up to the first NUL byte."""

    text, _, _ = raw.partition(b"\0")
    return text.decode("utf-8", errors="replace")


class MessageCollector:
    """Reads the memory channel, then the network channel, of one result."""

    def __init__(self, buffer_size: int = DEFAULT_SEGMENT_CAPACITY) -> None:
        self._buffer_size = buffer_size

    def collect(self, result: ConnectionResult) -> List[RetrievedMessage]:
        messages: List[RetrievedMessage] = []

        if result.memory_channel is not None:
            try:
                text = result.memory_channel.read_text()
            except ChannelError as exc:
                LOGGER.info("No memory message from %s: %s", result.handle_source_id, exc)
            else:
                messages.append(
                    RetrievedMessage(
                        handle_source_id=result.handle_source_id,
                        channel=ChannelKind.MEMORY,
                        text=text,
                    )
                )

        if result.network_channel is not None:
            try:
                raw = result.network_channel.recv(self._buffer_size)
            except OSError as exc:
                LOGGER.info("Error reading socket of %s: %s", result.handle_source_id, exc)
                raw = b""
            if raw:
                messages.append(
                    RetrievedMessage(
                        handle_source_id=result.handle_source_id,
                        channel=ChannelKind.NETWORK,
                        text=raw.decode("utf-8", errors="replace"),
                    )
                )
            else:
                LOGGER.debug("No network message from %s", result.handle_source_id)

        return messages

"""Dual-channel connection attempts for one advertised server.

Each channel is acquired independently; a failure on one never prevents the
other, and nothing here is allowed to abort a scan.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from core.config import DEFAULT_CONNECT_TIMEOUT
from core.errors import ChannelError
from core.models import ConnectionResult, HandleRecord
from core.ports import NetworkChannel, NetworkPort, ReadableSegment, SegmentPort

LOGGER = logging.getLogger(__name__)


class ChannelConnector:
    """Opens the network channel and locates the memory channel of a server."""

    def __init__(
        self,
        network: NetworkPort,
        segments: SegmentPort,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self._network = network
        self._segments = segments
        self._connect_timeout = connect_timeout
        self._cancel_event = cancel_event

    def connect(self, handle: Optional[HandleRecord], source_id: str) -> ConnectionResult:
        """Return a result for ``handle``; never raises.

        ``handle`` is ``None`` for a file that could not be parsed, which
        yields a result with both channels absent.
        """

        if handle is None:
            LOGGER.debug("Skipping channels for unparsed handle %s", source_id)
            return ConnectionResult(handle_source_id=source_id)

        return ConnectionResult(
            handle_source_id=source_id,
            network_channel=self._open_network(handle, source_id),
            memory_channel=self._locate_memory(handle, source_id),
        )

    def _open_network(self, handle: HandleRecord, source_id: str) -> Optional[NetworkChannel]:
        try:
            channel = self._network.connect(
                handle.network_address,
                handle.port,
                self._connect_timeout,
                self._cancel_event,
            )
        except ChannelError as exc:
            LOGGER.info(
                "Network channel absent for %s (%s:%s): %s",
                source_id,
                handle.network_address,
                handle.port,
                exc,
            )
            return None
        except Exception:
            # Unexpected adapter failures still only cost this one channel.
            LOGGER.exception("Unexpected network failure for %s", source_id)
            return None
        LOGGER.debug("Network channel open for %s", source_id)
        return channel

    def _locate_memory(self, handle: HandleRecord, source_id: str) -> Optional[ReadableSegment]:
        try:
            key = self._segments.derive_key(handle.shm_key_path, handle.shm_project_id)
            segment = self._segments.locate(key)
        except ChannelError as exc:
            LOGGER.info(
                "Memory channel absent for %s (%s:%s): %s",
                source_id,
                handle.shm_key_path,
                handle.shm_project_id,
                exc,
            )
            return None
        except Exception:
            LOGGER.exception("Unexpected segment lookup failure for %s", source_id)
            return None
        LOGGER.debug("Memory channel located for %s (segment %s)", source_id, segment.segment_id)
        return segment

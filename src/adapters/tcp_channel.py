"""TCP stream-socket adapter.

Implements the core NetworkPort with blocking sockets plus bounded readiness
waits. Waits are sliced so a cancel event can unblock them promptly.
"""

from __future__ import annotations

import errno
import logging
import select
import socket
import threading
import time
from typing import Optional

from core.errors import ChannelError

LOGGER = logging.getLogger(__name__)

# Upper bound on a single readiness wait so cancellation is noticed quickly.
WAIT_SLICE_SECONDS = 0.25


def _wait_ready(
    sock: socket.socket,
    timeout: float,
    *,
    readable: bool,
    cancel_event: Optional[threading.Event],
) -> bool:
    """Wait until ``sock`` is readable (or writable); False on timeout or cancel."""

    deadline = time.monotonic() + max(timeout, 0.0)
    while True:
        if cancel_event is not None and cancel_event.is_set():
            return False
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        slice_ = min(remaining, WAIT_SLICE_SECONDS)
        try:
            if readable:
                ready, _, _ = select.select([sock], [], [], slice_)
            else:
                _, ready, _ = select.select([], [sock], [], slice_)
        except (OSError, ValueError) as exc:
            raise ChannelError(f"Error occurred during select syscall: {exc}") from exc
        if ready:
            return True


class TcpNetwork:
    """Socket operations that satisfy the NetworkPort contract."""

    def connect(
        self,
        address: str,
        port: int,
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> socket.socket:
        """Return a connected blocking socket or raise ChannelError."""

        try:
            socket.inet_pton(socket.AF_INET, address)
        except OSError as exc:
            raise ChannelError(f"Invalid IP address: {address}") from exc

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as exc:
            raise ChannelError(f"Failed to create socket: {exc}") from exc

        try:
            sock.setblocking(False)
            code = sock.connect_ex((address, port))
            if code not in (0, errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EAGAIN):
                raise ChannelError(f"Failed to connect to the server: {errno.errorcode.get(code, code)}")
            if code != 0 and not _wait_ready(sock, timeout, readable=False, cancel_event=cancel_event):
                raise ChannelError("Connection timeout")
            sock.setblocking(True)
            pending = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
            if pending != 0:
                raise ChannelError(f"Failed to connect to the server: {errno.errorcode.get(pending, pending)}")
        except ChannelError:
            sock.close()
            raise
        except OSError as exc:
            sock.close()
            raise ChannelError(f"Failed to connect to the server: {exc}") from exc
        return sock

    def listen(self, port: int, backlog: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.bind(("0.0.0.0", port))
            sock.listen(backlog)
        except OSError:
            sock.close()
            raise
        return sock

    def bound_address(self, listener: socket.socket) -> tuple[str, int]:
        host, port = listener.getsockname()[:2]
        return str(host), int(port)

    def wait_for_client(
        self,
        listener: socket.socket,
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[socket.socket]:
        """Accept one client within ``timeout``; None when nobody connected."""

        if not _wait_ready(listener, timeout, readable=True, cancel_event=cancel_event):
            return None
        try:
            client, peer = listener.accept()
        except OSError as exc:
            raise ChannelError(f"Failed to accept connection: {exc}") from exc
        LOGGER.info("Accepted client %s:%s", peer[0], peer[1])
        return client

    def send_once(self, client: socket.socket, payload: bytes) -> int:
        """Issue exactly one send call and return the number of bytes written."""

        try:
            return client.send(payload)
        except OSError as exc:
            raise ChannelError(f"Failed to write message to socket: {exc}") from exc

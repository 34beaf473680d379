"""Server-side session lifecycle.

The session runs a fixed linear sequence:

1) Bind and listen on a stream socket
2) Create the shared-memory segment
3) Publish the handle record
4) Write the outgoing message into the segment
5) Wait (bounded) for one client and accept it
6) Send the outgoing socket message to that client, if any
7) Linger, then tear everything down

A failure in steps 1-4 is fatal: everything acquired so far is released and
the SessionSetupError propagates. Steps 5-6 only ever degrade. Teardown runs
every release step even when an earlier one fails.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from core.config import ServeConfig
from core.errors import ChannelError, SessionSetupError
from core.models import (
    HandleRecord,
    ServerSetupInfo,
    SessionOutcome,
    SessionResources,
    SessionState,
)
from core.ports import HandleStorePort, NetworkPort, SegmentPort

LOGGER = logging.getLogger(__name__)


class ServerSession:
    """Owns one listening socket, one segment, and one handle file."""

    def __init__(
        self,
        setup: ServerSetupInfo,
        config: ServeConfig,
        network: NetworkPort,
        segments: SegmentPort,
        handles: HandleStorePort,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self._setup = setup
        self._config = config
        self._network = network
        self._segments = segments
        self._handles = handles
        self._cancel_event = cancel_event or threading.Event()
        self._resources = SessionResources()
        self._states: List[SessionState] = [SessionState.INIT]
        self._bytes_sent = 0
        self._published = threading.Event()

    @property
    def state(self) -> SessionState:
        return self._states[-1]

    @property
    def resources(self) -> SessionResources:
        return self._resources

    def wait_until_published(self, timeout: Optional[float] = None) -> bool:
        """Block until the handle file exists (or the session failed)."""

        return self._published.wait(timeout)

    def run(self) -> SessionOutcome:
        try:
            self._bind()
            self._create_segment()
            self._publish_handle()
            self._write_segment()
        except SessionSetupError:
            LOGGER.error("Session setup failed in state %s", self.state.value)
            self.teardown()
            raise
        finally:
            # Unblock waiters whether setup succeeded or not.
            self._published.set()

        try:
            if self._accept():
                self._send()
            self._linger()
        finally:
            errors = self.teardown()

        return SessionOutcome(
            final_state=self.state,
            states_visited=tuple(self._states),
            client_accepted=SessionState.CLIENT_ACCEPTED in self._states,
            bytes_sent=self._bytes_sent,
            teardown_errors=tuple(errors),
        )

    def _enter(self, state: SessionState) -> None:
        self._states.append(state)
        LOGGER.debug("Session state -> %s", state.value)

    def _bind(self) -> None:
        try:
            listener = self._network.listen(self._setup.listen_port_hint, self._config.backlog)
        except Exception as exc:
            raise SessionSetupError("bind", f"Failed to bind socket: {exc}") from exc
        self._resources.listening_socket = listener
        self._enter(SessionState.SOCKET_BOUND)
        LOGGER.info("Server listening (port hint %s)", self._setup.listen_port_hint)

    def _create_segment(self) -> None:
        try:
            key = self._segments.derive_key(self._setup.shm_key_path, self._setup.shm_project_id)
            segment = self._segments.create(key, self._config.segment_capacity)
        except Exception as exc:
            raise SessionSetupError(
                "segment", f"Failed to create/open shared memory segment: {exc}"
            ) from exc
        self._resources.segment = segment
        self._enter(SessionState.SEGMENT_CREATED)
        LOGGER.info("Shared memory id: %s", segment.segment_id)

    def _publish_handle(self) -> None:
        try:
            address, port = self._network.bound_address(self._resources.listening_socket)
            record = HandleRecord(
                network_address=address,
                port=port,
                shm_key_path=self._setup.shm_key_path,
                shm_project_id=self._setup.shm_project_id,
            )
            path = self._handles.write(
                self._setup.handle_output_directory,
                self._setup.handle_output_name,
                record,
            )
        except Exception as exc:
            raise SessionSetupError("publish", f"Failed to write handle file: {exc}") from exc
        self._resources.published_handle_path = path
        self._enter(SessionState.HANDLE_PUBLISHED)
        LOGGER.info("Published handle %s (%s:%s)", path, address, port)

    def _write_segment(self) -> None:
        try:
            self._resources.segment.write_text(self._config.shm_message)
        except Exception as exc:
            raise SessionSetupError(
                "segment_write", f"Failed to write shared memory segment: {exc}"
            ) from exc
        self._enter(SessionState.SEGMENT_WRITTEN)

    def _accept(self) -> bool:
        try:
            client = self._network.wait_for_client(
                self._resources.listening_socket,
                self._config.accept_timeout,
                self._cancel_event,
            )
        except ChannelError as exc:
            LOGGER.warning("No client accepted: %s", exc)
            client = None

        if client is None:
            LOGGER.info("No incoming connection before the accept timeout")
            self._enter(SessionState.ACCEPT_TIMED_OUT)
            return False

        self._resources.accepted_client_socket = client
        self._enter(SessionState.CLIENT_ACCEPTED)
        return True

    def _send(self) -> None:
        payload = self._config.socket_message.encode("utf-8")
        try:
            sent = self._network.send_once(self._resources.accepted_client_socket, payload)
        except (ChannelError, OSError) as exc:
            LOGGER.warning("Failed to write message to socket: %s", exc)
            return
        self._bytes_sent = sent
        if sent != len(payload):
            LOGGER.warning("Incomplete write to socket (%s of %s bytes)", sent, len(payload))
        self._enter(SessionState.SOCKET_WRITTEN)

    def _linger(self) -> None:
        if self._config.linger_seconds <= 0:
            return
        if self._cancel_event.wait(self._config.linger_seconds):
            LOGGER.info("Linger cancelled")

    def teardown(self) -> List[str]:
        """Release every acquired resource; safe to call more than once.

        Returns a description of each release step that failed.
        """

        errors: List[str] = []
        resources = self._resources

        if resources.segment is not None:
            segment, resources.segment = resources.segment, None
            try:
                segment.destroy()
            except Exception as exc:
                LOGGER.exception("Failed to delete shared memory segment")
                errors.append(f"Failed to delete shared memory segment: {exc}")

        for attribute, description in (
            ("accepted_client_socket", "client socket"),
            ("listening_socket", "server socket"),
        ):
            sock = getattr(resources, attribute)
            if sock is None:
                continue
            setattr(resources, attribute, None)
            try:
                sock.close()
            except Exception as exc:
                LOGGER.exception("Failed to close %s", description)
                errors.append(f"Failed to close {description}: {exc}")

        if resources.published_handle_path is not None:
            path, resources.published_handle_path = resources.published_handle_path, None
            try:
                self._handles.delete(path)
            except Exception as exc:
                LOGGER.exception("Failed to delete the file: %s", path)
                errors.append(f"Failed to delete the file: {path}: {exc}")

        if self.state is not SessionState.TORN_DOWN:
            self._enter(SessionState.TORN_DOWN)
            LOGGER.info("Session shut down (%s teardown error(s))", len(errors))
        return errors

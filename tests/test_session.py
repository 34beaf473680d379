from __future__ import annotations

from typing import Optional

import pytest

from core.config import ServeConfig
from core.errors import ChannelError, SessionSetupError
from core.models import HandleRecord, ServerSetupInfo, SessionState
from core.session import ServerSession


class FakeSock:
    def __init__(self, name: str, fail_close: bool = False) -> None:
        self.name = name
        self.closed = False
        self._fail_close = fail_close

    def close(self) -> None:
        if self._fail_close:
            raise OSError("close failed")
        self.closed = True


class FakeNetwork:
    def __init__(
        self,
        *,
        fail_listen: bool = False,
        client: Optional[FakeSock] = None,
        wait_error: bool = False,
        wait_exception: Optional[Exception] = None,
        short_send: bool = False,
        listener: Optional[FakeSock] = None,
    ) -> None:
        self._fail_listen = fail_listen
        self._client = client
        self._wait_error = wait_error
        self._wait_exception = wait_exception
        self._short_send = short_send
        self.listener = listener or FakeSock("listener")
        self.sent: list[bytes] = []

    def listen(self, port: int, backlog: int) -> FakeSock:
        if self._fail_listen:
            raise OSError("address in use")
        return self.listener

    def bound_address(self, listener) -> tuple[str, int]:
        return "0.0.0.0", 40123

    def wait_for_client(self, listener, timeout, cancel_event=None):
        if self._wait_exception is not None:
            raise self._wait_exception
        if self._wait_error:
            raise ChannelError("Failed to accept connection")
        return self._client

    def send_once(self, client, payload: bytes) -> int:
        self.sent.append(payload)
        return len(payload) - 1 if self._short_send else len(payload)


class FakeOwnedSegment:
    def __init__(self, capacity: int, fail_write: bool, fail_destroy: bool) -> None:
        self.segment_id = 99
        self.capacity = capacity
        self.text: Optional[str] = None
        self.destroyed = False
        self._fail_write = fail_write
        self._fail_destroy = fail_destroy

    def write_text(self, text: str) -> None:
        if self._fail_write:
            raise ChannelError("Failed to attach shared memory segment")
        self.text = text

    def destroy(self) -> None:
        if self._fail_destroy:
            raise OSError("segment busy")
        self.destroyed = True


class FakeSegments:
    def __init__(self, *, fail_create=False, fail_write=False, fail_destroy=False) -> None:
        self._fail_create = fail_create
        self._fail_write = fail_write
        self._fail_destroy = fail_destroy
        self.created: Optional[FakeOwnedSegment] = None

    def derive_key(self, key_path: str, project_id: int) -> int:
        return project_id

    def create(self, key: int, capacity: int) -> FakeOwnedSegment:
        if self._fail_create:
            raise ChannelError("no space")
        self.created = FakeOwnedSegment(capacity, self._fail_write, self._fail_destroy)
        return self.created


class FakeHandles:
    def __init__(self, fail_write: bool = False, write_error: Optional[Exception] = None) -> None:
        self._fail_write = fail_write
        self._write_error = write_error
        self.files: dict[str, HandleRecord] = {}

    def write(self, directory: str, name: str, record: HandleRecord) -> str:
        if self._write_error is not None:
            raise self._write_error
        if self._fail_write:
            raise OSError("read-only directory")
        path = f"{directory}/{name}"
        self.files[path] = record
        return path

    def delete(self, path: str) -> None:
        del self.files[path]


SETUP = ServerSetupInfo(
    listen_port_hint=0,
    shm_key_path="/tmp",
    shm_project_id=42,
    handle_output_directory="/handles",
    handle_output_name="server-1",
)
CONFIG = ServeConfig(shm_message="A", socket_message="hello", accept_timeout=0.1, linger_seconds=0)


def _session(network, segments, handles) -> ServerSession:
    return ServerSession(SETUP, CONFIG, network, segments, handles)


def test_full_session_with_client() -> None:
    client = FakeSock("client")
    network = FakeNetwork(client=client)
    segments = FakeSegments()
    handles = FakeHandles()
    session = _session(network, segments, handles)

    outcome = session.run()

    assert outcome.states_visited == (
        SessionState.INIT,
        SessionState.SOCKET_BOUND,
        SessionState.SEGMENT_CREATED,
        SessionState.HANDLE_PUBLISHED,
        SessionState.SEGMENT_WRITTEN,
        SessionState.CLIENT_ACCEPTED,
        SessionState.SOCKET_WRITTEN,
        SessionState.TORN_DOWN,
    )
    assert outcome.client_accepted
    assert outcome.bytes_sent == 5
    assert network.sent == [b"hello"]
    assert segments.created.text == "A"
    assert segments.created.destroyed
    assert client.closed and network.listener.closed
    assert handles.files == {}
    assert outcome.teardown_errors == ()


def test_published_record_uses_bound_port() -> None:
    handles = FakeHandles()
    records: list[HandleRecord] = []
    original_delete = handles.delete

    def capture_then_delete(path: str) -> None:
        records.append(handles.files[path])
        original_delete(path)

    handles.delete = capture_then_delete
    _session(FakeNetwork(), FakeSegments(), handles).run()

    assert records == [HandleRecord("0.0.0.0", 40123, "/tmp", 42)]


def test_accept_timeout_is_not_fatal() -> None:
    network = FakeNetwork(client=None)
    outcome = _session(network, FakeSegments(), FakeHandles()).run()

    assert SessionState.ACCEPT_TIMED_OUT in outcome.states_visited
    assert not outcome.client_accepted
    assert network.sent == []
    assert outcome.final_state is SessionState.TORN_DOWN


def test_accept_error_is_treated_as_timeout() -> None:
    outcome = _session(FakeNetwork(wait_error=True), FakeSegments(), FakeHandles()).run()

    assert SessionState.ACCEPT_TIMED_OUT in outcome.states_visited


def test_short_write_is_logged_and_session_continues() -> None:
    network = FakeNetwork(client=FakeSock("client"), short_send=True)
    outcome = _session(network, FakeSegments(), FakeHandles()).run()

    assert outcome.bytes_sent == 4
    assert outcome.final_state is SessionState.TORN_DOWN


def test_bind_failure_is_fatal_with_nothing_to_release() -> None:
    session = _session(FakeNetwork(fail_listen=True), FakeSegments(), FakeHandles())

    with pytest.raises(SessionSetupError) as info:
        session.run()

    assert info.value.stage == "bind"
    assert session.state is SessionState.TORN_DOWN


def test_segment_failure_releases_socket() -> None:
    network = FakeNetwork()
    session = _session(network, FakeSegments(fail_create=True), FakeHandles())

    with pytest.raises(SessionSetupError) as info:
        session.run()

    assert info.value.stage == "segment"
    assert network.listener.closed


def test_publish_failure_releases_socket_and_segment() -> None:
    network = FakeNetwork()
    segments = FakeSegments()
    session = _session(network, segments, FakeHandles(fail_write=True))

    with pytest.raises(SessionSetupError):
        session.run()

    assert network.listener.closed
    assert segments.created.destroyed
    assert session.resources.published_handle_path is None


def test_segment_write_failure_releases_everything() -> None:
    network = FakeNetwork()
    segments = FakeSegments(fail_write=True)
    handles = FakeHandles()
    session = _session(network, segments, handles)

    with pytest.raises(SessionSetupError) as info:
        session.run()

    assert info.value.stage == "segment_write"
    assert network.listener.closed
    assert segments.created.destroyed
    assert handles.files == {}


def test_teardown_continues_after_a_failed_step() -> None:
    network = FakeNetwork(listener=FakeSock("listener", fail_close=True))
    segments = FakeSegments(fail_destroy=True)
    handles = FakeHandles()

    outcome = _session(network, segments, handles).run()

    assert len(outcome.teardown_errors) == 2
    assert handles.files == {}
    assert outcome.final_state is SessionState.TORN_DOWN


def test_teardown_is_idempotent() -> None:
    session = _session(FakeNetwork(), FakeSegments(), FakeHandles())
    session.run()

    assert session.teardown() == []
    assert session.state is SessionState.TORN_DOWN


def test_unexpected_publish_error_releases_socket_and_segment() -> None:
    network = FakeNetwork()
    segments = FakeSegments()
    session = _session(network, segments, FakeHandles(write_error=ValueError("embedded null byte")))

    with pytest.raises(SessionSetupError) as info:
        session.run()

    assert info.value.stage == "publish"
    assert network.listener.closed
    assert segments.created.destroyed
    assert session.state is SessionState.TORN_DOWN


def test_error_after_setup_still_tears_down() -> None:
    network = FakeNetwork(wait_exception=RuntimeError("selector exploded"))
    segments = FakeSegments()
    handles = FakeHandles()
    session = _session(network, segments, handles)

    with pytest.raises(RuntimeError):
        session.run()

    assert network.listener.closed
    assert segments.created.destroyed
    assert handles.files == {}
    assert session.state is SessionState.TORN_DOWN

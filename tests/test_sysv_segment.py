from __future__ import annotations

import pytest

from adapters.sysv_segment import SysVSegments
from core.errors import ChannelError


@pytest.fixture
def key_path(tmp_path):
    path = tmp_path / "shm-key"
    path.write_text("", encoding="utf-8")
    return str(path)


@pytest.fixture
def owned(key_path):
    segments = SysVSegments()
    segment = segments.create(segments.derive_key(key_path, 42), 64)
    yield segment
    try:
        segment.destroy()
    except Exception:
        pass


def test_derive_key_is_deterministic(key_path) -> None:
    segments = SysVSegments()

    assert segments.derive_key(key_path, 7) == segments.derive_key(key_path, 7)
    assert segments.derive_key(key_path, 7) != segments.derive_key(key_path, 8)


def test_derive_key_missing_path_is_channel_error(tmp_path) -> None:
    with pytest.raises(ChannelError):
        SysVSegments().derive_key(str(tmp_path / "missing"), 1)


def test_locate_without_segment_is_channel_error(key_path) -> None:
    segments = SysVSegments()

    with pytest.raises(ChannelError):
        segments.locate(segments.derive_key(key_path, 99))


def test_reader_sees_written_text(key_path, owned) -> None:
    owned.write_text("status ok")
    segments = SysVSegments()

    reader = segments.locate(segments.derive_key(key_path, 42))

    assert reader.segment_id == owned.segment_id
    assert reader.read_text() == "status ok"


def test_write_truncates_to_capacity(key_path, owned) -> None:
    owned.write_text("x" * 500)
    segments = SysVSegments()

    text = segments.locate(segments.derive_key(key_path, 42)).read_text()

    assert text == "x" * (owned.capacity - 1)


def test_reading_never_destroys_the_segment(key_path, owned) -> None:
    owned.write_text("A")
    segments = SysVSegments()
    key = segments.derive_key(key_path, 42)

    assert segments.locate(key).read_text() == "A"
    # A second reader still finds and reads it.
    assert segments.locate(key).read_text() == "A"


def test_destroy_makes_segment_unlocatable(key_path, owned) -> None:
    segments = SysVSegments()
    key = segments.derive_key(key_path, 42)

    owned.destroy()

    with pytest.raises(ChannelError):
        segments.locate(key)

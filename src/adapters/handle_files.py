"""Handle file storage adapter.

Implements the core HandleStorePort with plain four-line text files:

    line 1: network address
    line 2: port
    line 3: shared-memory key path
    line 4: shared-memory project id
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional

from core.errors import HandleFormatError
from core.models import HandleRecord

LOGGER = logging.getLogger(__name__)

HANDLE_LINE_COUNT = 4


def parse_handle(text: str) -> HandleRecord:
    """Parse the four-line handle format, raising HandleFormatError otherwise."""

    lines = text.splitlines()
    if len(lines) != HANDLE_LINE_COUNT:
        raise HandleFormatError(f"expected {HANDLE_LINE_COUNT} lines, got {len(lines)}")
    address, port_raw, key_path, project_raw = lines
    try:
        port = int(port_raw.strip())
        project_id = int(project_raw.strip())
    except ValueError as exc:
        raise HandleFormatError(f"numeric field does not parse: {exc}") from exc
    if not 0 <= port <= 65535:
        raise HandleFormatError(f"port out of range: {port}")
    return HandleRecord(
        network_address=address.strip(),
        port=port,
        shm_key_path=key_path,
        shm_project_id=project_id,
    )


def format_handle(record: HandleRecord) -> str:
    return (
        f"{record.network_address}\n"
        f"{record.port}\n"
        f"{record.shm_key_path}\n"
        f"{record.shm_project_id}\n"
    )


class HandleFileStore:
    """Filesystem store that satisfies the HandleStorePort contract."""

    def list_handle_paths(self, directory: str) -> List[str]:
        """Return the regular files directly inside ``directory``, sorted.

        Raises OSError when the directory cannot be opened.
        """

        paths: List[str] = []
        with os.scandir(directory) as entries:
            for entry in entries:
                if entry.is_file(follow_symlinks=False):
                    paths.append(os.path.join(directory, entry.name))
        return sorted(paths)

    def read(self, path: str) -> Optional[HandleRecord]:
        """Return the parsed record, or None for unreadable or malformed files."""

        try:
            with open(path, "r", encoding="utf-8") as handle:
                text = handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.debug("Failed to open handle file %s: %s", path, exc)
            return None
        try:
            return parse_handle(text)
        except HandleFormatError as exc:
            LOGGER.debug("Malformed handle file %s: %s", path, exc)
            return None

    def write(self, directory: str, name: str, record: HandleRecord) -> str:
        """Write ``record`` to ``directory/name`` and return its path."""

        path = os.path.join(directory, name)
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(format_handle(record))
        return path

    def delete(self, path: str) -> None:
        os.remove(path)

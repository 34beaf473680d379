"""Discovery of advertised servers from a handle directory."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List

from core.connector import ChannelConnector
from core.errors import ScanDirectoryError
from core.models import ConnectionResult
from core.ports import HandleStorePort

LOGGER = logging.getLogger(__name__)


class ServerRegistry:
    """Turns every handle file in a directory into a ConnectionResult.

    Probes run sequentially unless ``max_workers`` is greater than one. The
    returned list is always sorted by source path, never by completion order.
    """

    def __init__(
        self,
        handle_store: HandleStorePort,
        connector: ChannelConnector,
        max_workers: int = 1,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._handles = handle_store
        self._connector = connector
        self._max_workers = max_workers

    def scan(self, directory: str) -> List[ConnectionResult]:
        try:
            paths = self._handles.list_handle_paths(directory)
        except OSError as exc:
            raise ScanDirectoryError(f"Invalid directory path: {directory}") from exc

        LOGGER.info("Discovered %s handle file(s) in %s", len(paths), directory)
        if self._max_workers == 1 or len(paths) <= 1:
            results = [self._probe(path) for path in paths]
        else:
            workers = min(self._max_workers, len(paths))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="probe") as pool:
                results = list(pool.map(self._probe, paths))

        results.sort(key=lambda result: result.handle_source_id)
        return results

    def _probe(self, path: str) -> ConnectionResult:
        handle = self._handles.read(path)
        if handle is None:
            LOGGER.info("Handle file %s is not a well-formed record", path)
        return self._connector.connect(handle, path)

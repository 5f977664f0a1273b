# icofile/utils/icon_cache.py

import logging
import os
import threading
from collections import OrderedDict
from typing import Optional, Tuple

from ..core.decode_options import DecodeOptions
from ..core.ico_base import IconDirectory
from ..core.ico_parser import parse

logger = logging.getLogger(__name__)


class IconCache:
    """
    Optional LRU cache of parsed icon files keyed by path.
    An entry is reused only while the file's mtime and size are unchanged;
    evicted or stale entries are re-parsed from the file.
    """

    def __init__(self, max_entries: int = 32, options: Optional[DecodeOptions] = None):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.options = options
        self._entries: "OrderedDict[str, Tuple[Tuple[int, int], IconDirectory]]" = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def _stamp(path: str) -> Tuple[int, int]:
        st = os.stat(path)
        return st.st_mtime_ns, st.st_size

    def get(self, path) -> IconDirectory:
        key = os.path.abspath(os.fspath(path))
        stamp = self._stamp(key)
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None and cached[0] == stamp:
                self._entries.move_to_end(key)
                return cached[1]

        logger.debug("Cache miss for %s", key)
        directory = parse(key, self.options)
        with self._lock:
            self._entries[key] = (stamp, directory)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted %s", evicted)
        return directory

    def evict(self, path) -> bool:
        key = os.path.abspath(os.fspath(path))
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __contains__(self, path):
        key = os.path.abspath(os.fspath(path))
        with self._lock:
            return key in self._entries

    def __len__(self):
        with self._lock:
            return len(self._entries)

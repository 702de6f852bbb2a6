"""
Persistent, capped scrobble cache.

- Stores scrobbles that could not be submitted on disk (JSON file) so plays survive network errors and restarts.
- Enforces a max length (SCROBBLE_CACHE_LIMIT); the oldest entry is dropped when full.
- API: enqueue(), requeue(), drain_iter(), size().
"""

from __future__ import annotations
import json
import logging
import os
import threading
from collections import deque
from typing import Deque, Dict, Iterator, Any

log = logging.getLogger("scrobble_queue")


class ScrobbleQueue:
    def __init__(self, path: str, maxlen: int = 500):
        if maxlen < 1:
            raise ValueError("maxlen must be >= 1")
        self.path = path
        self.maxlen = maxlen
        self._lock = threading.Lock()
        self._q: Deque[Dict[str, Any]] = deque(maxlen=maxlen)
        self._load()

    # -------- persistence --------
    def _load(self) -> None:
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            if not os.path.isfile(self.path):
                return
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            log.warning("Scrobble cache %s unreadable, starting empty: %s", self.path, e)
            return
        if isinstance(data, list):
            self._q.extend(item for item in data[-self.maxlen:] if isinstance(item, dict))

    def _save(self) -> None:
        # Write atomically to avoid corruption
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(list(self._q), f, ensure_ascii=False)
        os.replace(tmp, self.path)

    # -------- public API --------
    def enqueue(self, item: Dict[str, Any]) -> None:
        with self._lock:
            if len(self._q) == self.maxlen:
                dropped = self._q.popleft()
                log.warning("Scrobble cache full (%s); dropping oldest: %s", self.maxlen, dropped)
            self._q.append(item)
            self._save()

    def requeue(self, item: Dict[str, Any]) -> None:
        """Put an item taken by drain_iter() back at the front."""
        with self._lock:
            if len(self._q) == self.maxlen:
                return
            self._q.appendleft(item)
            self._save()

    def drain_iter(self) -> Iterator[Dict[str, Any]]:
        """
        Pops items from the left (oldest-first) one by one,
        saving after each pop so we don't lose progress.
        """
        while True:
            with self._lock:
                if not self._q:
                    return
                item = self._q.popleft()
                self._save()
            yield item

    def size(self) -> int:
        with self._lock:
            return len(self._q)

# In-memory response cache for stage outputs.
# Keys are (stage, normalized input); entries live for the process lifetime
# unless max_entries is set, which switches on LRU eviction.

from __future__ import annotations

import re
import threading
from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple

_WS = re.compile(r"\s+")


def normalize(text: str) -> str:
    return _WS.sub(" ", (text or "").strip())


class ResponseCache:
    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries
        self._data: "OrderedDict[Tuple[str, str], Any]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, stage: str, text: str) -> Optional[Any]:
        key = (stage, normalize(text))
        with self._lock:
            if key not in self._data:
                self.misses += 1
                return None
            self.hits += 1
            self._data.move_to_end(key)
            return self._data[key]

    def put(self, stage: str, text: str, value: Any) -> None:
        key = (stage, normalize(text))
        with self._lock:
            self._data[key] = value
            self._data.move_to_end(key)
            if self.max_entries is not None:
                while len(self._data) > self.max_entries:
                    self._data.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        return len(self._data)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"entries": len(self._data), "hits": self.hits, "misses": self.misses}

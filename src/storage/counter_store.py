import threading
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional


class PopularityCounterStore(ABC):
    """
    Template popularity counters.

    ``increment`` must be atomic: concurrent usage logging never loses an
    update.
    """

    @abstractmethod
    def increment(self, template_id: str, amount: int = 1) -> int:
        """
        Add ``amount`` to the counter and return the new value.
        """

    @abstractmethod
    def get(self, template_id: str) -> int:
        ...

    def snapshot(self) -> Dict[str, int]:
        return {}


class InMemoryPopularityCounterStore(PopularityCounterStore):
    """
    Lock-protected in-process counters.

    Example:
        >>> store = InMemoryPopularityCounterStore({"1": 42})
        >>> store.increment("1")
        43
    """

    def __init__(self, initial: Optional[Mapping[str, int]] = None):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {
            str(k): int(v) for k, v in (initial or {}).items()
        }

    def increment(self, template_id: str, amount: int = 1) -> int:
        if amount < 0:
            raise ValueError("popularity can only grow")
        key = str(template_id)
        with self._lock:
            self._counts[key] = self._counts.get(key, 0) + amount
            return self._counts[key]

    def get(self, template_id: str) -> int:
        with self._lock:
            return self._counts.get(str(template_id), 0)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)

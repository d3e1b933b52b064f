"""Order-preserving result sink.

Workers complete identifiers in any order; the collector writes each Result
into the slot of its identifier's original position, so finalize() always
returns results in input order.

Duplicate identifiers: the first occurrence owns the slot and is the only one
scheduled. At finalize() every later occurrence receives a copy of that
Result, so the output has one entry per input row.
"""

import threading
from typing import Dict, Iterable, List, Optional

from ..models import Result


class IncompleteResultsError(RuntimeError):
    """finalize() was called while some identifiers still had no Result."""


class ResultCollector:
    """Thread-safe, pre-sized sink for Results."""

    def __init__(self, identifiers: Iterable[str]):
        self._inputs: List[str] = list(identifiers)
        # read-only after construction
        self._index: Dict[str, int] = {}
        for position, identifier in enumerate(self._inputs):
            self._index.setdefault(identifier, position)
        self._slots: List[Optional[Result]] = [None] * len(self._inputs)
        self._lock = threading.Lock()

    @property
    def identifiers(self) -> List[str]:
        """Distinct identifiers in first-occurrence order; the work list of a run."""
        return list(self._index)

    def __len__(self) -> int:
        return len(self._inputs)

    def record(self, result: Result) -> bool:
        """Store a Result in its identifier's slot.

        Returns:
            False if the identifier already had a Result (the first one is kept).

        Raises:
            KeyError: If the identifier is not part of the input.
        """
        position = self._index[result.identifier]
        with self._lock:
            if self._slots[position] is not None:
                return False
            self._slots[position] = result
            return True

    def get(self, identifier: str) -> Optional[Result]:
        with self._lock:
            return self._slots[self._index[identifier]]

    def pending(self) -> List[str]:
        """Distinct identifiers still waiting for a Result."""
        with self._lock:
            return [identifier for identifier, position in self._index.items() if self._slots[position] is None]

    def is_complete(self) -> bool:
        return not self.pending()

    def finalize(self) -> List[Result]:
        """Results in input order, one per input row.

        Raises:
            IncompleteResultsError: If an identifier has no Result yet.
        """
        with self._lock:
            missing = [i for i, position in self._index.items() if self._slots[position] is None]
            if missing:
                raise IncompleteResultsError(f"{len(missing)} identifiers have no result yet")
            return [self._slots[self._index[identifier]] for identifier in self._inputs]

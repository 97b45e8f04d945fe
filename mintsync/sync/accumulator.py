"""
Reconciliation accumulator - per-offer and per-product sold-copy deltas.
"""

from collections import Counter
from typing import Hashable, List, Tuple


class ReconciliationAccumulator:
    """
    Counts sales per key for one pass.

    Not shared between concurrent handlers: each handler returns its own
    resolution and the reduce step records them here after the fan-out.
    """

    def __init__(self):
        self._counts: Counter = Counter()

    def record_sale(self, key: Hashable, count: int = 1) -> None:
        if count < 0:
            raise ValueError("sale counts never decrease")
        self._counts[key] += count

    def count(self, key: Hashable) -> int:
        return self._counts.get(key, 0)

    def flush(self) -> List[Tuple[Hashable, int]]:
        """Return and clear the accumulated ``(key, count)`` pairs."""
        pending = [(key, count) for key, count in self._counts.items() if count > 0]
        self._counts.clear()
        return pending


"""Bookkeeping of outstanding resolve operations of a single Finding."""

from typing import Hashable, Iterator


class ResolutionTracker:
    """
    Set of pending resolve operations.

    Completion always removes the operation first; the caller then decides
    whether to act. A completion for an operation not in the set is a
    stale or duplicate callback.
    """

    def __init__(self) -> None:
        self._pending: list[Hashable] = []

    def begin(self, op: Hashable) -> None:
        if op not in self._pending:
            self._pending.append(op)

    def complete(self, op: Hashable) -> tuple[bool, bool]:
        """
        Mark an operation as completed.

        Returns:
            (was_pending, now_empty). If was_pending is False the event
            must be ignored.
        """
        try:
            self._pending.remove(op)
        except ValueError:
            return False, not self._pending
        return True, not self._pending

    def clear(self) -> list[Hashable]:
        """Drop all pending operations and return them."""
        ops, self._pending = self._pending, []
        return ops

    @property
    def pending(self) -> int:
        return len(self._pending)

    def __contains__(self, op: object) -> bool:
        return op in self._pending

    def __iter__(self) -> Iterator[Hashable]:
        return iter(list(self._pending))

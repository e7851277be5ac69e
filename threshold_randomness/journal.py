"""
Undo journal for engine state.

Every engine operation is all-or-nothing. Instead of copying whole tables
before each call, mutating code goes through the helpers below, which apply
the change and push an undo closure. ``atomic()`` marks a savepoint; if the
block raises, the log is unwound back to that mark and the exception
propagates. Savepoints nest, so a callback running inside ``fulfill`` can be
rolled back on its own while the verification and accounting updates made
before it stay in place.

Outside any ``atomic()`` block the helpers mutate without recording.

    j = Journal()
    with j.atomic():
        j.set_add(unfulfilled, 7)
        j.assign(sub, "balance", sub.balance - 10)
        raise RuntimeError  # both changes are undone

The journal is not threadsafe on its own; the engine serialises access with
its lock.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, MutableMapping, MutableSet

logger = logging.getLogger(__name__)

Undo = Callable[[], None]

_MISSING = object()


class Journal:
    def __init__(self) -> None:
        self._undo: List[Undo] = []
        self._depth = 0

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def __len__(self) -> int:
        return len(self._undo)

    # ------------------------------------------------------------------ #
    # Savepoints
    # ------------------------------------------------------------------ #

    @contextmanager
    def atomic(self) -> Iterator["Journal"]:
        mark = len(self._undo)
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._rollback_to(mark)
            raise
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._undo.clear()

    def _rollback_to(self, mark: int) -> None:
        n = len(self._undo) - mark
        while len(self._undo) > mark:
            self._undo.pop()()
        if n:
            logger.debug("journal: rolled back %d change(s) (depth=%d)", n, self._depth)

    def record(self, undo: Undo) -> None:
        if self._depth:
            self._undo.append(undo)

    # ------------------------------------------------------------------ #
    # Mutation helpers
    # ------------------------------------------------------------------ #

    def assign(self, obj: Any, name: str, value: Any) -> None:
        old = getattr(obj, name)
        setattr(obj, name, value)
        self.record(lambda: setattr(obj, name, old))

    def set_add(self, s: MutableSet[Any], item: Any) -> None:
        if item in s:
            return
        s.add(item)
        self.record(lambda: s.discard(item))

    def set_discard(self, s: MutableSet[Any], item: Any) -> None:
        if item not in s:
            return
        s.discard(item)
        self.record(lambda: s.add(item))

    def put(self, d: MutableMapping[Any, Any], key: Any, value: Any) -> None:
        old = d.get(key, _MISSING)
        d[key] = value
        if old is _MISSING:
            self.record(lambda: d.pop(key, None))
        else:
            self.record(lambda: d.__setitem__(key, old))

    def pop(self, d: MutableMapping[Any, Any], key: Any) -> Any:
        if key not in d:
            return None
        old = d.pop(key)
        self.record(lambda: d.__setitem__(key, old))
        return old

    def append(self, lst: List[Any], item: Any) -> None:
        lst.append(item)
        self.record(lst.pop)

    def remove(self, lst: List[Any], item: Any) -> None:
        idx = lst.index(item)
        del lst[idx]
        self.record(lambda: lst.insert(idx, item))


__all__ = ["Journal"]

"""Loop iteration metadata for ``@for`` blocks."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any


class LoopContext:
    """Loop state accessible as ``loop`` inside ``@for`` blocks.

    The iterable is materialized up front so size-dependent values
    (``last``, ``length``, ``revindex``) are available. Mappings iterate
    over their items, so ``@for((key, value) in data)`` works directly.
    ``None`` and undefined values iterate as empty.

    Properties:
        index: 1-based iteration count (1, 2, 3, ...)
        index0: 0-based iteration count (0, 1, 2, ...)
        first / last: Boundary flags
        odd / even: Parity of ``index``
        length: Total number of items
        revindex / revindex0: Reverse counts down to 1 / 0
        previtem / nextitem: Neighbouring items, None at the edges
        parent: The enclosing loop's context, if any

    Example:
        ```
        @for(item in items)
            <li class="{{ loop.cycle('odd', 'even') }}">{{ loop.index }}: {{ item }}</li>
        @empty
            <li>Nothing here</li>
        @end
        ```
    """

    __slots__ = ("_index", "_items", "_length", "parent")

    def __init__(self, items: Iterable[Any] | None, parent: Any = None) -> None:
        if items is None:
            materialized: list[Any] = []
        elif isinstance(items, Mapping):
            materialized = list(items.items())
        else:
            materialized = list(items)
        self._items = materialized
        self._length = len(materialized)
        self._index = 0
        self.parent = parent if isinstance(parent, LoopContext) else None

    def __iter__(self) -> Iterator[Any]:
        for i, item in enumerate(self._items):
            self._index = i
            yield item

    def __len__(self) -> int:
        return self._length

    def __bool__(self) -> bool:
        return self._length > 0

    @property
    def index(self) -> int:
        return self._index + 1

    @property
    def index0(self) -> int:
        return self._index

    @property
    def first(self) -> bool:
        return self._index == 0

    @property
    def last(self) -> bool:
        return self._index == self._length - 1

    @property
    def odd(self) -> bool:
        return self.index % 2 == 1

    @property
    def even(self) -> bool:
        return self.index % 2 == 0

    @property
    def length(self) -> int:
        return self._length

    @property
    def revindex(self) -> int:
        return self._length - self._index

    @property
    def revindex0(self) -> int:
        return self._length - self._index - 1

    @property
    def previtem(self) -> Any:
        if self._index == 0:
            return None
        return self._items[self._index - 1]

    @property
    def nextitem(self) -> Any:
        if self._index >= self._length - 1:
            return None
        return self._items[self._index + 1]

    def cycle(self, *values: Any) -> Any:
        """Return ``values[index0 % len(values)]``, or None without values."""
        if not values:
            return None
        return values[self._index % len(values)]

    def __repr__(self) -> str:
        return f"<LoopContext {self.index}/{self.length}>"

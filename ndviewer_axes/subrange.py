"""Textual axis sub-range definitions.

A definition is one or more comma separated terms:

- ``"1"``: plane 1
- ``"3,5"``: planes 3 and 5
- ``"1-10"``: planes 1 through 10
- ``"1-10-2,20-30-3"``: planes 1 through 10 by 2 and 20 through 30 by 3
- ``"1,3-5,12-60-6"``: each kind of term can be combined
"""

import re
from typing import List, Tuple

from .errors import SubrangeError

_TERM = re.compile(r"^\s*(-?\d+)\s*(?:-\s*(-?\d+)\s*(?:-\s*(-?\d+)\s*)?)?$")


class AxisSubrange:
    """Sorted, de-duplicated zero-based indices selected along one axis.

    Args:
        definition: Text in the format described in the module docstring.
        dim: Size of the axis; every index must fall in ``[0, dim)``.
        origin_is_one: Numbers in ``definition`` count from 1.
    """

    def __init__(self, definition: str, dim: int, origin_is_one: bool = True):
        self.definition = definition
        self.dim = int(dim)
        self.origin_is_one = origin_is_one
        self.indices: Tuple[int, ...] = self._parse()

    @classmethod
    def full(cls, dim: int) -> "AxisSubrange":
        return cls(f"1-{dim}", dim, origin_is_one=True)

    def _parse(self) -> Tuple[int, ...]:
        text = (self.definition or "").strip()
        if not text:
            raise SubrangeError("Axis range definition is empty")
        origin = 1 if self.origin_is_one else 0
        selected = set()
        for term in text.split(","):
            m = _TERM.match(term)
            if m is None:
                raise SubrangeError(f"Cannot parse axis range term {term.strip()!r}")
            start = int(m.group(1))
            end = int(m.group(2)) if m.group(2) is not None else start
            step = int(m.group(3)) if m.group(3) is not None else 1
            if step <= 0:
                raise SubrangeError(f"Step must be positive in {term.strip()!r}")
            if end < start:
                raise SubrangeError(f"Range end precedes start in {term.strip()!r}")
            for value in range(start, end + 1, step):
                index = value - origin
                if not 0 <= index < self.dim:
                    raise SubrangeError(
                        f"Index {value} outside axis range "
                        f"[{origin}, {self.dim - 1 + origin}]"
                    )
                selected.add(index)
        return tuple(sorted(selected))

    def __len__(self) -> int:
        return len(self.indices)

    def __iter__(self):
        return iter(self.indices)

    def as_list(self) -> List[int]:
        return list(self.indices)

    def __repr__(self) -> str:
        return f"AxisSubrange({self.definition!r}, dim={self.dim})"

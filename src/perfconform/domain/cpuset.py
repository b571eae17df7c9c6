"""Linux CPU list expressions ("0-3,8") as immutable sets of CPU IDs."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator

from perfconform.domain.errors import MalformedInputError

_HEX_RE = re.compile(r"[0-9a-fA-F]+")


def _parse_id(token: str, expr: str) -> int:
    if not (token.isascii() and token.isdigit()):
        msg = f"invalid CPU id {token!r} in {expr!r}"
        raise MalformedInputError(msg, observed=expr)
    return int(token)


class CpuSet:
    """Ordered, deduplicated set of non-negative logical CPU IDs.

    Instances never change after construction; every set operation returns a
    new ``CpuSet``.
    """

    __slots__ = ("_ids",)

    def __init__(self, ids: Iterable[int] = ()) -> None:
        unique = frozenset(ids)
        for cpu in unique:
            if isinstance(cpu, bool) or not isinstance(cpu, int) or cpu < 0:
                msg = f"invalid CPU id {cpu!r}"
                raise MalformedInputError(msg, observed=repr(cpu))
        self._ids: tuple[int, ...] = tuple(sorted(unique))

    @classmethod
    def parse(cls, expr: str) -> CpuSet:
        """Parse a comma-separated list of ``N`` and inclusive ``A-B`` tokens.

        Raises:
            MalformedInputError: on an empty expression, an empty token, a
                negative or non-numeric id, or a descending range.
        """
        if not expr or not expr.strip():
            msg = "empty CPU list expression"
            raise MalformedInputError(msg, observed=expr)

        ids: list[int] = []
        for raw in expr.split(","):
            token = raw.strip()
            if not token:
                msg = f"empty token in CPU list {expr!r}"
                raise MalformedInputError(msg, observed=expr)
            if "-" in token:
                first, _, last = token.partition("-")
                start = _parse_id(first.strip(), expr)
                end = _parse_id(last.strip(), expr)
                if start > end:
                    msg = f"descending range {token!r} in {expr!r}"
                    raise MalformedInputError(msg, observed=expr)
                ids.extend(range(start, end + 1))
            else:
                ids.append(_parse_id(token, expr))
        return cls(ids)

    @classmethod
    def from_mask(cls, mask: str) -> CpuSet:
        """Decode a kernel hex CPU mask such as ``"00000000,0000000f"``."""
        cleaned = mask.strip().replace(",", "")
        if not cleaned:
            return cls()
        if _HEX_RE.fullmatch(cleaned) is None:
            msg = f"invalid CPU mask {mask!r}"
            raise MalformedInputError(msg, observed=mask)
        value = int(cleaned, 16)
        return cls(bit for bit in range(value.bit_length()) if value >> bit & 1)

    def to_sorted_list(self) -> list[int]:
        return list(self._ids)

    def difference(self, other: CpuSet) -> CpuSet:
        return CpuSet(set(self._ids) - set(other._ids))

    def intersection(self, other: CpuSet) -> CpuSet:
        return CpuSet(set(self._ids) & set(other._ids))

    def union(self, other: CpuSet) -> CpuSet:
        return CpuSet(self._ids + other._ids)

    def is_disjoint(self, other: CpuSet) -> bool:
        return not set(self._ids) & set(other._ids)

    def __contains__(self, cpu: object) -> bool:
        return cpu in self._ids

    def __iter__(self) -> Iterator[int]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CpuSet):
            return NotImplemented
        return self._ids == other._ids

    def __hash__(self) -> int:
        return hash(self._ids)

    def __str__(self) -> str:
        """Render the canonical compact form, e.g. ``"0-3,8"``."""
        parts: list[str] = []
        ids = self._ids
        i = 0
        while i < len(ids):
            j = i
            while j + 1 < len(ids) and ids[j + 1] == ids[j] + 1:
                j += 1
            parts.append(str(ids[i]) if i == j else f"{ids[i]}-{ids[j]}")
            i = j + 1
        return ",".join(parts)

    def __repr__(self) -> str:
        return f"CpuSet({str(self)!r})"

from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from subsidy_paths.core.errors import AlreadyRegisteredError, BorrowerNotFoundError
from subsidy_paths.core.utils.addresses import normalize_address


@dataclass
class BorrowerEntry:
    address: str
    is_whitelisted: bool = False
    cumulative_repaid: int = 0


class BorrowerRegistry:
    """Whitelisted borrowers and how much of their debt has been subsidized.

    Removal swaps the last borrower into the freed slot, so iteration order
    changes across removals. Repayment history is kept for removed borrowers.
    """

    def __init__(self, borrowers: Iterable[str] = ()) -> None:
        self._entries: dict[str, BorrowerEntry] = {}
        self._order: list[str] = []
        self._index: dict[str, int] = {}
        for borrower in borrowers:
            self.add(borrower)

    def add(self, address: str) -> str:
        addr = normalize_address(address, field="borrower")
        entry = self._entries.get(addr)
        if entry is not None and entry.is_whitelisted:
            raise AlreadyRegisteredError(addr)
        if entry is None:
            entry = self._entries[addr] = BorrowerEntry(address=addr)
        entry.is_whitelisted = True
        self._index[addr] = len(self._order)
        self._order.append(addr)
        return addr

    def remove(self, address: str) -> str:
        addr = normalize_address(address, field="borrower")
        entry = self._entries.get(addr)
        if entry is None or not entry.is_whitelisted:
            raise BorrowerNotFoundError(addr)

        idx = self._index.pop(addr)
        last = self._order.pop()
        if last != addr:
            self._order[idx] = last
            self._index[last] = idx
        entry.is_whitelisted = False
        return addr

    def is_whitelisted(self, address: str) -> bool:
        entry = self._entries.get(normalize_address(address, field="borrower"))
        return bool(entry and entry.is_whitelisted)

    def record_repayment(self, address: str, amount: int) -> None:
        addr = normalize_address(address, field="borrower")
        entry = self._entries.get(addr)
        if entry is None:
            raise BorrowerNotFoundError(addr)
        entry.cumulative_repaid += int(amount)

    def cumulative_repaid(self, address: str) -> int:
        entry = self._entries.get(normalize_address(address, field="borrower"))
        return entry.cumulative_repaid if entry else 0

    def addresses(self) -> list[str]:
        return list(self._order)

    def snapshot(self) -> BorrowerRegistry:
        return copy.deepcopy(self)

    def adopt_repayments(self, source: BorrowerRegistry) -> None:
        """Take cumulative repayments from ``source``, leaving membership as is."""
        for addr, entry in source._entries.items():
            mine = self._entries.get(addr)
            if mine is None:
                if not entry.cumulative_repaid:
                    continue
                mine = self._entries[addr] = BorrowerEntry(address=addr)
            mine.cumulative_repaid = entry.cumulative_repaid

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._order))

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and address.lower() in {
            a.lower() for a in self._order
        }

"""Address-ordered index with predecessor queries.

Symbol files routinely carry hundreds of thousands of FUNC and line records,
so the index is backed by a balanced sorted container rather than a plain
list that would need re-sorting or O(n) inserts.
"""
from __future__ import annotations

from operator import itemgetter
from typing import Any, Iterator, Optional, Tuple

from sortedcontainers import SortedKeyList


class AddressIndex:
    """Ordered mapping of address -> record that permits duplicate addresses.

    ``predecessor(address)`` returns the record stored at the greatest address
    that is <= the queried one. When several records share that address, any
    one of them may be returned.
    """

    def __init__(self):
        self._entries: SortedKeyList = SortedKeyList(key=itemgetter(0))

    def insert(self, address: int, record: Any) -> None:
        if address < 0:
            raise ValueError(f"negative address: {address:#x}")
        self._entries.add((address, record))

    def predecessor(self, address: int) -> Optional[Any]:
        idx = self._entries.bisect_key_right(address) - 1
        if idx < 0:
            return None
        return self._entries[idx][1]

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __iter__(self) -> Iterator[Tuple[int, Any]]:
        return iter(self._entries)

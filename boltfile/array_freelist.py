"""Freelist keeping available pages in one sorted list."""

from __future__ import annotations

from typing import Iterable, List

from .freelist_base import Freelist
from .page import Pgid, Txid, merge_pgids
from .verify import verify


class ArrayFreelist(Freelist):
    """Free pages held as a sorted list of ids; allocation scans for a run."""

    def __init__(self) -> None:
        super().__init__()
        self._ids: List[Pgid] = []

    def init(self, ids: Iterable[Pgid]) -> None:
        self._ids = list(ids)
        self.reindex()

    def allocate(self, txid: Txid, n: int) -> Pgid:
        if not self._ids:
            return 0
        initial = previd = 0
        for i, pgid in enumerate(self._ids):
            if pgid <= 1:
                raise ValueError(f"invalid page allocation: {pgid}")
            if previd == 0 or pgid - previd != 1:
                initial = pgid
            if pgid - initial + 1 == n:
                del self._ids[i - n + 1:i + 1]
                for offset in range(n):
                    self.cache.discard(initial + offset)
                self.allocs[initial] = txid
                return initial
            previd = pgid
        return 0

    def free_count(self) -> int:
        return len(self._ids)

    def free_page_ids(self) -> List[Pgid]:
        return list(self._ids)

    def merge_spans(self, ids: List[Pgid]) -> None:
        ids.sort()

        def _check() -> None:
            existing = set()
            for pgid in self._ids:
                if pgid in existing:
                    raise RuntimeError(
                        f"detected duplicated free page ID: {pgid} in existing ids: {self._ids}"
                    )
                existing.add(pgid)
            prev = 0
            for pgid in ids:
                if pgid == prev:
                    raise RuntimeError(f"detected duplicated free ID: {pgid} in ids: {ids}")
                prev = pgid
                if pgid in existing:
                    raise RuntimeError(
                        f"detected overlapped free page ID: {pgid} between ids: {ids} "
                        f"and existing ids: {self._ids}"
                    )

        verify(_check)
        self._ids = merge_pgids(self._ids, ids)
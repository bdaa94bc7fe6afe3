"""Freelist keeping available pages as spans indexed by size, start and end."""

from __future__ import annotations

from typing import Dict, Iterable, List, Set

from .freelist_base import Freelist
from .page import Pgid, Txid
from .verify import assert_that, verify


class HashMapFreelist(Freelist):
    """Free pages held as contiguous spans.

    ``freemaps`` maps a span size to the set of span starts with that size,
    ``forward_map`` maps a span start to its size and ``backward_map`` maps a
    span end to its size.
    """

    def __init__(self) -> None:
        super().__init__()
        self.free_pages_count = 0
        self.freemaps: Dict[int, Set[Pgid]] = {}
        self.forward_map: Dict[Pgid, int] = {}
        self.backward_map: Dict[Pgid, int] = {}

    def init(self, pgids: Iterable[Pgid]) -> None:
        ids = list(pgids)
        self.free_pages_count = 0
        self.freemaps = {}
        self.forward_map = {}
        self.backward_map = {}

        if not ids:
            self.reindex()
            return

        if any(later < earlier for earlier, later in zip(ids, ids[1:])):
            raise ValueError("pgids not sorted")

        start = ids[0]
        size = 1
        for prev, pgid in zip(ids, ids[1:]):
            if pgid == prev + 1:
                size += 1
            else:
                self._add_span(start, size)
                start = pgid
                size = 1

        if size != 0 and start != 0:
            self._add_span(start, size)

        self.reindex()

    def allocate(self, txid: Txid, n: int) -> Pgid:
        if n == 0:
            return 0

        exact = self.freemaps.get(n)
        if exact:
            pid = next(iter(exact))
            self._del_span(pid, n)
            self._take(txid, pid, n)
            return pid

        for size, starts in self.freemaps.items():
            if size >= n and starts:
                pid = next(iter(starts))
                break
        else:
            return 0

        self._del_span(pid, size)
        self._take(txid, pid, n)
        self._add_span(pid + n, size - n)
        return pid

    def _take(self, txid: Txid, pid: Pgid, n: int) -> None:
        self.allocs[pid] = txid
        for pgid in range(pid, pid + n):
            self.cache.discard(pgid)

    def free_count(self) -> int:
        def _check() -> None:
            expected = sum(self.forward_map.values())
            assert_that(
                self.free_pages_count == expected,
                "freePagesCount (%d) is out of sync with free pages map (%d)",
                self.free_pages_count,
                expected,
            )

        verify(_check)
        return self.free_pages_count

    def free_page_ids(self) -> List[Pgid]:
        if self.free_count() == 0:
            return []
        ids: List[Pgid] = []
        for start in sorted(self.forward_map):
            ids.extend(range(start, start + self.forward_map[start]))
        return ids

    def _add_span(self, start: Pgid, size: int) -> None:
        self.backward_map[start - 1 + size] = size
        self.forward_map[start] = size
        self.freemaps.setdefault(size, set()).add(start)
        self.free_pages_count += size

    def _del_span(self, start: Pgid, size: int) -> None:
        self.forward_map.pop(start, None)
        self.backward_map.pop(start + size - 1, None)
        starts = self.freemaps.get(size)
        if starts is not None:
            starts.discard(start)
            if not starts:
                del self.freemaps[size]
        self.free_pages_count -= size

    def merge_spans(self, ids: List[Pgid]) -> None:
        def _check() -> None:
            from_freemaps = self._ids_from_freemaps()
            if from_freemaps != self._ids_from_forward_map():
                raise RuntimeError(
                    f"Detected mismatch, freemaps: {self.freemaps}, forward map: {self.forward_map}"
                )
            if from_freemaps != self._ids_from_backward_map():
                raise RuntimeError(
                    f"Detected mismatch, freemaps: {self.freemaps}, backward map: {self.backward_map}"
                )
            ids.sort()
            prev = 0
            for pgid in ids:
                if pgid == prev:
                    raise RuntimeError(f"detected duplicated free ID: {pgid} in ids: {ids}")
                prev = pgid
                if pgid in from_freemaps:
                    raise RuntimeError(
                        f"detected overlapped free page ID: {pgid} between ids: {ids} "
                        f"and existing freemaps: {self.freemaps}"
                    )

        verify(_check)
        for pgid in ids:
            self.merge_with_existing_span(pgid)

    def merge_with_existing_span(self, pgid: Pgid) -> None:
        """Add ``pgid`` as a free page, joining the spans before and after it."""
        prev = pgid - 1
        nxt = pgid + 1
        new_start = pgid
        new_size = 1

        prev_size = self.backward_map.get(prev)
        if prev_size is not None:
            self._del_span(prev + 1 - prev_size, prev_size)
            new_start -= prev_size
            new_size += prev_size

        next_size = self.forward_map.get(nxt)
        if next_size is not None:
            self._del_span(nxt, next_size)
            new_size += next_size

        self._add_span(new_start, new_size)

    def _ids_from_freemaps(self) -> Set[Pgid]:
        ids: Set[Pgid] = set()
        for size, starts in self.freemaps.items():
            for start in starts:
                for pgid in range(start, start + size):
                    if pgid in ids:
                        raise RuntimeError(
                            f"detected duplicated free page ID: {pgid} in freemaps: {self.freemaps}"
                        )
                    ids.add(pgid)
        return ids

    def _ids_from_forward_map(self) -> Set[Pgid]:
        ids: Set[Pgid] = set()
        for start, size in self.forward_map.items():
            for pgid in range(start, start + size):
                if pgid in ids:
                    raise RuntimeError(
                        f"detected duplicated free page ID: {pgid} in forward map: {self.forward_map}"
                    )
                ids.add(pgid)
        return ids

    def _ids_from_backward_map(self) -> Set[Pgid]:
        ids: Set[Pgid] = set()
        for end, size in self.backward_map.items():
            for pgid in range(end - size + 1, end + 1):
                if pgid in ids:
                    raise RuntimeError(
                        f"detected duplicated free page ID: {pgid} in backward map: {self.backward_map}"
                    )
                ids.add(pgid)
        return ids
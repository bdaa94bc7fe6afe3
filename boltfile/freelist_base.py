"""Shared freelist behaviour: pending pages, release, rollback and serialization."""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set

from .page import FREELIST_PAGE_FLAG, PAGE_HEADER_SIZE, PGID_SIZE, Page, Pgid, Txid, merge_pgids
from .verify import verify

_MAX_TXID = 0xFFFFFFFFFFFFFFFF
_OVERFLOW_COUNT = 0xFFFF


@dataclass
class TxPending:
    """Pages freed by one transaction, with the transactions that allocated them."""

    ids: List[Pgid] = field(default_factory=list)
    alloctx: List[Txid] = field(default_factory=list)
    last_release_begin: Txid = 0


class Freelist(ABC):
    """Tracks free pages and pages waiting to become free.

    Concrete freelists decide how the available free pages are stored and
    allocated; this class handles pending pages and the on-page format.
    """

    def __init__(self) -> None:
        self.readonly_txids: List[Txid] = []
        self.allocs: Dict[Pgid, Txid] = {}
        self.cache: Set[Pgid] = set()
        self.pending: Dict[Txid, TxPending] = {}

    @abstractmethod
    def init(self, ids: Iterable[Pgid]) -> None:
        """Replace the available free pages with ``ids``."""

    @abstractmethod
    def allocate(self, txid: Txid, n: int) -> Pgid:
        """Allocate ``n`` contiguous free pages; return the first id or 0."""

    @abstractmethod
    def free_count(self) -> int:
        """Return the number of available free pages."""

    @abstractmethod
    def free_page_ids(self) -> List[Pgid]:
        """Return the sorted ids of all available free pages."""

    @abstractmethod
    def merge_spans(self, ids: List[Pgid]) -> None:
        """Add ``ids`` to the available free pages."""

    def pending_page_ids(self) -> Dict[Txid, TxPending]:
        """Return the pending pages keyed by the freeing transaction."""
        return self.pending

    def pending_count(self) -> int:
        return sum(len(txp.ids) for txp in self.pending.values())

    def count(self) -> int:
        """Return the number of free and pending pages."""
        return self.free_count() + self.pending_count()

    def freed(self, pgid: Pgid) -> bool:
        """Return True if the page is free or pending."""
        return pgid in self.cache

    def free(self, txid: Txid, page: Page) -> None:
        """Mark a page and its overflow pages as pending for ``txid``."""
        first = page.id
        if first <= 1:
            raise ValueError(f"cannot free page 0 or 1: {first}")

        txp = self.pending.setdefault(txid, TxPending())
        alloc_txid = self.allocs.get(first, 0)

        def _check() -> None:
            if alloc_txid == txid:
                raise RuntimeError(
                    f"free: freed page ({first}) was allocated by the same transaction ({txid})"
                )

        verify(_check)
        self.allocs.pop(first, None)

        for pgid in range(first, first + page.overflow + 1):
            if pgid in self.cache:
                raise ValueError(f"page {pgid} already freed")
            txp.ids.append(pgid)
            txp.alloctx.append(alloc_txid)
            self.cache.add(pgid)

    def rollback(self, txid: Txid) -> None:
        """Undo the pending frees and allocations made by ``txid``."""
        txp = self.pending.get(txid)
        if txp is None:
            return
        for pgid, alloc_tx in zip(txp.ids, txp.alloctx):
            self.cache.discard(pgid)
            if alloc_tx == 0:
                continue
            if alloc_tx == txid:
                raise RuntimeError(
                    f"rollback: freed page ({pgid}) was allocated by the same transaction ({txid})"
                )
            self.allocs[pgid] = alloc_tx
        del self.pending[txid]
        self.allocs = {pgid: tid for pgid, tid in self.allocs.items() if tid != txid}

    def add_readonly_txid(self, txid: Txid) -> None:
        self.readonly_txids.append(txid)

    def remove_readonly_txid(self, txid: Txid) -> None:
        if txid in self.readonly_txids:
            self.readonly_txids.remove(txid)

    def release_pending_pages(self) -> None:
        """Release pending pages no open read-only transaction can still see."""
        self.readonly_txids.sort()
        minid = self.readonly_txids[0] if self.readonly_txids else _MAX_TXID
        if minid > 0:
            self.release(minid - 1)
        for tid in self.readonly_txids:
            self.release_range(minid, (tid - 1) & _MAX_TXID)
            minid = (tid + 1) & _MAX_TXID
        self.release_range(minid, _MAX_TXID)

    def release(self, txid: Txid) -> None:
        """Move pending pages of ``txid`` and older transactions to the free pages."""
        released: List[Pgid] = []
        for tid in [tid for tid in self.pending if tid <= txid]:
            released.extend(self.pending.pop(tid).ids)
        self.merge_spans(released)

    def release_range(self, begin: Txid, end: Txid) -> None:
        """Release pending pages both allocated and freed within [begin, end]."""
        if begin > end:
            return
        released: List[Pgid] = []
        for tid, txp in list(self.pending.items()):
            if tid < begin or tid > end:
                continue
            if txp.last_release_begin == begin:
                continue
            kept_ids: List[Pgid] = []
            kept_alloc: List[Txid] = []
            for pgid, atx in zip(txp.ids, txp.alloctx):
                if begin <= atx <= end:
                    released.append(pgid)
                else:
                    kept_ids.append(pgid)
                    kept_alloc.append(atx)
            txp.ids, txp.alloctx = kept_ids, kept_alloc
            txp.last_release_begin = begin
            if not txp.ids:
                del self.pending[tid]
        self.merge_spans(released)

    def copyall(self) -> List[Pgid]:
        """Return all free and pending page ids in one sorted list."""
        pending = sorted(pgid for txp in self.pending.values() for pgid in txp.ids)
        return merge_pgids(self.free_page_ids(), pending)

    def reload(self, page: Page) -> None:
        """Read the freelist from ``page`` and drop ids that are still pending."""
        self.read(page)
        self.no_sync_reload(self.free_page_ids())

    def no_sync_reload(self, pgids: Iterable[Pgid]) -> None:
        """Initialise from ``pgids`` without the ids that are still pending."""
        pending = {pgid for txp in self.pending.values() for pgid in txp.ids}
        self.init([pgid for pgid in pgids if pgid not in pending])

    def reindex(self) -> None:
        """Rebuild the lookup of free and pending page ids."""
        self.cache = set(self.free_page_ids())
        for txp in self.pending.values():
            self.cache.update(txp.ids)

    def read(self, page: Page) -> None:
        """Initialise the free pages from a freelist page."""
        if not page.is_freelist_page():
            raise ValueError(f"invalid freelist page: {page.id}, page type is {page.typ()}")
        self.init(sorted(page.freelist_page_ids()))

    def estimated_write_page_size(self) -> int:
        """Return an upper bound of the serialized size in bytes."""
        n = self.count()
        if n >= _OVERFLOW_COUNT:
            n += 1
        return PAGE_HEADER_SIZE + PGID_SIZE * n

    def write(self, page: Page) -> None:
        """Write all free and pending ids onto ``page``."""
        page.flags = FREELIST_PAGE_FLAG
        n = self.count()
        if n == 0:
            page.count = 0
            return
        ids = self.copyall()
        if n < _OVERFLOW_COUNT:
            page.count = n
            values = ids
        else:
            page.count = _OVERFLOW_COUNT
            values = [n] + ids
        start = page.offset + PAGE_HEADER_SIZE
        needed = start + PGID_SIZE * len(values)
        if len(page.buf) < needed:
            raise ValueError(
                f"page buffer holds {len(page.buf)} bytes, freelist needs {needed}"
            )
        struct.pack_into(f"<{len(values)}Q", page.buf, start, *values)
"""On-disk page layout: page headers, page elements and bucket headers."""

from __future__ import annotations

import heapq
import mmap
import platform
import struct
import sys
from dataclasses import dataclass
from typing import ClassVar, Iterable, List, Optional, Tuple, Union

from .verify import assert_that

Pgid = int
Txid = int
Buffer = Union[bytearray, memoryview, bytes]

PAGE_HEADER_SIZE = 16
MIN_KEYS_PER_PAGE = 2
BRANCH_PAGE_ELEMENT_SIZE = 16
LEAF_PAGE_ELEMENT_SIZE = 16
PGID_SIZE = 8
BUCKET_HEADER_SIZE = 16

BRANCH_PAGE_FLAG = 0x01
LEAF_PAGE_FLAG = 0x02
META_PAGE_FLAG = 0x04
FREELIST_PAGE_FLAG = 0x10

BUCKET_LEAF_FLAG = 0x01

MAX_MMAP_STEP = 1 << 30
VERSION = 2
MAGIC = 0xED0CDAED
PGID_NO_FREELIST = 0xFFFFFFFFFFFFFFFF
IGNORE_NO_SYNC = sys.platform.startswith("openbsd")

DEFAULT_MAX_BATCH_SIZE = 1000
DEFAULT_MAX_BATCH_DELAY = 0.010
DEFAULT_ALLOC_SIZE = 16 * 1024 * 1024
DEFAULT_PAGE_SIZE = mmap.PAGESIZE


def _map_limits() -> Tuple[int, int]:
    machine = platform.machine().lower()
    is_64bit = sys.maxsize > 2**32
    if "mips" in machine:
        return (0x8000000000, 0x7FFFFFFF) if is_64bit else (0x40000000, 0xFFFFFFF)
    if is_64bit:
        return 0xFFFFFFFFFFFF, 0x7FFFFFFF
    return 0x7FFFFFFF, 0xFFFFFFF


MAX_MAP_SIZE, MAX_ALLOC_SIZE = _map_limits()

_U64 = struct.Struct("<Q")


class _Field:
    """A fixed-width little-endian integer stored inside a buffer view."""

    def __init__(self, fmt: str, offset: int) -> None:
        self._struct = struct.Struct("<" + fmt)
        self._offset = offset

    def __get__(self, obj: Optional["_View"], objtype: Optional[type] = None):
        if obj is None:
            return self
        return self._struct.unpack_from(obj.buf, obj.offset + self._offset)[0]

    def __set__(self, obj: "_View", value: int) -> None:
        self._struct.pack_into(obj.buf, obj.offset + self._offset, value)


class _View:
    """A structure laid over a region of a byte buffer."""

    __slots__ = ("buf", "offset")
    _SIZE: ClassVar[int] = 0

    def __init__(self, buf: Buffer, offset: int = 0) -> None:
        if len(buf) - offset < self._SIZE:
            raise ValueError(
                f"{type(self).__name__} needs {self._SIZE} bytes at offset {offset}, "
                f"buffer holds {len(buf)}"
            )
        self.buf = buf
        self.offset = offset


@dataclass
class InBucket:
    """The on-file bucket header stored as the value of a bucket key."""

    root: Pgid = 0
    sequence: int = 0

    _STRUCT: ClassVar[struct.Struct] = struct.Struct("<QQ")

    @classmethod
    def from_bytes(cls, data: Buffer) -> "InBucket":
        if len(data) < BUCKET_HEADER_SIZE:
            raise ValueError(f"bucket header needs {BUCKET_HEADER_SIZE} bytes, got {len(data)}")
        root, sequence = cls._STRUCT.unpack_from(data, 0)
        return cls(root, sequence)

    def to_bytes(self) -> bytes:
        return self._STRUCT.pack(self.root, self.sequence)

    def inc_sequence(self) -> None:
        self.sequence += 1

    def inline_page(self, value: Buffer) -> "Page":
        """Return the page stored inline after the bucket header in ``value``."""
        return Page(value, BUCKET_HEADER_SIZE)

    def __str__(self) -> str:
        return f"<pgid={self.root},seq={self.sequence}>"


class LeafPageElement(_View):
    """An element header on a leaf page; ``pos`` is relative to the element."""

    __slots__ = ()
    _SIZE = LEAF_PAGE_ELEMENT_SIZE

    flags = _Field("I", 0)
    pos = _Field("I", 4)
    ksize = _Field("I", 8)
    vsize = _Field("I", 12)

    def key(self) -> bytes:
        start = self.offset + self.pos
        return bytes(self.buf[start:start + self.ksize])

    def value(self) -> bytes:
        start = self.offset + self.pos + self.ksize
        return bytes(self.buf[start:start + self.vsize])

    def is_bucket_entry(self) -> bool:
        return self.flags & BUCKET_LEAF_FLAG != 0

    def bucket(self) -> Optional[InBucket]:
        if self.is_bucket_entry():
            return InBucket.from_bytes(self.value())
        return None


class BranchPageElement(_View):
    """An element header on a branch page; ``pos`` is relative to the element."""

    __slots__ = ()
    _SIZE = BRANCH_PAGE_ELEMENT_SIZE

    pos = _Field("I", 0)
    ksize = _Field("I", 4)
    pgid = _Field("Q", 8)

    def key(self) -> bytes:
        start = self.offset + self.pos
        return bytes(self.buf[start:start + self.ksize])


class Page(_View):
    """A page header laid over a buffer, with access to the elements after it."""

    __slots__ = ()
    _SIZE = PAGE_HEADER_SIZE

    id = _Field("Q", 0)
    flags = _Field("H", 8)
    count = _Field("H", 10)
    overflow = _Field("I", 12)

    def typ(self) -> str:
        """Return a human-readable page type."""
        if self.is_branch_page():
            return "branch"
        if self.is_leaf_page():
            return "leaf"
        if self.is_meta_page():
            return "meta"
        if self.is_freelist_page():
            return "freelist"
        return f"unknown<{self.flags:02x}>"

    def is_branch_page(self) -> bool:
        return self.flags == BRANCH_PAGE_FLAG

    def is_leaf_page(self) -> bool:
        return self.flags == LEAF_PAGE_FLAG

    def is_meta_page(self) -> bool:
        return self.flags == META_PAGE_FLAG

    def is_freelist_page(self) -> bool:
        return self.flags == FREELIST_PAGE_FLAG

    def fast_check(self, pgid: Pgid) -> None:
        """Check the page id and that exactly one page type flag is set."""
        assert_that(
            self.id == pgid,
            "Page expected to be: %d, but self identifies as %d",
            pgid,
            self.id,
        )
        assert_that(
            self.is_branch_page()
            or self.is_leaf_page()
            or self.is_meta_page()
            or self.is_freelist_page(),
            "page %d: has unexpected type/flags: %x",
            self.id,
            self.flags,
        )

    def _element_offset(self, index: int, size: int) -> int:
        return self.offset + PAGE_HEADER_SIZE + index * size

    def leaf_page_element(self, index: int) -> LeafPageElement:
        return LeafPageElement(self.buf, self._element_offset(index, LEAF_PAGE_ELEMENT_SIZE))

    def leaf_page_elements(self) -> List[LeafPageElement]:
        return [self.leaf_page_element(i) for i in range(self.count)]

    def branch_page_element(self, index: int) -> BranchPageElement:
        return BranchPageElement(self.buf, self._element_offset(index, BRANCH_PAGE_ELEMENT_SIZE))

    def branch_page_elements(self) -> List[BranchPageElement]:
        return [self.branch_page_element(i) for i in range(self.count)]

    def freelist_page_count(self) -> Tuple[int, int]:
        """Return the index of the first id and the number of ids on a freelist page."""
        assert_that(
            self.is_freelist_page(),
            "can't get freelist page count from a non-freelist page: %2x",
            self.flags,
        )
        idx, count = 0, self.count
        if count == 0xFFFF:
            idx = 1
            count = _U64.unpack_from(self.buf, self.offset + PAGE_HEADER_SIZE)[0]
            if count >= 1 << 63:
                raise ValueError(f"leading element count {count} overflows int")
        return idx, count

    def freelist_page_ids(self) -> List[Pgid]:
        """Return the page ids stored on a freelist page."""
        assert_that(
            self.is_freelist_page(),
            "can't get freelist page IDs from a non-freelist page: %2x",
            self.flags,
        )
        idx, count = self.freelist_page_count()
        if count == 0:
            return []
        start = self.offset + PAGE_HEADER_SIZE + idx * PGID_SIZE
        return list(struct.unpack_from(f"<{count}Q", self.buf, start))

    def hexdump(self, n: int) -> str:
        """Write the first ``n`` bytes of the page to stderr as hex and return them."""
        text = bytes(self.buf[self.offset:self.offset + n]).hex()
        print(text, file=sys.stderr)
        return text

    def page_element_size(self) -> int:
        if self.is_leaf_page():
            return LEAF_PAGE_ELEMENT_SIZE
        return BRANCH_PAGE_ELEMENT_SIZE

    def __str__(self) -> str:
        return (
            f"ID: {self.id}, Type: {self.typ()}, "
            f"count: {self.count}, overflow: {self.overflow}"
        )


@dataclass
class PageInfo:
    """Human-readable information about a page."""

    id: int
    type: str
    count: int
    overflow_count: int


def new_page(pgid: Pgid, flags: int, count: int, overflow: int) -> Page:
    """Create a standalone page header with the given fields."""
    page = Page(bytearray(PAGE_HEADER_SIZE))
    page.id = pgid
    page.flags = flags
    page.count = count
    page.overflow = overflow
    return page


def load_page(buf: Buffer) -> Page:
    """Return the page laid over the start of ``buf``."""
    return Page(buf)


def load_bucket(buf: Buffer) -> InBucket:
    """Decode the bucket header at the start of ``buf``."""
    return InBucket.from_bytes(buf)


def merge_pgids(a: Iterable[Pgid], b: Iterable[Pgid]) -> List[Pgid]:
    """Return the sorted union (keeping duplicates) of two sorted id lists."""
    return list(heapq.merge(a, b))
"""In-memory node elements and their serialization to pages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from .page import PAGE_HEADER_SIZE, Page, Pgid
from .verify import assert_that


@dataclass
class Inode:
    """An element of a node: a page element or one not yet written to a page."""

    flags: int = 0
    pgid: Pgid = 0
    key: bytes = b""
    value: bytes = b""


def read_inodes_from_page(page: Page) -> List[Inode]:
    """Decode every element of a leaf or branch page into inodes."""
    inodes: List[Inode] = []
    is_leaf = page.is_leaf_page()
    for i in range(page.count):
        if is_leaf:
            elem = page.leaf_page_element(i)
            inode = Inode(flags=elem.flags, key=elem.key(), value=elem.value())
        else:
            branch = page.branch_page_element(i)
            inode = Inode(pgid=branch.pgid, key=branch.key())
        assert_that(len(inode.key) > 0, "read: zero-length inode key")
        inodes.append(inode)
    return inodes


def write_inodes_to_page(inodes: Sequence[Inode], page: Page) -> int:
    """Write element headers and data for ``inodes``; return the bytes used."""
    elem_size = page.page_element_size()
    off = PAGE_HEADER_SIZE + elem_size * len(inodes)
    is_leaf = page.is_leaf_page()
    buf = page.buf
    for i, item in enumerate(inodes):
        assert_that(len(item.key) > 0, "write: zero-length inode key")
        data = bytes(item.key) + bytes(item.value)
        start = page.offset + off
        if start + len(data) > len(buf):
            raise ValueError("page buffer too small for inode data")

        if is_leaf:
            elem = page.leaf_page_element(i)
            elem.pos = start - elem.offset
            elem.flags = item.flags
            elem.ksize = len(item.key)
            elem.vsize = len(item.value)
        else:
            branch = page.branch_page_element(i)
            branch.pos = start - branch.offset
            branch.ksize = len(item.key)
            branch.pgid = item.pgid
            assert_that(branch.pgid != page.id, "write: circular dependency occurred")

        buf[start:start + len(data)] = data
        off += len(data)
    return off


def used_space_in_page(inodes: Sequence[Inode], page: Page) -> int:
    """Return the bytes that ``inodes`` would occupy when written to ``page``."""
    return (
        PAGE_HEADER_SIZE
        + page.page_element_size() * len(inodes)
        + sum(len(item.key) + len(item.value) for item in inodes)
    )
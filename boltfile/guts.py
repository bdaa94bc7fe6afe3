"""Low-level, non-transactional access to the pages of a database file."""

from __future__ import annotations

from typing import BinaryIO, Tuple

from .meta import Meta, load_page_meta
from .page import MAGIC, Page, Pgid, load_page

_META_PROBE_SIZE = 4096
_U32_MASK = 0xFFFFFFFF


class CorruptError(ValueError):
    """A page read from the data file is not what it claims to be."""


def _read_at(f: BinaryIO, offset: int, size: int) -> bytearray:
    f.seek(offset)
    data = f.read(size)
    if len(data) != size:
        raise EOFError("unexpected EOF")
    return bytearray(data)


def read_page_and_hwm_size(path: str) -> Tuple[int, Pgid]:
    """Return the page size and the high water mark (last page id + 1)."""
    with open(path, "rb") as f:
        buf = f.read(_META_PROBE_SIZE)
    if len(buf) < _META_PROBE_SIZE:
        raise EOFError("unexpected EOF")
    meta = load_page_meta(buf)
    if meta.magic != MAGIC:
        raise ValueError("the Meta Page has wrong (unexpected) magic")
    return meta.page_size, meta.pgid


def read_page(path: str, page_id: int) -> Tuple[Page, bytearray]:
    """Read a page, including its overflow pages; return it and its buffer."""
    try:
        page_size, hwm = read_page_and_hwm_size(path)
    except (OSError, ValueError, EOFError) as exc:
        raise ValueError(f"read Page size: {exc}") from exc

    with open(path, "rb") as f:
        buf = _read_at(f, page_id * page_size, page_size)
        page = load_page(buf)
        if page.id != page_id:
            raise CorruptError(
                f"error: invalid value due to unexpected Page id: {page.id} != {page_id}"
            )
        overflow = page.overflow
        # Two meta pages and the page itself cannot be overflow pages.
        limit = ((hwm & _U32_MASK) - 3) & _U32_MASK
        if overflow >= limit:
            raise CorruptError(
                f"error: invalid value, Page claims to have {overflow} overflow pages "
                f"(>=hwm={hwm}). Interrupting to avoid risky OOM"
            )
        if overflow == 0:
            return page, buf

        buf = _read_at(f, page_id * page_size, (overflow + 1) * page_size)
        page = load_page(buf)
        if page.id != page_id:
            raise CorruptError(
                f"error: invalid value due to unexpected Page id: {page.id} != {page_id}"
            )
    return page, buf


def write_page(path: str, page_buf: bytes) -> None:
    """Write a full page buffer at the position given by its page id."""
    page = load_page(page_buf)
    page_size, _ = read_page_and_hwm_size(path)
    expected = page_size * (page.overflow + 1)
    if expected != len(page_buf):
        raise ValueError(
            f"WritePage: len(buf):{len(page_buf)} != pageSize*(overflow+1):{expected}"
        )
    with open(path, "r+b") as f:
        f.seek(page.id * page_size)
        f.write(bytes(page_buf))


def get_active_meta_page(path: str) -> Tuple[Meta, Pgid]:
    """Return the meta with the newest transaction and its page id (0 or 1)."""
    _, buf0 = read_page(path, 0)
    meta0 = load_page_meta(buf0)
    _, buf1 = read_page(path, 1)
    meta1 = load_page_meta(buf1)
    if meta0.txid < meta1.txid:
        return meta1, 1
    return meta0, 0


def get_root_page(path: str) -> Tuple[Pgid, Pgid]:
    """Return the root page id of the newest meta and that meta's page id."""
    meta, active = get_active_meta_page(path)
    return meta.root.root, active
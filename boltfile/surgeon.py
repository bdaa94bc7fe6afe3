"""Direct edits of database file pages for repairing or testing damaged files."""

from __future__ import annotations

from .guts import get_root_page, read_page, read_page_and_hwm_size, write_page
from .inode import read_inodes_from_page, used_space_in_page, write_inodes_to_page
from .meta import load_page_meta, store_page_meta
from .page import PGID_NO_FREELIST, Pgid

_READ_ERRORS = (OSError, ValueError, EOFError)


def _wrap(exc: Exception, context: str) -> Exception:
    """Return an exception of the same kind whose message starts with ``context``."""
    message = f"{context}: {exc}"
    try:
        return type(exc)(message)
    except Exception:
        return RuntimeError(message)


def copy_page(path: str, src_page: Pgid, target: Pgid) -> None:
    """Overwrite page ``target`` with the contents of ``src_page``."""
    page, buf = read_page(path, src_page)
    page.id = target
    write_page(path, buf)


def clear_page(path: str, pgid: Pgid) -> bool:
    """Remove every element of a leaf or branch page.

    Returns True when the freelist should be abandoned afterwards.
    """
    return clear_page_elements(path, pgid, 0, -1, False)


def clear_page_elements(path: str, pgid: Pgid, start: int, end: int,
                        abandon_freelist: bool) -> bool:
    """Remove elements ``[start, end)`` of a leaf or branch page; ``end=-1`` means to the end.

    Clearing branch elements or changing the page's overflow leaves the stored
    freelist stale. In that case the freelist is cleared in both meta pages when
    ``abandon_freelist`` is set; otherwise True is returned so the caller can
    abandon it explicitly.
    """
    try:
        page, buf = read_page(path, pgid)
    except _READ_ERRORS as exc:
        raise _wrap(exc, "ReadPage failed") from exc

    if not page.is_leaf_page() and not page.is_branch_page():
        raise ValueError(f'can\'t clear elements in "{page.typ()}" page')

    element_count = page.count
    if element_count == 0:
        return False

    if start < 0 or start >= element_count:
        raise ValueError(
            f"the start index ({start}) is out of range [0, {element_count})"
        )
    if (end < 0 or end > element_count) and end != -1:
        raise ValueError(f"the end index ({end}) is out of range [0, {element_count}]")
    if start > end and end != -1:
        raise ValueError(f"the start index ({start}) is bigger than the end index ({end})")
    if start == end:
        raise ValueError(
            f"invalid: the start index ({start}) is equal to the end index ({end})"
        )

    pre_overflow = page.overflow
    inodes = read_inodes_from_page(page)

    if end == element_count or end == -1:
        kept = inodes[:start]
        page.count = start
        # The kept data is already in place; only its size is needed.
        data_written = used_space_in_page(kept, page)
    else:
        kept = inodes[:start] + inodes[end:]
        page.count = len(kept)
        data_written = write_inodes_to_page(kept, page)

    try:
        page_size, _ = read_page_and_hwm_size(path)
    except _READ_ERRORS as exc:
        raise _wrap(exc, "ReadPageAndHWMSize failed") from exc

    if data_written % page_size == 0:
        page.overflow = data_written // page_size - 1
    else:
        page.overflow = data_written // page_size

    datasz = page_size * (page.overflow + 1)
    try:
        write_page(path, buf[:datasz])
    except _READ_ERRORS as exc:
        raise _wrap(exc, "WritePage failed") from exc

    if pre_overflow != page.overflow or page.is_branch_page():
        if abandon_freelist:
            clear_freelist(path)
            return False
        return True
    return False


def clear_freelist(path: str) -> None:
    """Mark the freelist as not persisted in both meta pages."""
    for page_id in (0, 1):
        try:
            _clear_freelist_in_meta_page(path, page_id)
        except _READ_ERRORS as exc:
            raise _wrap(exc, f"clearFreelist on meta page {page_id} failed") from exc


def _clear_freelist_in_meta_page(path: str, page_id: int) -> None:
    try:
        _, buf = read_page(path, page_id)
    except _READ_ERRORS as exc:
        raise _wrap(exc, f"ReadPage {page_id} failed") from exc

    meta = load_page_meta(buf)
    meta.freelist = PGID_NO_FREELIST
    meta.checksum = meta.sum64()
    store_page_meta(buf, meta)

    try:
        write_page(path, buf)
    except _READ_ERRORS as exc:
        raise _wrap(exc, f"WritePage {page_id} failed") from exc


def revert_meta_page(path: str) -> None:
    """Replace the newer meta page with the older one, dropping the last transaction."""
    _, active = get_root_page(path)
    if active == 0:
        copy_page(path, 1, 0)
    else:
        copy_page(path, 0, 1)
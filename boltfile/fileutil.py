"""File helpers."""

from __future__ import annotations

import os
import shutil


def copy_file(src_path: str, dst_path: str) -> None:
    """Copy a database file to a path that must not yet exist."""
    if not os.path.exists(src_path):
        raise FileNotFoundError(f'source file "{src_path}" not found')
    if os.path.lexists(dst_path):
        raise FileExistsError(f'output file "{dst_path}" already exists')

    try:
        src = open(src_path, "rb")
    except OSError as exc:
        raise OSError(f'failed to open source file "{src_path}": {exc}') from exc
    with src:
        try:
            dst = open(dst_path, "xb")
        except OSError as exc:
            raise OSError(f'failed to create output file "{dst_path}": {exc}') from exc
        with dst:
            try:
                shutil.copyfileobj(src, dst)
                written = dst.tell()
            except OSError as exc:
                raise OSError(
                    f'failed to copy database file from "{src_path}" to "{dst_path}": {exc}'
                ) from exc
        initial_size = os.fstat(src.fileno()).st_size

    if initial_size != written:
        raise OSError(
            f'the byte copied ("{dst_path}": {written}) isn\'t equal to the '
            f'initial db size ("{src_path}": {initial_size})'
        )
"""The meta page: database header, validation and checksum."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, replace
from typing import ClassVar, TextIO

from .page import (
    MAGIC,
    META_PAGE_FLAG,
    PAGE_HEADER_SIZE,
    PGID_NO_FREELIST,
    VERSION,
    Buffer,
    InBucket,
    Page,
    Pgid,
    Txid,
)

META_SIZE = 64
_CHECKSUM_OFFSET = 56

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_U64_MASK = 0xFFFFFFFFFFFFFFFF


class InvalidDatabaseError(ValueError):
    """The meta page does not carry the expected magic marker."""

    def __init__(self, message: str = "invalid database") -> None:
        super().__init__(message)


class VersionMismatchError(ValueError):
    """The meta page was written by an incompatible format version."""

    def __init__(self, message: str = "version mismatch") -> None:
        super().__init__(message)


class ChecksumError(ValueError):
    """The stored meta checksum does not match its contents."""

    def __init__(self, message: str = "checksum error") -> None:
        super().__init__(message)


def _fnv1a64(data: bytes) -> int:
    h = _FNV64_OFFSET
    for byte in data:
        h ^= byte
        h = (h * _FNV64_PRIME) & _U64_MASK
    return h


@dataclass
class Meta:
    """The database header stored on pages 0 and 1."""

    magic: int = 0
    version: int = 0
    page_size: int = 0
    flags: int = 0
    root: InBucket = field(default_factory=InBucket)
    freelist: Pgid = 0
    pgid: Pgid = 0
    txid: Txid = 0
    checksum: int = 0

    _STRUCT: ClassVar[struct.Struct] = struct.Struct("<IIIIQQQQQQ")

    @classmethod
    def from_bytes(cls, data: Buffer) -> "Meta":
        """Decode a meta structure from the start of ``data``."""
        if len(data) < META_SIZE:
            raise ValueError(f"meta needs {META_SIZE} bytes, got {len(data)}")
        (magic, version, page_size, flags, root, sequence,
         freelist, pgid, txid, checksum) = cls._STRUCT.unpack_from(data, 0)
        return cls(magic, version, page_size, flags, InBucket(root, sequence),
                   freelist, pgid, txid, checksum)

    def to_bytes(self) -> bytes:
        """Encode the meta structure in its on-disk layout."""
        return self._STRUCT.pack(
            self.magic, self.version, self.page_size, self.flags,
            self.root.root, self.root.sequence,
            self.freelist, self.pgid, self.txid, self.checksum,
        )

    def validate(self) -> None:
        """Raise if the marker, version or checksum do not match."""
        if self.magic != MAGIC:
            raise InvalidDatabaseError()
        if self.version != VERSION:
            raise VersionMismatchError()
        if self.checksum != self.sum64():
            raise ChecksumError()

    def copy(self) -> "Meta":
        """Return an independent copy of this meta."""
        return replace(self, root=InBucket(self.root.root, self.root.sequence))

    def write(self, page: Page) -> None:
        """Compute the checksum and write this meta onto ``page``."""
        if self.root.root >= self.pgid:
            raise ValueError(
                f"root bucket pgid ({self.root.root}) above high water mark ({self.pgid})"
            )
        if self.freelist >= self.pgid and self.freelist != PGID_NO_FREELIST:
            raise ValueError(
                f"freelist pgid ({self.freelist}) above high water mark ({self.pgid})"
            )
        start = page.offset + PAGE_HEADER_SIZE
        if len(page.buf) < start + META_SIZE:
            raise ValueError("page buffer too small to hold meta")

        page.id = self.txid % 2
        page.flags = META_PAGE_FLAG
        self.checksum = self.sum64()
        page.buf[start:start + META_SIZE] = self.to_bytes()

    def sum64(self) -> int:
        """Return the FNV-1a 64-bit checksum of every field before the checksum."""
        return _fnv1a64(self.to_bytes()[:_CHECKSUM_OFFSET])

    def is_freelist_persisted(self) -> bool:
        return self.freelist != PGID_NO_FREELIST

    def inc_txid(self) -> None:
        self.txid += 1

    def dec_txid(self) -> None:
        self.txid -= 1

    def print(self, out: TextIO) -> None:
        """Write a human-readable description of the meta to ``out``."""
        out.write(f"Version:    {self.version}\n")
        out.write(f"Page Size:  {self.page_size} bytes\n")
        out.write(f"Flags:      {self.flags:08x}\n")
        out.write(f"Root:       <pgid={self.root.root}>\n")
        out.write(f"Freelist:   <pgid={self.freelist}>\n")
        out.write(f"HWM:        <pgid={self.pgid}>\n")
        out.write(f"Txn ID:     {self.txid}\n")
        out.write(f"Checksum:   {self.checksum:016x}\n")
        out.write("\n")


def load_page_meta(buf: Buffer) -> Meta:
    """Decode the meta stored after the page header at the start of ``buf``."""
    return Meta.from_bytes(bytes(buf[PAGE_HEADER_SIZE:PAGE_HEADER_SIZE + META_SIZE]))


def store_page_meta(buf: bytearray, meta: Meta) -> None:
    """Write ``meta`` after the page header at the start of ``buf``."""
    if len(buf) < PAGE_HEADER_SIZE + META_SIZE:
        raise ValueError("buffer too small to hold meta")
    buf[PAGE_HEADER_SIZE:PAGE_HEADER_SIZE + META_SIZE] = meta.to_bytes()
# boltfile

Low-level building blocks for files in the Bolt single-file B+tree
key/value format: page layouts, meta pages, freelists, in-memory nodes,
and tools for inspecting and repairing damaged files.

## Installation

```
pip install boltfile
```

For running the test suite:

```
pip install "boltfile[test]"
pytest
```

## What is inside

- `boltfile.page`: `Page`, `LeafPageElement`, `BranchPageElement`,
  `InBucket` and `PageInfo`, laid over byte buffers in the on-disk
  little-endian layout, plus `new_page`, `load_page`, `load_bucket` and
  `merge_pgids` (merge of two sorted page-id lists, duplicates kept).
- `boltfile.meta`: the `Meta` record with its FNV-1a 64-bit checksum
  (`sum64`, `validate`, `write`, `print`), `load_page_meta` /
  `store_page_meta`, and the `InvalidDatabaseError`,
  `VersionMismatchError` and `ChecksumError` exceptions raised by
  `Meta.validate`.
- `boltfile.inode`: `Inode`, `read_inodes_from_page`,
  `write_inodes_to_page` and `used_space_in_page`.
- `boltfile.freelist_base`, `boltfile.array_freelist`,
  `boltfile.hashmap_freelist`: the shared `Freelist` logic (pending pages
  per transaction, rollback, release of pages no open read-only
  transaction can still see, reading and writing freelist pages) with the
  `ArrayFreelist` (sorted id list) and `HashMapFreelist` (spans indexed by
  size, start and end) back ends.
- `boltfile.node`: `Node`, the in-memory form of a leaf or branch page,
  with insert (`put`), `delete`, `read`, `write` and `split`. A node gets
  the high water mark, fill percent and a split counter from a
  `NodeContext`. `compare_keys` compares keys bytewise.
- `boltfile.guts`: raw, non-transactional page access on a file on disk:
  `read_page`, `write_page`, `read_page_and_hwm_size`, `get_root_page`,
  `get_active_meta_page`, and `CorruptError`.
- `boltfile.surgeon`: repair helpers that write to the file in place:
  `copy_page`, `clear_page`, `clear_page_elements`, `clear_freelist` and
  `revert_meta_page`.
- `boltfile.xray`: `XRay(path).find_paths_to_key(key)` returns every page
  path from the root to a leaf holding the key.
- `boltfile.verify`: opt-in consistency checks controlled by the
  `BBOLT_VERIFY` environment variable; `verify()` runs its check when the
  variable is `all` or `assert`. `assert_that` raises `AssertionError`.
- `boltfile.logger`: `DefaultLogger` (writes `LEVEL: message` lines to a
  stream, debug output off until `enable_debug()`; `fatal` raises
  `SystemExit(1)`, `panic` raises `RuntimeError`) and `discard_logger()`.

## Example

```python
from boltfile.array_freelist import ArrayFreelist
from boltfile.page import new_page

fl = ArrayFreelist()
fl.init([3, 4, 5, 6, 7, 9, 12, 13, 18])
assert fl.allocate(1, 3) == 3

fl.free(100, new_page(20, 0, 0, 1))   # page 20 plus one overflow page
fl.release_pending_pages()
print(fl.free_page_ids())
```

Inspecting a file on disk:

```python
from boltfile.guts import get_active_meta_page
from boltfile.xray import XRay

meta, meta_page_id = get_active_meta_page("my.db")
paths = XRay("my.db").find_paths_to_key(b"0451")
```

Repair helpers write to the file in place; work on a copy.

## What it does not do

This package works on pages and files directly. It has no database
object: it cannot open a file for transactions, create buckets, run
cursors or commit changes, and `Node` has no spill or rebalance step tied
to a bucket. It ships no command-line tool.
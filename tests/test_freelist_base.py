import struct

import pytest

from boltfile.array_freelist import ArrayFreelist
from boltfile.freelist_base import TxPending
from boltfile.page import FREELIST_PAGE_FLAG, BRANCH_PAGE_FLAG, LEAF_PAGE_FLAG, load_page, new_page
from boltfile.verify import enable_all_verifications


def new_freelist():
    return ArrayFreelist()


def all_pending(f):
    return sorted(pgid for txp in f.pending_page_ids().values() for pgid in txp.ids)


def require_pages(f, free_ids, pending_ids):
    assert f.count() == f.free_count() + f.pending_count()
    assert f.free_page_ids() == free_ids
    assert f.free_count() == len(free_ids)
    pending = all_pending(f)
    assert pending == pending_ids
    assert f.pending_count() == len(pending)
    assert all(f.freed(p) for p in free_ids)
    assert all(f.freed(p) for p in pending)


def test_free():
    f = new_freelist()
    f.free(100, new_page(12, 0, 0, 0))
    assert f.pending_page_ids()[100].ids == [12]


def test_free_overflow():
    f = new_freelist()
    f.free(100, new_page(12, 0, 0, 3))
    assert f.pending_page_ids()[100].ids == [12, 13, 14, 15]


def test_double_free_raises():
    f = new_freelist()
    f.free(100, new_page(12, 0, 0, 3))
    with pytest.raises(ValueError, match="already freed"):
        f.free(100, new_page(12, 0, 0, 3))


@pytest.mark.parametrize("pgid", [0, 1])
def test_free_meta_raises(pgid):
    f = new_freelist()
    with pytest.raises(ValueError, match="cannot free page 0 or 1"):
        f.free(100, new_page(pgid, 0, 0, 0))


def test_free_freelist_page():
    f = new_freelist()
    f.free(100, new_page(12, FREELIST_PAGE_FLAG, 0, 0))
    pp = f.pending_page_ids()[100]
    assert pp.ids == [12]
    assert pp.alloctx == [0]


def test_free_freelist_alloctx():
    f = new_freelist()
    f.free(100, new_page(12, FREELIST_PAGE_FLAG, 0, 0))
    f.rollback(100)
    assert f.free_page_ids() == []
    assert f.pending_page_ids() == {}
    assert not f.freed(12)

    f.free(101, new_page(12, FREELIST_PAGE_FLAG, 0, 0))
    assert f.freed(12)
    assert f.pending_page_ids()[101].ids == [12]
    f.release_pending_pages()
    assert f.freed(12)
    assert f.pending_page_ids() == {}
    assert f.free_page_ids() == [12]


def test_release():
    f = new_freelist()
    f.free(100, new_page(12, 0, 0, 1))
    f.free(100, new_page(9, 0, 0, 0))
    f.free(102, new_page(39, 0, 0, 0))
    f.release(100)
    f.release(101)
    assert f.free_page_ids() == [9, 12, 13]
    f.release(102)
    assert f.free_page_ids() == [9, 12, 13, 39]


RELEASE_RANGE_CASES = [
    ("single pending in range", [(3, 1, 100, 200)], [(1, 300)], [3]),
    ("minimum end range", [(3, 1, 100, 200)], [(1, 200)], [3]),
    ("outside minimum end range", [(3, 1, 100, 200)], [(1, 199)], []),
    ("minimum begin range", [(3, 1, 100, 200)], [(100, 300)], [3]),
    ("outside minimum begin range", [(3, 1, 100, 200)], [(101, 300)], []),
    ("in minimum range", [(3, 1, 199, 200)], [(199, 200)], [3]),
    ("read transaction at 199", [(3, 1, 199, 200)], [(100, 198), (200, 300)], []),
    (
        "adjacent read transactions",
        [(3, 1, 199, 200), (4, 1, 200, 201)],
        [(100, 198), (200, 199), (201, 300)],
        [],
    ),
    (
        "out of order ranges",
        [(3, 1, 199, 200), (4, 1, 200, 201)],
        [(201, 199), (201, 200), (200, 200)],
        [],
    ),
    (
        "multiple pending, read at 150",
        [
            (3, 1, 100, 200),
            (4, 1, 100, 125),
            (5, 1, 125, 150),
            (6, 1, 125, 175),
            (7, 2, 150, 175),
            (9, 2, 175, 200),
        ],
        [(50, 149), (151, 300)],
        [4, 9, 10],
    ),
]


@pytest.mark.parametrize("title,pages,ranges,want", RELEASE_RANGE_CASES)
def test_release_range(title, pages, ranges, want):
    f = new_freelist()
    ids = [pid + i for pid, n, _, _ in pages for i in range(n)]
    f.init(ids)
    for _, n, alloc_txn, _ in pages:
        f.allocate(alloc_txn, n)
    for pid, n, _, free_txn in pages:
        f.free(free_txn, new_page(pid, 0, 0, n - 1))
    for begin, end in ranges:
        f.release_range(begin, end)
    assert f.free_page_ids() == want


def test_init_and_empty_init():
    buf = bytearray(4096)
    f = new_freelist()
    f.init([5, 6, 8])
    p = load_page(buf)
    f.write(p)

    f2 = new_freelist()
    f2.read(p)
    assert f2.free_page_ids() == [5, 6, 8]
    f2.init([])
    assert f2.free_page_ids() == []


def test_reload_keeps_pending():
    buf = bytearray(4096)
    f = new_freelist()
    f.init([5, 6, 8])
    p = load_page(buf)
    f.write(p)

    f2 = new_freelist()
    f2.read(p)
    assert f2.free_page_ids() == [5, 6, 8]
    f2.free(5, new_page(10, LEAF_PAGE_FLAG, 0, 2))
    f2.reload(p)
    assert f2.free_page_ids() == [5, 6, 8]
    assert f2.pending_page_ids()[5].ids == [10, 11, 12]


def test_read():
    buf = bytearray(4096)
    page = load_page(buf)
    page.flags = FREELIST_PAGE_FLAG
    page.count = 2
    struct.pack_into("<QQ", buf, 16, 23, 50)
    f = new_freelist()
    f.read(page)
    assert f.free_page_ids() == [23, 50]


def test_read_non_freelist_raises():
    buf = bytearray(4096)
    page = load_page(buf)
    page.flags = BRANCH_PAGE_FLAG
    page.count = 2
    with pytest.raises(ValueError, match="invalid freelist page"):
        new_freelist().read(page)


def test_write():
    buf = bytearray(4096)
    f = new_freelist()
    f.init([12, 39])
    f.pending_page_ids()[100] = TxPending(ids=[28, 11])
    f.pending_page_ids()[101] = TxPending(ids=[3])
    p = load_page(buf)
    f.write(p)

    f2 = new_freelist()
    f2.read(p)
    assert f2.free_page_ids() == [3, 11, 12, 28, 39]


def test_e2e_happy_path():
    f = new_freelist()
    f.init([])
    require_pages(f, [], [])
    assert f.allocate(1, 5) == 0
    for pgid in (5, 3, 8):
        f.free(2, new_page(pgid, LEAF_PAGE_FLAG, 0, 0))
    require_pages(f, [], [3, 5, 8])

    f.add_readonly_txid(3)
    f.release_pending_pages()
    require_pages(f, [3, 5, 8], [])

    assert f.allocate(4, 2) == 0
    expected = {3, 5, 8}
    for _ in range(3):
        allocated = f.allocate(4, 1)
        assert allocated in expected
        assert not f.freed(allocated)
        expected.remove(allocated)
    assert expected == set()
    assert f.allocate(4, 1) == 0


def test_e2e_multi_span_overflows():
    f = new_freelist()
    f.init([])
    for pgid, overflow in ((20, 1), (25, 2), (35, 3), (39, 2), (45, 4)):
        f.free(10, new_page(pgid, LEAF_PAGE_FLAG, 0, overflow))
    all_ids = [20, 21, 25, 26, 27, 35, 36, 37, 38, 39, 40, 41, 45, 46, 47, 48, 49]
    require_pages(f, [], all_ids)
    f.release_pending_pages()
    require_pages(f, all_ids, [])

    for size, start in zip([7, 5, 3, 2], [35, 45, 25, 20]):
        allocated = f.allocate(11, size)
        assert allocated == start
        assert not any(f.freed(allocated + i) for i in range(size))


def test_e2e_rollbacks():
    f = new_freelist()
    f.init([])
    f.free(2, new_page(5, LEAF_PAGE_FLAG, 0, 1))
    f.free(2, new_page(8, LEAF_PAGE_FLAG, 0, 0))
    require_pages(f, [], [5, 6, 8])
    f.rollback(2)
    require_pages(f, [], [])

    f.free(4, new_page(13, LEAF_PAGE_FLAG, 0, 3))
    require_pages(f, [], [13, 14, 15, 16])
    f.release_pending_pages()
    require_pages(f, [13, 14, 15, 16], [])
    f.rollback(1337)
    require_pages(f, [13, 14, 15, 16], [])


def test_e2e_rollback_raises():
    f = new_freelist()
    f.init([5])
    require_pages(f, [5], [])
    f.allocate(5, 1)
    with pytest.raises(RuntimeError, match="allocated by the same transaction"):
        f.free(5, new_page(5, LEAF_PAGE_FLAG, 0, 0))
        f.rollback(5)


def test_free_same_transaction_raises_under_verification():
    f = new_freelist()
    f.init([5])
    f.allocate(5, 1)
    with enable_all_verifications():
        with pytest.raises(RuntimeError, match="free: freed page"):
            f.free(5, new_page(5, LEAF_PAGE_FLAG, 0, 0))


def test_e2e_reload():
    f = new_freelist()
    f.init([])
    f.free(2, new_page(5, LEAF_PAGE_FLAG, 0, 1))
    f.free(2, new_page(8, LEAF_PAGE_FLAG, 0, 0))
    f.release_pending_pages()
    require_pages(f, [5, 6, 8], [])
    buf = bytearray(4096)
    p = load_page(buf)
    f.write(p)

    f.free(3, new_page(3, LEAF_PAGE_FLAG, 0, 1))
    f.free(3, new_page(10, LEAF_PAGE_FLAG, 0, 2))
    require_pages(f, [5, 6, 8], [3, 4, 10, 11, 12])

    other = bytearray(4096)
    px = load_page(other)
    f.write(px)

    loaded = new_freelist()
    loaded.init([])
    loaded.read(px)
    require_pages(loaded, [3, 4, 5, 6, 8, 10, 11, 12], [])
    loaded.reload(p)
    require_pages(loaded, [5, 6, 8], [])

    f = new_freelist()
    f.init([])
    f.free(5, new_page(5, LEAF_PAGE_FLAG, 0, 4))
    f.reload(p)
    require_pages(f, [], [5, 6, 7, 8, 9])


def test_e2e_serde_happy_path():
    f = new_freelist()
    f.init([])
    f.free(2, new_page(5, LEAF_PAGE_FLAG, 0, 1))
    f.free(2, new_page(8, LEAF_PAGE_FLAG, 0, 0))
    f.release_pending_pages()
    require_pages(f, [5, 6, 8], [])

    f.free(3, new_page(3, LEAF_PAGE_FLAG, 0, 1))
    f.free(3, new_page(10, LEAF_PAGE_FLAG, 0, 2))
    require_pages(f, [5, 6, 8], [3, 4, 10, 11, 12])

    buf = bytearray(4096)
    p = load_page(buf)
    assert f.estimated_write_page_size() == 80
    f.write(p)

    loaded = new_freelist()
    loaded.init([])
    loaded.read(p)
    require_pages(loaded, [3, 4, 5, 6, 8, 10, 11, 12], [])


@pytest.mark.parametrize("size", [0, 1, 10, 100, 1000, 65535, 65536, 131070])
def test_e2e_serde_sizes(size):
    f = new_freelist()
    expected = [i + 2 for i in range(size)]
    for pgid in expected:
        f.free(1, new_page(pgid, LEAF_PAGE_FLAG, 0, 0))
    f.release_pending_pages()
    require_pages(f, expected, [])
    buf = bytearray(f.estimated_write_page_size())
    p = load_page(buf)
    f.write(p)

    loaded = new_freelist()
    loaded.read(p)
    require_pages(loaded, expected, [])


def test_write_too_small_buffer_raises():
    f = new_freelist()
    f.init([3, 4, 5])
    p = load_page(bytearray(20))
    with pytest.raises(ValueError, match="freelist needs"):
        f.write(p)


def test_copyall_merges_free_and_pending():
    f = new_freelist()
    f.init([4, 9])
    f.free(7, new_page(6, LEAF_PAGE_FLAG, 0, 1))
    f.free(8, new_page(2, LEAF_PAGE_FLAG, 0, 0))
    assert f.copyall() == [2, 4, 6, 7, 9]


def test_readonly_txid_blocks_release():
    f = new_freelist()
    f.init([])
    f.free(5, new_page(10, LEAF_PAGE_FLAG, 0, 0))
    f.add_readonly_txid(4)
    f.release_pending_pages()
    require_pages(f, [], [10])
    f.remove_readonly_txid(4)
    f.release_pending_pages()
    require_pages(f, [10], [])
import pytest

from boltfile.inode import (
    Inode,
    read_inodes_from_page,
    used_space_in_page,
    write_inodes_to_page,
)
from boltfile.page import (
    BRANCH_PAGE_FLAG,
    LEAF_PAGE_ELEMENT_SIZE,
    LEAF_PAGE_FLAG,
    PAGE_HEADER_SIZE,
    load_page,
)


def test_read_leaf_page():
    buf = bytearray(4096)
    page = load_page(buf)
    page.flags = LEAF_PAGE_FLAG
    page.count = 2
    first = page.leaf_page_element(0)
    first.flags, first.pos, first.ksize, first.vsize = 0, 32, 3, 4
    second = page.leaf_page_element(1)
    second.flags, second.pos, second.ksize, second.vsize = 0, 23, 10, 3
    start = PAGE_HEADER_SIZE + LEAF_PAGE_ELEMENT_SIZE * 2
    text = b"barfoozhelloworldbye"
    buf[start:start + len(text)] = text

    inodes = read_inodes_from_page(page)
    assert [(i.key, i.value) for i in inodes] == [
        (b"bar", b"fooz"),
        (b"helloworld", b"bye"),
    ]


def test_leaf_round_trip():
    inodes = [
        Inode(key=b"john", value=b"johnson"),
        Inode(key=b"ricki", value=b"lake"),
        Inode(flags=1, key=b"susy", value=b"que"),
    ]
    buf = bytearray(4096)
    page = load_page(buf)
    page.flags = LEAF_PAGE_FLAG
    page.count = len(inodes)
    used = write_inodes_to_page(inodes, page)
    assert used == used_space_in_page(inodes, page)
    assert read_inodes_from_page(load_page(buf)) == inodes


def test_branch_round_trip():
    inodes = [Inode(pgid=4, key=b"a"), Inode(pgid=9, key=b"mm")]
    buf = bytearray(1024)
    page = load_page(buf)
    page.id = 2
    page.flags = BRANCH_PAGE_FLAG
    page.count = len(inodes)
    write_inodes_to_page(inodes, page)
    assert read_inodes_from_page(page) == inodes


def test_data_follows_element_headers():
    inodes = [Inode(key=b"k1", value=b"v1"), Inode(key=b"k2", value=b"v2")]
    buf = bytearray(512)
    page = load_page(buf)
    page.flags = LEAF_PAGE_FLAG
    page.count = 2
    used = write_inodes_to_page(inodes, page)
    data_start = PAGE_HEADER_SIZE + LEAF_PAGE_ELEMENT_SIZE * 2
    assert bytes(buf[data_start:used]) == b"k1v1k2v2"


def test_write_circular_dependency():
    buf = bytearray(512)
    page = load_page(buf)
    page.id = 5
    page.flags = BRANCH_PAGE_FLAG
    page.count = 1
    inodes = [Inode(pgid=5, key=b"x")]
    assert used_space_in_page(inodes, page) == PAGE_HEADER_SIZE + 16 + 1
    with pytest.raises(AssertionError) as info:
        write_inodes_to_page(inodes, page)
    assert "circular dependency" in str(info.value)


def test_write_zero_length_key():
    buf = bytearray(512)
    page = load_page(buf)
    page.flags = LEAF_PAGE_FLAG
    page.count = 1
    inodes = [Inode(key=b"", value=b"v")]
    assert used_space_in_page(inodes, page) == PAGE_HEADER_SIZE + LEAF_PAGE_ELEMENT_SIZE + 1
    with pytest.raises(AssertionError) as info:
        write_inodes_to_page(inodes, page)
    assert "zero-length" in str(info.value)


def test_write_buffer_too_small():
    buf = bytearray(PAGE_HEADER_SIZE + LEAF_PAGE_ELEMENT_SIZE + 2)
    page = load_page(buf)
    page.flags = LEAF_PAGE_FLAG
    page.count = 1
    with pytest.raises(ValueError):
        write_inodes_to_page([Inode(key=b"long-key", value=b"value")], page)


def test_used_space_grows_with_data():
    page = load_page(bytearray(64))
    page.flags = LEAF_PAGE_FLAG
    small = used_space_in_page([Inode(key=b"a")], page)
    large = used_space_in_page([Inode(key=b"a", value=b"bcd")], page)
    assert large - small == 3
    assert used_space_in_page([], page) == PAGE_HEADER_SIZE
"""In-memory B+tree nodes: deserialized pages that can be edited, split and written."""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .inode import Inode, read_inodes_from_page, write_inodes_to_page
from .page import (
    BRANCH_PAGE_ELEMENT_SIZE,
    BRANCH_PAGE_FLAG,
    LEAF_PAGE_ELEMENT_SIZE,
    LEAF_PAGE_FLAG,
    MIN_KEYS_PER_PAGE,
    PAGE_HEADER_SIZE,
    Page,
    Pgid,
)
from .verify import assert_that

MIN_FILL_PERCENT = 0.1
MAX_FILL_PERCENT = 1.0
DEFAULT_FILL_PERCENT = 0.5

_MAX_INODES = 0xFFFF


def compare_keys(left: bytes, right: bytes) -> int:
    """Compare two keys bytewise; return -1, 0 or 1."""
    left, right = bytes(left), bytes(right)
    return (left > right) - (left < right)


@dataclass
class NodeContext:
    """What a node needs from its bucket and transaction.

    ``high_water_mark`` is the first page id beyond the file, ``fill_percent``
    the bucket's split threshold, and ``split_count`` counts node splits.
    """

    high_water_mark: Pgid = 0
    fill_percent: float = DEFAULT_FILL_PERCENT
    split_count: int = 0


@dataclass(eq=False)
class Node:
    """An in-memory, deserialized page."""

    context: NodeContext
    is_leaf: bool = False
    unbalanced: bool = False
    spilled: bool = False
    key: Optional[bytes] = None
    pgid: Pgid = 0
    parent: Optional["Node"] = None
    children: List["Node"] = field(default_factory=list)
    inodes: List[Inode] = field(default_factory=list)

    def root(self) -> "Node":
        """Return the top-level node this node is attached to."""
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def min_keys(self) -> int:
        """Return the minimum number of inodes this node should have."""
        return 1 if self.is_leaf else 2

    def page_element_size(self) -> int:
        return LEAF_PAGE_ELEMENT_SIZE if self.is_leaf else BRANCH_PAGE_ELEMENT_SIZE

    def size(self) -> int:
        """Return the size of the node once serialized."""
        elsz = self.page_element_size()
        return PAGE_HEADER_SIZE + sum(
            elsz + len(item.key) + len(item.value) for item in self.inodes
        )

    def size_less_than(self, limit: int) -> bool:
        """Return True if the serialized node is smaller than ``limit``."""
        sz = PAGE_HEADER_SIZE
        elsz = self.page_element_size()
        for item in self.inodes:
            sz += elsz + len(item.key) + len(item.value)
            if sz >= limit:
                return False
        return True

    def _search(self, key: bytes) -> int:
        return bisect_left(self.inodes, bytes(key), key=lambda item: bytes(item.key))

    def child_index(self, child: "Node") -> int:
        """Return the index of the inode pointing at ``child``."""
        return self._search(child.key or b"")

    def num_children(self) -> int:
        return len(self.inodes)

    def put(self, old_key: bytes, new_key: bytes, value: Optional[bytes],
            pgid: Pgid, flags: int) -> None:
        """Insert or replace the inode stored under ``old_key``."""
        hwm = self.context.high_water_mark
        if pgid >= hwm:
            raise ValueError(f"pgId ({pgid}) above high water mark ({hwm})")
        if not old_key:
            raise ValueError("put: zero-length old key")
        if not new_key:
            raise ValueError("put: zero-length new key")

        index = self._search(old_key)
        exact = index < len(self.inodes) and self.inodes[index].key == old_key
        if not exact:
            self.inodes.insert(index, Inode())

        inode = self.inodes[index]
        inode.flags = flags
        inode.key = bytes(new_key)
        inode.value = b"" if value is None else bytes(value)
        inode.pgid = pgid
        assert_that(len(inode.key) > 0, "put: zero-length inode key")

    def delete(self, key: bytes) -> None:
        """Remove ``key`` from the node and mark it for rebalancing."""
        index = self._search(key)
        if index >= len(self.inodes) or self.inodes[index].key != key:
            return
        del self.inodes[index]
        self.unbalanced = True

    def read(self, page: Page) -> None:
        """Initialise the node from a page."""
        self.pgid = page.id
        self.is_leaf = page.is_leaf_page()
        self.inodes = read_inodes_from_page(page)
        if self.inodes:
            self.key = self.inodes[0].key
            assert_that(len(self.key) > 0, "read: zero-length node key")
        else:
            self.key = None

    def write(self, page: Page) -> None:
        """Write the inodes onto an empty page."""
        assert_that(
            page.count == 0 and page.flags == 0,
            "node cannot be written into a not empty page",
        )
        page.flags = LEAF_PAGE_FLAG if self.is_leaf else BRANCH_PAGE_FLAG
        if len(self.inodes) >= _MAX_INODES:
            raise OverflowError(f"inode overflow: {len(self.inodes)} (pgid={page.id})")
        page.count = len(self.inodes)
        if page.count == 0:
            return
        write_inodes_to_page(self.inodes, page)

    def split(self, page_size: int) -> List["Node"]:
        """Break the node into page-sized nodes; the first is always this node."""
        nodes: List[Node] = []
        node: Optional[Node] = self
        while node is not None:
            first, node = node.split_two(page_size)
            nodes.append(first)
        return nodes

    def split_two(self, page_size: int) -> Tuple["Node", Optional["Node"]]:
        """Split off a second node if this one does not fit on one page."""
        if len(self.inodes) <= MIN_KEYS_PER_PAGE * 2 or self.size_less_than(page_size):
            return self, None

        fill_percent = min(max(self.context.fill_percent, MIN_FILL_PERCENT), MAX_FILL_PERCENT)
        threshold = int(page_size * fill_percent)
        split_at, _ = self.split_index(threshold)

        if self.parent is None:
            self.parent = Node(self.context, children=[self])

        following = Node(self.context, is_leaf=self.is_leaf, parent=self.parent)
        self.parent.children.append(following)

        following.inodes = self.inodes[split_at:]
        self.inodes = self.inodes[:split_at]

        self.context.split_count += 1
        return self, following

    def split_index(self, threshold: int) -> Tuple[int, int]:
        """Return where the first page fills ``threshold`` and that page's size."""
        index = 0
        sz = PAGE_HEADER_SIZE
        elsz = self.page_element_size()
        for i, inode in enumerate(self.inodes[:len(self.inodes) - MIN_KEYS_PER_PAGE]):
            index = i
            elsize = elsz + len(inode.key) + len(inode.value)
            if index >= MIN_KEYS_PER_PAGE and sz + elsize > threshold:
                break
            sz += elsize
        return index, sz

    def remove_child(self, target: "Node") -> None:
        """Drop ``target`` from the in-memory children; inodes are untouched."""
        for i, child in enumerate(self.children):
            if child is target:
                del self.children[i]
                return
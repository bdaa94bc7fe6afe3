"""Read-only exploration of the page tree of a database file."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List

from .guts import get_root_page, read_page
from .meta import load_page_meta
from .page import Page, Pgid

_Callback = Callable[[Page, List[Pgid]], None]


def _wrap(exc: Exception, context: str) -> Exception:
    message = f"{context}: {exc}"
    try:
        return type(exc)(message)
    except Exception:
        return RuntimeError(message)


@dataclass(frozen=True)
class XRay:
    """Walks every page reachable from the active root of a database file."""

    path: str

    def _traverse(self, stack: List[Pgid], callback: _Callback) -> None:
        try:
            page, data = read_page(self.path, stack[-1])
        except (OSError, ValueError, EOFError) as exc:
            raise _wrap(exc, f"failed reading page (stack {stack})") from exc

        try:
            callback(page, stack)
        except Exception as exc:
            raise _wrap(exc, f"failed callback for page (stack {stack})") from exc

        typ = page.typ()
        if typ == "meta":
            root = load_page_meta(data).root.root
            self._traverse([*stack, root], callback)
        elif typ == "branch":
            for elem in page.branch_page_elements():
                self._traverse([*stack, elem.pgid], callback)
        elif typ == "leaf":
            for elem in page.leaf_page_elements():
                if not elem.is_bucket_entry():
                    continue
                bucket = elem.bucket()
                if bucket.root > 0:
                    self._traverse([*stack, bucket.root], callback)
                else:
                    inline = bucket.inline_page(elem.value())
                    try:
                        callback(inline, stack)
                    except Exception as exc:
                        raise _wrap(
                            exc, f"failed callback for inline page  (stack {stack})"
                        ) from exc

    def find_paths_to_key(self, key: bytes) -> List[List[Pgid]]:
        """Return every page path from the root to a leaf holding ``key``.

        Several buckets may hold the same key, so more than one path can be
        found. Keys stored in inline buckets report the path of the page that
        holds the bucket.
        """
        key = bytes(key)
        found: List[List[Pgid]] = []
        root, _ = get_root_page(self.path)

        def _collect(page: Page, stack: List[Pgid]) -> None:
            if page.typ() != "leaf":
                return
            for elem in page.leaf_page_elements():
                if elem.key() == key:
                    found.append(list(stack))

        self._traverse([root], _collect)
        return found
"""First-fit page allocator over an address-ordered free list."""

from __future__ import annotations

import bisect
from typing import Iterator, List, Optional, Tuple

from pagealloc.page import Page, PageFrames, PageManager


def _require_positive(n: int) -> None:
    if n <= 0:
        raise ValueError(f"page count must be positive, got {n}")


class FirstFitManager(PageManager):
    """Allocates from the lowest-addressed free block that is large enough."""

    name = "default_pmm_manager"

    def __init__(self, frames: PageFrames) -> None:
        self.frames = frames
        self._free: List[Page] = []
        self._nr_free = 0

    def _span(self, base: Page, n: int) -> Iterator[Page]:
        self.frames.ppn(base)
        if base.index + n > len(self.frames):
            raise ValueError(f"range of {n} pages from page {base.index} runs past the frame table")
        return (self.frames[i] for i in range(base.index, base.index + n))

    def _insert(self, page: Page) -> int:
        pos = bisect.bisect_left(self._free, page.index, key=lambda p: p.index)
        self._free.insert(pos, page)
        return pos

    def _carve(self, page: Page, n: int) -> Page:
        """Take the first ``n`` pages of the free block headed by ``page``."""
        pos = self._free.index(page)
        del self._free[pos]
        if page.property > n:
            rest = self.frames[page.index + n]
            rest.property = page.property - n
            rest.head = True
            self._free.insert(pos, rest)
        self._nr_free -= n
        page.head = False
        return page

    def init_memmap(self, base: Page, n: int) -> None:
        _require_positive(n)
        pages = list(self._span(base, n))
        for page in pages:
            if not page.reserved:
                raise ValueError(f"page {page.index} is not reserved")
        for page in pages:
            page.reserved = False
            page.head = False
            page.property = 0
            page.ref = 0
        base.property = n
        base.head = True
        self._nr_free += n
        self._insert(base)

    def alloc_pages(self, n: int) -> Optional[Page]:
        _require_positive(n)
        if n > self._nr_free:
            return None
        page = next((p for p in self._free if p.property >= n), None)
        if page is None:
            return None
        return self._carve(page, n)

    def free_pages(self, base: Page, n: int) -> None:
        _require_positive(n)
        pages = list(self._span(base, n))
        for page in pages:
            if page.reserved or page.head:
                raise ValueError(f"page {page.index} is reserved or already free")
        for page in pages:
            page.reserved = False
            page.head = False
            page.ref = 0
        base.property = n
        base.head = True
        self._nr_free += n
        pos = self._insert(base)

        if pos > 0:
            prev = self._free[pos - 1]
            if prev.index + prev.property == base.index:
                prev.property += base.property
                base.head = False
                del self._free[pos]
                base = prev
                pos -= 1

        if pos + 1 < len(self._free):
            nxt = self._free[pos + 1]
            if base.index + base.property == nxt.index:
                base.property += nxt.property
                nxt.head = False
                del self._free[pos + 1]

    def nr_free_pages(self) -> int:
        return self._nr_free

    def free_blocks(self) -> List[Tuple[int, int]]:
        """Free blocks in address order, as (first page index, page count)."""
        return [(p.index, p.property) for p in self._free]
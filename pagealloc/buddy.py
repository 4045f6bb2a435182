"""Binary buddy page allocator with one free list per block order."""

from __future__ import annotations

from typing import List, Optional

from pagealloc.page import Page, PageFrames, PageManager

MAX_BUDDY_ORDER = 14


def is_power_of_2(n: int) -> bool:
    """True when ``n`` has at most one bit set (so 0 counts as a power)."""
    return n & (n - 1) == 0


def order_of_2(n: int) -> int:
    """Exponent of the highest power of two not above ``n`` (0 for 0 and 1)."""
    return max(n.bit_length() - 1, 0)


def floor_power_of_2(n: int) -> int:
    """Largest power of two that is not greater than ``n``."""
    if is_power_of_2(n):
        return n
    return 1 << (n.bit_length() - 1)


def ceil_power_of_2(n: int) -> int:
    """Smallest power of two that is not less than ``n``."""
    if is_power_of_2(n):
        return n
    return 1 << n.bit_length()


def _require_positive(n: int) -> None:
    if n <= 0:
        raise ValueError(f"page count must be positive, got {n}")


class BuddySystemManager(PageManager):
    """Buddy allocator: blocks are powers of two and merge with their buddies.

    The block handed over by ``init_memmap`` is rounded down to a power of
    two; buddies are located relative to its first page.
    """

    name = "buddy_system_pmm_manager"
    MAX_BUDDY_ORDER = MAX_BUDDY_ORDER

    def __init__(self, frames: PageFrames) -> None:
        self.frames = frames
        self._lists: List[List[Page]] = [[] for _ in range(self.MAX_BUDDY_ORDER + 1)]
        self.max_order = 0
        self._nr_free = 0
        self._origin = 0

    def _split(self, order: int) -> None:
        """Split the first free block of ``order`` into two halves."""
        if not 0 < order <= self.max_order:
            raise ValueError(f"cannot split a block of order {order}")
        if not self._lists[order]:
            raise ValueError(f"no free block of order {order} to split")
        first = self._lists[order].pop(0)
        second = self.frames[first.index + (1 << (order - 1))]
        for page in (first, second):
            page.property = order - 1
            page.head = True
        self._lists[order - 1][0:0] = [first, second]

    def init_memmap(self, base: Page, n: int) -> None:
        _require_positive(n)
        self.frames.ppn(base)
        p_number = floor_power_of_2(n)
        order = order_of_2(p_number)
        if order > self.MAX_BUDDY_ORDER:
            raise ValueError(f"block of {p_number} pages exceeds the largest order {self.MAX_BUDDY_ORDER}")
        if base.index + p_number > len(self.frames):
            raise ValueError(f"range of {p_number} pages from page {base.index} runs past the frame table")
        pages = [self.frames[i] for i in range(base.index, base.index + p_number)]
        for page in pages:
            if not page.reserved:
                raise ValueError(f"page {page.index} is not reserved")
        for page in pages:
            page.reserved = False
            page.head = False
            page.property = -1
            page.ref = 0
        self.max_order = order
        self._nr_free = p_number
        self._origin = base.index
        self._lists[order].insert(0, base)
        base.property = order
        base.head = True

    def alloc_pages(self, n: int) -> Optional[Page]:
        _require_positive(n)
        if n > self._nr_free:
            return None
        adjusted = ceil_power_of_2(n)
        order = order_of_2(adjusted)
        while not self._lists[order]:
            donor = next(
                (i for i in range(order + 1, self.max_order + 1) if self._lists[i]),
                None,
            )
            if donor is None:
                return None
            self._split(donor)
        page = self._lists[order].pop(0)
        page.head = False
        self._nr_free -= adjusted
        return page

    def buddy_of(self, base: Page, order: int) -> Optional[Page]:
        """The buddy of the order-``order`` block at ``base``, if it exists."""
        offset = base.index - self._origin
        if offset < 0:
            raise ValueError(f"page {base.index} lies below the managed region")
        index = self._origin + (offset ^ (1 << order))
        if not 0 <= index < len(self.frames):
            return None
        return self.frames[index]

    def free_pages(self, base: Page, n: int) -> None:
        _require_positive(n)
        self.frames.ppn(base)
        if base.property < 0:
            raise ValueError(f"page {base.index} is not the head of an allocated block")
        p_number = 1 << base.property
        if ceil_power_of_2(n) != p_number:
            raise ValueError(f"freeing {n} pages does not match a block of {p_number} pages")

        left = base
        self._lists[left.property].insert(0, left)
        buddy = self.buddy_of(left, left.property)
        while (
            buddy is not None
            and buddy.head
            and buddy.property == left.property
            and left.property < self.max_order
        ):
            if left.index > buddy.index:
                left, buddy = buddy, left
            self._lists[left.property].remove(left)
            self._lists[buddy.property].remove(buddy)
            buddy.head = False
            buddy.property = -1
            left.property += 1
            self._lists[left.property].insert(0, left)
            buddy = self.buddy_of(left, left.property)
        left.head = True
        self._nr_free += p_number

    def nr_free_pages(self) -> int:
        return self._nr_free

    def free_lists(self) -> List[List[int]]:
        """Page indices of the free blocks, one list per order, in list order."""
        return [[p.index for p in blocks] for blocks in self._lists]

    def render(self, left: int, right: int) -> str:
        """Text listing of the free lists for orders ``left`` to ``right``."""
        if not (0 <= left <= self.max_order and 0 <= right <= self.max_order):
            raise ValueError(f"order range {left}..{right} outside 0..{self.max_order}")
        lines = ["------------------ free lists ------------------"]
        empty = True
        for order in range(left, right + 1):
            blocks = self._lists[order]
            if not blocks:
                continue
            empty = False
            for page in blocks:
                lines.append(
                    f"order {order}: {1 << page.property} pages at page {page.index} "
                    f"[pa {self.frames.pa(page):#x}]"
                )
            if order != right:
                lines.append("")
        if empty:
            lines.append("no free blocks")
        lines.append("------------------ done ------------------")
        return "\n".join(lines) + "\n"
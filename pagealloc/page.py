"""Physical page descriptors, the page-frame table and the manager interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Optional

PGSHIFT = 12
PGSIZE = 1 << PGSHIFT
DRAM_BASE = 0x80000000
NBASE = DRAM_BASE // PGSIZE


class InvalidAddressError(ValueError):
    """Raised when a physical address does not name a managed page frame."""


@dataclass(eq=False)
class Page:
    """Descriptor of one physical page frame.

    ``head`` marks the first page of a free block; ``property`` holds the
    block's size (or, for the buddy allocator, its order).
    """

    index: int
    reserved: bool = False
    head: bool = False
    property: int = 0
    ref: int = 0


class PageFrames:
    """The table of page descriptors for a contiguous run of physical frames.

    Every frame starts out reserved; a manager takes ownership of a range
    through ``init_memmap``.
    """

    def __init__(self, count: int, base_ppn: int = NBASE) -> None:
        if count < 0:
            raise ValueError(f"page count must not be negative, got {count}")
        if base_ppn < 0:
            raise ValueError(f"base page number must not be negative, got {base_ppn}")
        self.base_ppn = base_ppn
        self.npage = base_ppn + count
        self._pages = [Page(i, reserved=True) for i in range(count)]

    def __getitem__(self, index: int) -> Page:
        if not 0 <= index < len(self._pages):
            raise IndexError(f"page index {index} out of range")
        return self._pages[index]

    def __len__(self) -> int:
        return len(self._pages)

    def __iter__(self) -> Iterator[Page]:
        return iter(self._pages)

    def _check_owned(self, page: Page) -> None:
        if not (0 <= page.index < len(self._pages) and self._pages[page.index] is page):
            raise ValueError(f"page {page.index} does not belong to this frame table")

    def ppn(self, page: Page) -> int:
        """Physical page number of ``page``."""
        self._check_owned(page)
        return page.index + self.base_ppn

    def pa(self, page: Page) -> int:
        """Physical address of the first byte of ``page``."""
        return self.ppn(page) << PGSHIFT

    def from_pa(self, pa: int) -> Page:
        """The page holding physical address ``pa``."""
        ppn = pa >> PGSHIFT
        if not self.base_ppn <= ppn < self.npage:
            raise InvalidAddressError(f"physical address {pa:#x} is not a managed page")
        return self._pages[ppn - self.base_ppn]


class PageManager(ABC):
    """Interface shared by the physical page allocators."""

    name = "pmm_manager"

    @abstractmethod
    def init_memmap(self, base: Page, n: int) -> None:
        """Hand ``n`` reserved pages starting at ``base`` to the manager."""

    @abstractmethod
    def alloc_pages(self, n: int) -> Optional[Page]:
        """Allocate ``n`` contiguous pages, or return None."""

    @abstractmethod
    def free_pages(self, base: Page, n: int) -> None:
        """Return ``n`` pages starting at ``base`` to the manager."""

    @abstractmethod
    def nr_free_pages(self) -> int:
        """Number of free pages."""
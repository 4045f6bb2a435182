"""Physical memory manager: memory layout, manager selection and locked access."""

from __future__ import annotations

import argparse
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from pagealloc.best_fit import BestFitManager
from pagealloc.buddy import BuddySystemManager
from pagealloc.first_fit import FirstFitManager
from pagealloc.page import DRAM_BASE, NBASE, PGSIZE, Page, PageFrames, PageManager
from pagealloc.slub import SlabObject, SlubAllocator

KERNEL_BEGIN_PADDR = 0x80200000
PHYSICAL_MEMORY_END = 0x88000000
DEFAULT_KERNEL_END = 0x80207000
PAGE_STRUCT_SIZE = 0x28
DEFAULT_MANAGER = "buddy_system_pmm_manager"


def _round_up(value: int, align: int) -> int:
    return -(-value // align) * align


def _round_down(value: int, align: int) -> int:
    return value // align * align


@dataclass(frozen=True)
class MemoryLayout:
    """Where the kernel, the page table and the free memory lie (physical addresses)."""

    mem_begin: int
    mem_end: int
    kernel_end: int
    npage: int
    nbase: int
    pages_pa: int
    freemem: int
    free_begin: int
    free_end: int

    @property
    def mem_size(self) -> int:
        return self.mem_end - self.mem_begin

    @property
    def frame_count(self) -> int:
        """Number of page descriptors, one per frame from DRAM_BASE up."""
        return self.npage - self.nbase

    @property
    def free_page_count(self) -> int:
        """Pages handed to the manager; zero when the page table leaves no room."""
        if self.freemem >= self.free_end or self.free_end <= self.free_begin:
            return 0
        return (self.free_end - self.free_begin) // PGSIZE


def compute_layout(kernel_end: int = DEFAULT_KERNEL_END,
                   mem_end: int = PHYSICAL_MEMORY_END) -> MemoryLayout:
    """Lay out the page descriptor table after the kernel and find the free memory."""
    if kernel_end < KERNEL_BEGIN_PADDR:
        raise ValueError(f"kernel end {kernel_end:#x} lies below the kernel start "
                         f"{KERNEL_BEGIN_PADDR:#x}")
    if mem_end <= kernel_end:
        raise ValueError(f"memory end {mem_end:#x} does not lie above the kernel end "
                         f"{kernel_end:#x}")
    npage = mem_end // PGSIZE
    pages_pa = _round_up(kernel_end, PGSIZE)
    freemem = pages_pa + PAGE_STRUCT_SIZE * (npage - NBASE)
    return MemoryLayout(
        mem_begin=KERNEL_BEGIN_PADDR,
        mem_end=mem_end,
        kernel_end=kernel_end,
        npage=npage,
        nbase=NBASE,
        pages_pa=pages_pa,
        freemem=freemem,
        free_begin=_round_up(freemem, PGSIZE),
        free_end=_round_down(mem_end, PGSIZE),
    )


class _SlubPageManager(PageManager):
    """Presents the slab allocator through the page manager interface.

    ``alloc_pages(n)`` allocates an object of ``n`` bytes and ``free_pages``
    releases such an object.
    """

    name = SlubAllocator.name

    def __init__(self, frames: PageFrames) -> None:
        self.allocator = SlubAllocator(frames)

    def init_memmap(self, base: Page, n: int) -> None:
        self.allocator.init_memmap(base, n)

    def alloc_pages(self, n: int) -> Optional[SlabObject]:  # type: ignore[override]
        return self.allocator.alloc_obj(n)

    def free_pages(self, base: SlabObject, n: int) -> None:  # type: ignore[override]
        self.allocator.free_obj(base)

    def nr_free_pages(self) -> int:
        return self.allocator.nr_free_pages()


_MANAGERS: Dict[str, Callable[[PageFrames], PageManager]] = {
    FirstFitManager.name: FirstFitManager,
    BestFitManager.name: BestFitManager,
    BuddySystemManager.name: BuddySystemManager,
    _SlubPageManager.name: _SlubPageManager,
}


def create_manager(name: str, frames: PageFrames) -> PageManager:
    """Build the page manager registered under ``name`` over ``frames``."""
    try:
        factory = _MANAGERS[name]
    except KeyError:
        known = ", ".join(sorted(_MANAGERS))
        raise ValueError(f"unknown memory manager {name!r}; choose one of {known}") from None
    return factory(frames)


class PhysicalMemoryManager:
    """Owns the frame table and a page manager; every call runs under one lock."""

    def __init__(self, manager_name: str = DEFAULT_MANAGER,
                 kernel_end: int = DEFAULT_KERNEL_END,
                 mem_end: int = PHYSICAL_MEMORY_END) -> None:
        self.layout = compute_layout(kernel_end, mem_end)
        self.frames = PageFrames(self.layout.frame_count, self.layout.nbase)
        self.manager = create_manager(manager_name, self.frames)
        self._lock = threading.RLock()
        count = self.layout.free_page_count
        if count > 0:
            with self._lock:
                self.manager.init_memmap(self.frames.from_pa(self.layout.free_begin), count)

    @property
    def name(self) -> str:
        return self.manager.name

    def alloc_pages(self, n: int):
        """Allocate ``n`` contiguous pages through the manager, or return None."""
        with self._lock:
            return self.manager.alloc_pages(n)

    def free_pages(self, base, n: int) -> None:
        """Return ``n`` pages starting at ``base`` to the manager."""
        with self._lock:
            self.manager.free_pages(base, n)

    def alloc_page(self):
        return self.alloc_pages(1)

    def free_page(self, page) -> None:
        self.free_pages(page, 1)

    def nr_free_pages(self) -> int:
        with self._lock:
            return self.manager.nr_free_pages()

    def report(self) -> List[str]:
        """Lines describing the manager and the memory layout."""
        lay = self.layout
        return [
            f"memory management: {self.name}",
            "physical memory map:",
            f"  memory: 0x{lay.mem_size:016x}, [0x{lay.mem_begin:016x}, 0x{lay.mem_end - 1:016x}].",
            f"npage: 0x{lay.npage:016x}.",
            f"nbase: 0x{lay.nbase:016x}.",
            f"pages physical address: 0x{lay.pages_pa:016x}.",
            f"freemem: 0x{lay.freemem:016x}.",
            f"mem_begin: 0x{lay.free_begin:016x}.",
            f"mem_end: 0x{lay.free_end:016x}.",
            f"free pages: 0x{lay.free_page_count:016x}.",
            f"nr_free_pages: {self.nr_free_pages()}",
        ]


def _address(text: str) -> int:
    return int(text, 0)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Set up physical memory and show its layout.")
    parser.add_argument("--manager", choices=sorted(_MANAGERS), default=DEFAULT_MANAGER)
    parser.add_argument("--kernel-end", type=_address, default=DEFAULT_KERNEL_END,
                        help="physical address where the kernel image ends")
    parser.add_argument("--mem-end", type=_address, default=PHYSICAL_MEMORY_END,
                        help="physical address where memory ends")
    args = parser.parse_args(argv)
    try:
        pmm = PhysicalMemoryManager(args.manager, args.kernel_end, args.mem_end)
    except ValueError as exc:
        parser.error(str(exc))
    print("\n".join(pmm.report()))
    return 0
# pagealloc

A small model of a kernel's physical memory manager. Every page frame is a
Python `Page` object in a `PageFrames` table. Several allocation strategies
can manage the frames, and any one of them can stand in for another:

- `FirstFitManager` (`pagealloc.first_fit`) hands out the first free block
  that is large enough. Its free list is kept in address order. When a block
  is freed, it is merged with the free blocks directly before and after it.
  `free_blocks()` lists the free blocks as `(first page index, page count)`.
- `BestFitManager` (`pagealloc.best_fit`) hands out the smallest free block
  that is large enough. When two blocks are the same size, it takes the one
  with the lower address. Freeing works as in the first-fit manager.
- `BuddySystemManager` (`pagealloc.buddy`) keeps power-of-two blocks in one
  free list per order, up to order 14.
  - `init_memmap` rounds the region it is given down to a power of two.
  - Allocation rounds the request up to a power of two and splits larger
    blocks as needed.
  - Freeing merges a block with its buddy for as long as the buddy is free.
  - `free_lists()` returns the free lists.
  - `render(left, right)` formats the free lists as text.
  - The module also provides the helpers `is_power_of_2`, `order_of_2`,
    `floor_power_of_2` and `ceil_power_of_2`.
- `SlubAllocator` (`pagealloc.slub`) turns single pages into slabs of 32-,
  64- and 128-byte objects. It sits on top of a first-fit page allocator.
  - `alloc_obj(size)` returns a `SlabObject`. The object has `addr`, `size`
    and a writable `data` view.
  - `alloc_obj` returns `None` in three cases: the size is not positive, the
    size is over 128 bytes, or no page is left.
  - `free_obj` clears the object's bytes. When a slab becomes empty, its page
    goes back to the page level.
  - `calculate_objs_num` gives the number of objects per slab: 126, 63 and
    31 for the three caches.

`pagealloc.pmm` ties these together.

- `compute_layout(kernel_end, mem_end)` returns a `MemoryLayout`. The layout
  records where the page-descriptor table sits after the kernel image and
  which page-aligned region is left free.
- `create_manager(name, frames)` builds a manager by name.
- `PhysicalMemoryManager` builds the frame table, creates the manager you
  choose and hands the free region to that manager. Every call runs under a
  lock.

## Installation

```
pip install .
```

With the test extra:

```
pip install .[test]
pytest
```

## Usage

```python
from pagealloc.pmm import PhysicalMemoryManager

pmm = PhysicalMemoryManager("default_pmm_manager")
print(pmm.nr_free_pages())

block = pmm.alloc_pages(5)
pmm.free_pages(block, 5)

page = pmm.alloc_page()
pmm.free_page(page)

print("\n".join(pmm.report()))
```

The manager names are:

- `default_pmm_manager`
- `best_fit_pmm_manager`
- `buddy_system_pmm_manager` (the default)
- `slub_pmm_manager`

Under `slub_pmm_manager` the arguments mean something different:
`alloc_pages(n)` allocates one object of `n` bytes, and `free_pages`
releases that object.

`PageFrames` maps frames to physical page numbers and addresses through
`ppn`, `pa` and `from_pa`. `from_pa` raises `InvalidAddressError` for an
address outside the table. Invalid page counts or ranges raise `ValueError`.

You can also run a strategy on its own:

```python
from pagealloc.page import PageFrames
from pagealloc.buddy import BuddySystemManager

frames = PageFrames(64, 0x80000)
buddy = BuddySystemManager(frames)
buddy.init_memmap(frames[0], 64)
block = buddy.alloc_pages(10)   # rounded up to 16 pages
print(buddy.render(0, 6))
buddy.free_pages(block, 10)
```

```python
from pagealloc.page import PageFrames
from pagealloc.slub import SlubAllocator

frames = PageFrames(16, 0x80000)
slub = SlubAllocator(frames)
slub.init_memmap(frames[0], 16)
obj = slub.alloc_obj(40)        # served from the 64-byte cache
obj.data[:4] = b"abcd"
slub.free_obj(obj)
```

## Command line

```
pagealloc [--manager NAME] [--kernel-end ADDR] [--mem-end ADDR]
```

The command sets up the simulated memory with the chosen manager. It prints
the layout and the number of free pages. Addresses may be written in decimal
or with a `0x` prefix.

## What it does not do

This is a simulation. It does not reserve or touch real memory, and it does
not disable interrupts; the lock in `PhysicalMemoryManager` takes their
place. It has no page tables or virtual-memory mapping. Slab object contents
are held in Python byte arrays.
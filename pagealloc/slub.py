"""Two-level small-object allocator: first-fit pages below, slab caches above.

Each slab occupies one page laid out as a header, the object array and an
allocation bitmap. Three caches serve objects of up to 32, 64 and 128 bytes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pagealloc.first_fit import FirstFitManager
from pagealloc.page import PGSIZE, Page, PageFrames

SLAB_STRUCT_SIZE = 40
CACHE_SIZES = (32, 64, 128)


def calculate_objs_num(obj_size: int) -> int:
    """Largest object count whose header, objects and bitmap fit in one page.

    A slab that could hold no object at all is still given one.
    """
    if obj_size <= 0:
        raise ValueError(f"object size must be positive, got {obj_size}")
    # Solve SLAB_STRUCT_SIZE + n * obj_size + n / 8 <= PGSIZE exactly.
    count = (PGSIZE - SLAB_STRUCT_SIZE) * 8 // (obj_size * 8 + 1)
    return max(count, 1)


@dataclass(eq=False)
class Slab:
    """One page of equally sized objects with a per-object allocation map."""

    page: Page
    base_pa: int
    obj_size: int
    objs_num: int
    free_cnt: int = field(init=False)
    allocated: List[bool] = field(init=False)
    storage: bytearray = field(init=False)

    def __post_init__(self) -> None:
        self.free_cnt = self.objs_num
        self.allocated = [False] * self.objs_num
        self.storage = bytearray(self.obj_size * self.objs_num)

    @property
    def objs_addr(self) -> int:
        """Physical address of the first object slot."""
        return self.base_pa + SLAB_STRUCT_SIZE

    def take(self) -> Optional[int]:
        """Mark the lowest free slot allocated and return its index."""
        for index, used in enumerate(self.allocated):
            if not used:
                self.allocated[index] = True
                self.free_cnt -= 1
                return index
        return None

    def release(self, index: int) -> bool:
        """Free slot ``index`` and clear its memory; False if it was not in use."""
        if not 0 <= index < self.objs_num or not self.allocated[index]:
            return False
        self.allocated[index] = False
        self.free_cnt += 1
        start = index * self.obj_size
        self.storage[start:start + self.obj_size] = bytes(self.obj_size)
        return True


@dataclass(eq=False)
class SlabObject:
    """Handle to one object slot inside a slab."""

    slab: Slab
    index: int

    @property
    def size(self) -> int:
        return self.slab.obj_size

    @property
    def addr(self) -> int:
        """Physical address of the object."""
        return self.slab.objs_addr + self.index * self.slab.obj_size

    @property
    def data(self) -> memoryview:
        """Writable view of the object's bytes."""
        start = self.index * self.slab.obj_size
        return memoryview(self.slab.storage)[start:start + self.slab.obj_size]


@dataclass(eq=False)
class Cache:
    """Slabs holding objects of one fixed size, most recently created first."""

    obj_size: int
    objs_num: int
    slabs: List[Slab] = field(default_factory=list)


class SlubAllocator:
    """Serves small objects from slab caches backed by a first-fit page allocator."""

    name = "slub_pmm_manager"

    def __init__(self, frames: PageFrames) -> None:
        self.frames = frames
        self.pages = FirstFitManager(frames)
        self.caches: Tuple[Cache, ...] = tuple(
            Cache(size, calculate_objs_num(size)) for size in CACHE_SIZES
        )

    def init_memmap(self, base: Page, n: int) -> None:
        """Hand ``n`` reserved pages starting at ``base`` to the page level."""
        self.pages.init_memmap(base, n)

    def _create_slab(self, cache: Cache) -> Optional[Slab]:
        page = self.pages.alloc_pages(1)
        if page is None:
            return None
        return Slab(page, self.frames.pa(page), cache.obj_size, cache.objs_num)

    def alloc_obj(self, size: int) -> Optional[SlabObject]:
        """Allocate an object of at least ``size`` bytes, or return None.

        None is returned for a non-positive size, for sizes larger than the
        largest cache, and when no page is left for a new slab.
        """
        if size <= 0:
            return None
        cache = next((c for c in self.caches if c.obj_size >= size), None)
        if cache is None:
            return None
        for slab in cache.slabs:
            if slab.free_cnt > 0:
                index = slab.take()
                if index is not None:
                    return SlabObject(slab, index)
        slab = self._create_slab(cache)
        if slab is None:
            return None
        cache.slabs.insert(0, slab)
        index = slab.take()
        assert index is not None
        return SlabObject(slab, index)

    def free_obj(self, obj: SlabObject) -> None:
        """Free ``obj``; a slab left empty gives its page back.

        Objects that do not belong to this allocator, and objects already
        freed, are ignored.
        """
        slab = obj.slab
        for cache in self.caches:
            if not any(s is slab for s in cache.slabs):
                continue
            if slab.release(obj.index) and slab.free_cnt == cache.objs_num:
                cache.slabs.remove(slab)
                self.pages.free_pages(slab.page, 1)
            return

    def nr_free_pages(self) -> int:
        """Number of free pages at the page level."""
        return self.pages.nr_free_pages()
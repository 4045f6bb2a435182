"""Best-fit page allocator over an address-ordered free list."""

from __future__ import annotations

from typing import Optional

from pagealloc.first_fit import FirstFitManager, _require_positive
from pagealloc.page import Page


class BestFitManager(FirstFitManager):
    """Allocates from the smallest free block that is large enough.

    Among blocks of equal size the lowest-addressed one is chosen. Freeing
    and coalescing behave exactly as in the first-fit manager.
    """

    name = "best_fit_pmm_manager"

    def alloc_pages(self, n: int) -> Optional[Page]:
        _require_positive(n)
        if n > self._nr_free:
            return None
        candidates = (p for p in self._free if p.property >= n)
        page = min(candidates, key=lambda p: p.property, default=None)
        if page is None:
            return None
        return self._carve(page, n)
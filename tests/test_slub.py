import pytest

from pagealloc.page import PageFrames
from pagealloc.slub import SlubAllocator, calculate_objs_num


def _allocator(npages=1024):
    frames = PageFrames(npages)
    alloc = SlubAllocator(frames)
    alloc.init_memmap(frames[0], npages)
    return alloc


@pytest.fixture
def slub():
    return _allocator()


def test_objects_per_slab_match_source():
    assert [calculate_objs_num(s) for s in (32, 64, 128)] == [126, 63, 31]


def test_cache_layout(slub):
    assert [(c.obj_size, c.objs_num) for c in slub.caches] == [(32, 126), (64, 63), (128, 31)]


def test_objs_num_at_least_one():
    assert calculate_objs_num(4096) == 1


def test_objs_num_rejects_non_positive():
    with pytest.raises(ValueError):
        calculate_objs_num(0)


def test_boundary_sizes(slub):
    before = slub.nr_free_pages()
    assert slub.alloc_obj(0) is None
    assert slub.alloc_obj(256) is None
    assert slub.nr_free_pages() == before


def test_alloc_write_free_and_zeroed_reuse(slub):
    obj1 = slub.alloc_obj(32)
    assert obj1 is not None
    obj1.data[:] = b"\x66" * 32
    assert bytes(obj1.data) == b"\x66" * 32
    slub.free_obj(obj1)
    obj2 = slub.alloc_obj(32)
    assert bytes(obj2.data) == bytes(32)
    assert obj2.addr == obj1.addr
    slub.free_obj(obj2)


def test_size_rounds_up_to_cache(slub):
    obj = slub.alloc_obj(25)
    assert obj.size == 32
    assert len(obj.data) == 32


def test_multiple_objects(slub):
    objs = [slub.alloc_obj(64) for _ in range(10)]
    for i, obj in enumerate(objs):
        obj.data[:] = bytes([i]) * 64
    for i, obj in enumerate(objs):
        assert bytes(obj.data) == bytes([i]) * 64
    assert len({o.addr for o in objs}) == 10
    for obj in objs:
        slub.free_obj(obj)
        assert bytes(obj.data) == bytes(64)


def test_bulk_alloc_and_release(slub):
    nr_1 = slub.nr_free_pages()
    objs = []

    counts = []
    for _ in range(10000):
        objs.append(slub.alloc_obj(25))
        counts.append(slub.nr_free_pages())
    assert counts == [nr_1 - (i + 125) // 126 for i in range(1, 10001)]
    nr_2 = slub.nr_free_pages()

    counts = []
    for _ in range(10000):
        objs.append(slub.alloc_obj(62))
        counts.append(slub.nr_free_pages())
    assert counts == [nr_2 - (i + 62) // 63 for i in range(1, 10001)]
    nr_3 = slub.nr_free_pages()

    counts = []
    for _ in range(10000):
        objs.append(slub.alloc_obj(124))
        counts.append(slub.nr_free_pages())
    assert counts == [nr_3 - (i + 30) // 31 for i in range(1, 10001)]
    nr_4 = slub.nr_free_pages()

    oversized = [slub.alloc_obj(129 + i % 666) for i in range(1, 10001)]
    assert oversized == [None] * 10000
    assert slub.nr_free_pages() == nr_4

    assert len(objs) == 30000
    assert all(obj is not None for obj in objs)
    for obj in objs:
        slub.free_obj(obj)
    assert slub.nr_free_pages() == nr_1


def test_mixed_sequence(slub):
    nr_1 = slub.nr_free_pages()
    obj1 = slub.alloc_obj(32)
    assert slub.nr_free_pages() == nr_1 - 1
    obj2 = slub.alloc_obj(64)
    assert slub.nr_free_pages() == nr_1 - 2
    obj3 = slub.alloc_obj(128)
    assert slub.nr_free_pages() == nr_1 - 3
    obj4 = slub.alloc_obj(32)
    assert slub.nr_free_pages() == nr_1 - 3
    objs = [slub.alloc_obj(128) for _ in range(29)]
    obj5 = slub.alloc_obj(128)
    assert obj5 is not None
    assert slub.nr_free_pages() == nr_1 - 3
    obj6 = slub.alloc_obj(128)
    assert obj6 is not None
    assert slub.nr_free_pages() == nr_1 - 4
    for obj in objs:
        slub.free_obj(obj)
    assert slub.nr_free_pages() == nr_1 - 4
    slub.free_obj(obj1)
    assert slub.nr_free_pages() == nr_1 - 4
    slub.free_obj(obj2)
    assert slub.nr_free_pages() == nr_1 - 3
    slub.free_obj(obj3)
    assert slub.nr_free_pages() == nr_1 - 3
    slub.free_obj(obj4)
    assert slub.nr_free_pages() == nr_1 - 2
    slub.free_obj(obj5)
    assert slub.nr_free_pages() == nr_1 - 1
    slub.free_obj(obj6)
    assert slub.nr_free_pages() == nr_1


def test_double_free_is_ignored(slub):
    keep = slub.alloc_obj(32)
    obj = slub.alloc_obj(32)
    before = slub.nr_free_pages()
    slub.free_obj(obj)
    slub.free_obj(obj)
    assert slub.nr_free_pages() == before
    assert keep.slab.free_cnt == keep.slab.objs_num - 1


def test_foreign_object_is_ignored(slub):
    other = _allocator(4)
    foreign = other.alloc_obj(32)
    mine = slub.alloc_obj(32)
    before = slub.nr_free_pages()
    slub.free_obj(foreign)
    assert slub.nr_free_pages() == before
    assert mine.slab.free_cnt == mine.slab.objs_num - 1


def test_out_of_pages_returns_none():
    slub = _allocator(1)
    objs = [slub.alloc_obj(32) for _ in range(126)]
    assert all(o is not None for o in objs)
    assert slub.nr_free_pages() == 0
    assert slub.alloc_obj(32) is None
    assert slub.alloc_obj(64) is None
    for obj in objs:
        slub.free_obj(obj)
    assert slub.nr_free_pages() == 1


def test_object_addresses_lie_in_slab_page(slub):
    obj = slub.alloc_obj(100)
    base = slub.frames.pa(obj.slab.page)
    assert base <= obj.addr < base + 4096
    assert obj.addr + obj.size <= base + 4096
from __future__ import annotations

import pytest

from imagegallery.core.paging import PagedList, page_skip


def test_page_skip() -> None:
    assert page_skip(1, 8) == 0
    assert page_skip(3, 8) == 16


def test_paged_list_middle_page() -> None:
    page = PagedList.create(list(range(20)), page_number=2, page_size=8)
    assert page.items == list(range(8, 16))
    assert page.page_index == 2
    assert page.total_count == 20
    assert page.total_pages == 3
    assert page.has_previous_page is True
    assert page.has_next_page is True


def test_paged_list_first_and_last_page_flags() -> None:
    first = PagedList.create(list(range(20)), page_number=1, page_size=8)
    assert first.has_previous_page is False
    assert first.has_next_page is True

    last = PagedList.create(list(range(20)), page_number=3, page_size=8)
    assert last.items == [16, 17, 18, 19]
    assert last.has_next_page is False


def test_paged_list_beyond_range_is_empty() -> None:
    page = PagedList.create(list(range(5)), page_number=4, page_size=8)
    assert page.items == []
    assert page.total_pages == 1
    assert page.has_next_page is False


def test_paged_list_empty_source() -> None:
    page = PagedList.create([], page_number=1, page_size=8)
    assert page.items == []
    assert page.total_pages == 0
    assert page.has_previous_page is False
    assert page.has_next_page is False


@pytest.mark.parametrize(("page_number", "page_size"), [(0, 8), (-1, 8), (1, 0)])
def test_paged_list_rejects_non_positive_arguments(page_number: int, page_size: int) -> None:
    with pytest.raises(ValueError):
        PagedList.create([1, 2, 3], page_number=page_number, page_size=page_size)

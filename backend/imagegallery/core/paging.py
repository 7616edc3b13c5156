from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


def page_skip(page_number: int, page_size: int) -> int:
    return int(page_size) * (int(page_number) - 1)


@dataclass(frozen=True, slots=True)
class PagedList(Generic[T]):
    items: list[T]
    page_index: int
    page_size: int
    total_count: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return int(math.ceil(self.total_count / float(self.page_size)))

    @property
    def has_previous_page(self) -> bool:
        return self.page_index > 1

    @property
    def has_next_page(self) -> bool:
        return self.page_index < self.total_pages

    @classmethod
    def create(cls, source: Sequence[T], page_number: int, page_size: int) -> "PagedList[T]":
        page_number_i = int(page_number)
        page_size_i = int(page_size)
        if page_size_i < 1:
            raise ValueError("page_size must be >= 1")
        if page_number_i < 1:
            raise ValueError("page_number must be >= 1")

        skip = page_skip(page_number_i, page_size_i)
        items = list(source[skip : skip + page_size_i])
        return cls(items=items, page_index=page_number_i, page_size=page_size_i, total_count=len(source))

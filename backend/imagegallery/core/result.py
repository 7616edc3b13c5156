from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Found(Generic[T]):
    value: T


class NotFound:
    __slots__ = ()

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND: Final = NotFound()

LookupResult = Union[Found[T], NotFound]


def found_or_none(result: LookupResult[T]) -> T | None:
    return result.value if isinstance(result, Found) else None

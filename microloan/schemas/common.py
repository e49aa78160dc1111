from __future__ import annotations

from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class MaritalStatus(str, Enum):
    SINGLE = "SINGLE"
    MARRIED = "MARRIED"
    DIVORCED = "DIVORCED"
    WIDOWED = "WIDOWED"

    @classmethod
    def _missing_(cls, value):  # type: ignore[override]
        if isinstance(value, str):
            return cls._value2member_map_.get(value.strip().upper())
        return None


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class Page(BaseModel, Generic[T]):
    items: list[T]
    pagination: PageMeta


def build_page_meta(*, page: int, limit: int, total: int) -> PageMeta:
    pages = (total + limit - 1) // limit if limit else 0
    return PageMeta(page=page, limit=limit, total=total, pages=pages)

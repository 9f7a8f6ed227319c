from __future__ import annotations

from math import ceil
from typing import Generic, TypeVar

from fastapi import Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ItemT = TypeVar("ItemT")

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Page(ApiModel, Generic[ItemT]):
    data: list[ItemT]
    total: int = Field(ge=0)
    page: int = Field(ge=1)
    limit: int = Field(ge=1, le=MAX_PAGE_LIMIT)
    total_pages: int = Field(ge=0)


class PageParams(BaseModel):
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
) -> PageParams:
    return PageParams(page=page, limit=limit)


def build_page(items: list[ItemT], *, total: int, params: PageParams) -> Page[ItemT]:
    return Page(
        data=items,
        total=total,
        page=params.page,
        limit=params.limit,
        total_pages=ceil(total / params.limit) if total else 0,
    )

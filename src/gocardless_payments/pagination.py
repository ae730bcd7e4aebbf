"""Lazy cursor pagination over list endpoints."""

import logging
from typing import Callable, Generic, Iterator, Optional, TypeVar

from .models import ApiModel, Page

logger = logging.getLogger(__name__)

__all__ = ["Paginator"]

T = TypeVar("T", bound=ApiModel)


class Paginator(Generic[T]):
    """Iterate over every item of a cursor-paginated list.

    Pages are fetched on demand: the next page is only requested once every
    item of the current one has been consumed, and iteration stops when the
    API returns no ``after`` cursor. Each call to ``iter()`` starts again from
    the first page.

    Args:
        fetch_page: Called with the ``after`` cursor (``None`` for the first
            page) and returns that :class:`Page`.
        start_after: Cursor to start from instead of the beginning.
        max_pages: Stop after this many pages even if more exist.
    """

    def __init__(
        self,
        fetch_page: Callable[[Optional[str]], Page],
        start_after: Optional[str] = None,
        max_pages: Optional[int] = None,
    ):
        self._fetch_page = fetch_page
        self._start_after = start_after
        self._max_pages = max_pages

    def pages(self) -> Iterator[Page]:
        """Yield whole pages lazily."""
        after = self._start_after
        page_count = 0
        while True:
            page = self._fetch_page(after)
            page_count += 1
            logger.debug("Fetched page %d with %d items", page_count, len(page.items))
            yield page

            after = page.after
            if after is None:
                return
            if self._max_pages is not None and page_count >= self._max_pages:
                logger.warning(
                    "Pagination limit reached (%d pages), more results remain",
                    self._max_pages,
                )
                return

    def __iter__(self) -> Iterator[T]:
        for page in self.pages():
            yield from page.items

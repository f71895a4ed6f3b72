"""
Materialization of Spotify paging objects.

Spotify returns collections as paging objects:

    {"items": [...], "next": "https://api.spotify.com/v1/...&offset=50", ...}

PagingFetcher follows the `next` links through the request gateway until
the last page and returns all items in order.
"""

from typing import Any

from spot_sync.core.exceptions import SpotifyError
from spot_sync.core.logger import get_logger
from spot_sync.spotify.gateway import RequestGateway

logger = get_logger(__name__)


class PagingFetcher:
    """Walks `next` links of Spotify paging objects."""

    def __init__(self, gateway: RequestGateway) -> None:
        self._gateway = gateway

    async def fetch(self, resource: str, params: dict[str, str] | None = None) -> list[Any]:
        """
        Fetch every item of a paged collection.

        Args:
            resource: URL or API path of the first page.
            params: Query parameters of the first page (later pages carry
                    their parameters in the `next` link).

        Returns:
            All items of all pages, in order.
        """
        first_page = await self._gateway.call("GET", resource, params=params)
        return await self.fetch_all(first_page)

    async def fetch_all(self, page: dict[str, Any]) -> list[Any]:
        """
        Complete a paging object that has already been received.

        Args:
            page: A paging object, e.g. the `tracks` field of an album.

        Returns:
            The page's items followed by the items of every following page.

        Raises:
            SpotifyError: If a page has no `items` list.
        """
        items = list(_page_items(page))
        next_url = page.get("next")
        pages = 1

        while next_url:
            page = await self._gateway.call("GET", next_url)
            items.extend(_page_items(page))
            next_url = page.get("next")
            pages += 1

        if pages > 1:
            logger.debug(f"Fetched {len(items)} items over {pages} pages")
        return items


def _page_items(page: Any) -> list[Any]:
    if not isinstance(page, dict) or not isinstance(page.get("items"), list):
        raise SpotifyError(
            "Malformed paging object in Spotify response",
            details={"page": page}
        )
    return page["items"]

"""Paginated, bounded-concurrency resource loading.

A load walks the listing page by page. For every page the detail of each
summary is fetched concurrently (bounded by a ConcurrencyLimiter), the
results are compacted and sorted, and the page is handed to the caller as a
Batch before the next page is requested.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Sequence

from ..common.context import deadline
from ..common.exceptions import PartialItemError, TransportError, VawsError
from ..common.logging import get_logger
from ..common.utils import sort_by_name
from ..config import DashboardConfig
from ..service.interfaces import ResourceService
from ..service.models import Batch, ResourceDetail, ResourcePage
from .limiter import ConcurrencyLimiter
from .stream import BatchStream

logger = get_logger(__name__)

BatchCallback = Callable[[Batch[ResourceDetail]], bool | Awaitable[bool]]


class ResourceLoader:
    """Loads resources of any type from a ResourceService."""

    def __init__(
        self,
        service: ResourceService,
        config: DashboardConfig | None = None,
        limiter: ConcurrencyLimiter | None = None,
    ):
        """Initialize the loader.

        Args:
            service: Adapter for the remote API
            config: Dashboard configuration (defaults if None)
            limiter: Shared admission gate; one sized from config if None
        """
        self.service = service
        self.config = config or DashboardConfig()
        self.limiter = limiter or ConcurrencyLimiter(self.config.concurrency_limit)

    async def load(
        self,
        resource_type: str,
        on_batch: BatchCallback,
        page_size: int | None = None,
    ) -> int:
        """Load every page of ``resource_type``, delivering one batch per page.

        Args:
            resource_type: Resource type understood by the service
            on_batch: Called with each batch; returning False stops the load
            page_size: Listing page size (config default if None)

        Returns:
            Number of items delivered

        Raises:
            TransportError: If listing a page fails or the load deadline passes
        """
        size = page_size or self.config.page_size
        logger.info("Loading resources", resource_type=resource_type, page_size=size)

        async with deadline(self.config.load_timeout, f"loading {resource_type}"):
            delivered = await self._paginate(resource_type, on_batch, size)

        logger.info("Loaded resources", resource_type=resource_type, count=delivered)
        return delivered

    async def _paginate(
        self, resource_type: str, on_batch: BatchCallback, page_size: int
    ) -> int:
        token: str | None = None
        delivered = 0
        first = True

        while True:
            page = await self._list_page(resource_type, token, page_size)
            token = page.next_token

            # Skip empty intermediate pages; the first and last still go out.
            if not page.items and not first and page.has_more:
                continue

            details = await self.fetch_details(
                resource_type, [summary.id for summary in page.items]
            )
            batch = Batch(items=details, has_more=page.has_more, is_append=not first)
            first = False
            delivered += len(details)

            if not await _invoke(on_batch, batch):
                logger.debug("Load stopped by consumer", resource_type=resource_type)
                break
            if not page.has_more:
                break

        return delivered

    async def load_scoped(
        self,
        resource_type: str,
        parent_id: str,
        on_batch: BatchCallback,
    ) -> int:
        """Load the resources of ``resource_type`` belonging to one parent.

        No pagination: the parent's ids are fetched in one call and delivered
        as a single batch with ``has_more=False``.

        Raises:
            TransportError: If listing the parent's resources fails
        """
        logger.info(
            "Loading scoped resources", resource_type=resource_type, parent_id=parent_id
        )
        async with deadline(self.config.load_timeout, f"loading {resource_type}"):
            try:
                async with deadline(
                    self.config.call_timeout, f"listing {resource_type} of {parent_id}"
                ):
                    ids = await self.service.list_children(parent_id, resource_type)
            except VawsError:
                raise
            except Exception as e:
                raise TransportError(
                    f"Failed to list {resource_type} of {parent_id}: {e}"
                ) from e

            details = await self.fetch_details(resource_type, ids)

        await _invoke(on_batch, Batch(items=details, has_more=False, is_append=False))
        return len(details)

    async def collect(
        self, resource_type: str, page_size: int | None = None
    ) -> list[ResourceDetail]:
        """Load every page and return all items in delivery order."""
        items: list[ResourceDetail] = []

        def append(batch: Batch[ResourceDetail]) -> bool:
            items.extend(batch.items)
            return True

        await self.load(resource_type, append, page_size)
        return items

    def stream(
        self,
        resource_type: str,
        page_size: int | None = None,
        buffer: int | None = None,
    ) -> BatchStream[ResourceDetail]:
        """Run ``load`` in the background, delivering batches through a pipe.

        The returned stream must be started (``async with`` or ``start()``).
        """
        return BatchStream(
            lambda on_batch: self.load(resource_type, on_batch, page_size),
            buffer=buffer or self.config.stream_buffer,
            name=resource_type,
        )

    def stream_scoped(
        self, resource_type: str, parent_id: str, buffer: int | None = None
    ) -> BatchStream[ResourceDetail]:
        """Background variant of ``load_scoped``."""
        return BatchStream(
            lambda on_batch: self.load_scoped(resource_type, parent_id, on_batch),
            buffer=buffer or self.config.stream_buffer,
            name=f"{resource_type}@{parent_id}",
        )

    async def fetch_details(
        self, resource_type: str, resource_ids: Sequence[str]
    ) -> list[ResourceDetail]:
        """Describe every id concurrently under the limiter.

        Failed items are logged and dropped. The survivors keep their
        relative order and are then sorted by case-insensitive name.
        """
        if not resource_ids:
            return []

        logger.debug(
            "Fetching details", resource_type=resource_type, count=len(resource_ids)
        )
        slots: list[ResourceDetail | None] = await asyncio.gather(
            *(self._describe(resource_type, rid) for rid in resource_ids)
        )
        details = [detail for detail in slots if detail is not None]

        dropped = len(resource_ids) - len(details)
        if dropped:
            logger.warning(
                "Dropped resources with failed detail fetch",
                resource_type=resource_type,
                dropped=dropped,
            )

        return sort_by_name(details, lambda detail: detail.name)

    async def _describe(self, resource_type: str, resource_id: str) -> ResourceDetail | None:
        async with self.limiter:
            try:
                async with deadline(
                    self.config.call_timeout, f"describing {resource_type} {resource_id}"
                ):
                    return await self.service.describe_one(resource_type, resource_id)
            except Exception as e:
                error = PartialItemError(resource_type, resource_id, e)
                logger.warning(str(error), resource_id=resource_id)
                return None

    async def _list_page(
        self, resource_type: str, token: str | None, page_size: int
    ) -> ResourcePage:
        try:
            async with deadline(self.config.call_timeout, f"listing {resource_type}"):
                return await self.service.list_page(resource_type, token, page_size)
        except VawsError:
            raise
        except Exception as e:
            raise TransportError(f"Failed to list {resource_type}: {e}") from e


async def _invoke(on_batch: BatchCallback, batch: Batch[ResourceDetail]) -> bool:
    result = on_batch(batch)
    if inspect.isawaitable(result):
        result = await result
    return bool(result)

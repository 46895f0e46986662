"""Document-store query gateway client.

The pipeline never talks to the database driver directly; it sends
aggregation pipelines to a thin HTTP gateway that executes them and returns
Extended JSON rows (ObjectIds as ``{"$oid": ...}``, dates as
``{"$date": ...}``).

Contract:
    POST /collections/{name}/aggregate  {"pipeline": [...]}  ->  {"rows": [...]}

Usage:
    from prism.clients.document_store import DocumentStoreClient

    async with DocumentStoreClient(base_url="http://gateway:8080") as store:
        result = await store.query("users", [{"$match": {"email": "a@b.c"}}, {"$limit": 1}])
        rows = result["rows"]
"""

import logging
from typing import Any

from prism.clients.base import APIProviderError, BaseAsyncClient

logger = logging.getLogger(__name__)


class DocumentStoreClient(BaseAsyncClient):
    """Async client for the document-store aggregation gateway.

    Args:
        base_url: Gateway root URL
        api_key: Optional bearer token
        rate_limit: Max requests per second (default: 20)
        timeout: HTTP timeout in seconds
        max_retries: Extra attempts on transient failures
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        rate_limit: int = 20,
        timeout: float = 30.0,
        max_retries: int = 0,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        super().__init__(
            base_url=base_url,
            headers=headers,
            rate_limit=rate_limit,
            timeout=timeout,
            max_retries=max_retries,
        )

    async def query(self, collection: str, pipeline: list[dict[str, Any]]) -> dict[str, Any]:
        """Run an aggregation pipeline against one collection.

        Args:
            collection: Collection name
            pipeline: Aggregation stages

        Returns:
            ``{"rows": [...]}``

        Raises:
            APIProviderError: On HTTP failure or a malformed response body
        """
        result = await self.post(
            f"/collections/{collection}/aggregate",
            json_data={"pipeline": pipeline},
        )
        rows = result.get("rows") if isinstance(result, dict) else None
        if not isinstance(rows, list):
            raise APIProviderError(f"Gateway response for '{collection}' has no rows list")
        logger.debug("%s: %d rows", collection, len(rows))
        return {"rows": rows}

"""HTTP client for fetching toggle definitions from the remote API."""

import logging
from typing import Any, Awaitable, Callable, Iterable

import httpx

logger = logging.getLogger(__name__)

FEATURES_PATH = "client/features"
DEFAULT_TIMEOUT = 10.0
DEFAULT_RETRIES = 2

HeadersProvider = Callable[[], Awaitable[dict[str, str]]]


def build_url(
    base_url: str,
    project_name: str | None = None,
    name_prefix: str | None = None,
    tags: Iterable[Any] | None = None,
) -> str:
    """Build the features URL for a base URL and optional filters.

    Args:
        base_url: API root, e.g. "http://flags.local/api/".
        project_name: Only fetch toggles of this project.
        name_prefix: Only fetch toggles whose name starts with this.
        tags: Tag filters; each is rendered with ``str()`` as "name:value".
    """
    if not base_url.endswith("/"):
        base_url = f"{base_url}/"
    url = httpx.URL(base_url).join(FEATURES_PATH)

    params: list[tuple[str, str]] = []
    if project_name:
        params.append(("project", project_name))
    if name_prefix:
        params.append(("namePrefix", name_prefix))
    for tag in tags or ():
        params.append(("tag", str(tag)))

    if params:
        url = url.copy_with(params=httpx.QueryParams(params))
    return str(url)


def build_headers(
    app_name: str | None,
    instance_id: str | None,
    etag: str | None,
    custom: dict[str, str] | None = None,
) -> dict[str, str]:
    """Assemble request headers; custom headers win on conflicts."""
    headers: dict[str, str] = {}
    if app_name:
        headers["UNLEASH-APPNAME"] = app_name
        headers["User-Agent"] = app_name
    if instance_id:
        headers["UNLEASH-INSTANCEID"] = instance_id
    if etag:
        headers["If-None-Match"] = etag
    if custom:
        headers.update(custom)
    return headers


class FetchClient:
    """Conditional GET client for the features endpoint.

    Transport failures are raised as ``httpx.HTTPError``; status handling is
    left to the caller.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the fetch client.

        Args:
            timeout: Default request timeout in seconds.
            retries: Connection retries performed by the transport.
            transport: Custom transport (e.g. ``httpx.MockTransport`` in tests).
        """
        self.timeout = timeout
        self.retries = retries
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            transport = self._transport or httpx.AsyncHTTPTransport(retries=self.retries)
            self._client = httpx.AsyncClient(transport=transport, timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def get(
        self,
        url: str,
        etag: str | None = None,
        app_name: str | None = None,
        instance_id: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Issue a conditional GET.

        Returns:
            The raw response; 304 means the etag still matches.
        """
        client = await self._get_client()
        logger.debug(f"GET {url} (etag={etag})")
        return await client.get(
            url,
            headers=build_headers(app_name, instance_id, etag, headers),
            timeout=timeout or self.timeout,
        )

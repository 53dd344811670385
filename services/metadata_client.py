"""Off-chain jetton metadata fetcher."""

import asyncio
import json
import time
from typing import Any, Dict, Optional
import aiohttp
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from config.settings import Settings
from models.jetton import MAX_JETTON_DECIMALS, JettonMetadata
from utils.exceptions import NetworkError

logger = structlog.get_logger()

IPFS_GATEWAY = "https://ipfs.io/ipfs/"


class _TransientHTTPError(Exception):
    """5xx answer, worth retrying."""


def resolve_uri(uri: str) -> str:
    if uri.startswith("ipfs://"):
        return IPFS_GATEWAY + uri[len("ipfs://"):]
    return uri


def parse_decimals(value: Any) -> int:
    """
    Accept decimals as a JSON number first, then as a numeric string.

    Unparseable values and values outside ``0..MAX_JETTON_DECIMALS`` give 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        decimals = value
    elif isinstance(value, float) and value.is_integer():
        decimals = int(value)
    elif isinstance(value, str):
        try:
            decimals = int(value.strip())
        except ValueError:
            return 0
    else:
        return 0

    if not 0 <= decimals <= MAX_JETTON_DECIMALS:
        logger.debug("Jetton decimals out of range", decimals=decimals)
        return 0
    return decimals


def parse_metadata(body: bytes) -> JettonMetadata:
    """Parse a metadata JSON document."""
    try:
        document = json.loads(body)
    except ValueError as e:
        raise NetworkError(f"metadata is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise NetworkError("metadata document is not a JSON object")

    def text(key: str) -> str:
        value = document.get(key)
        return value if isinstance(value, str) else ""

    return JettonMetadata(
        symbol=text("symbol"),
        name=text("name"),
        description=text("description"),
        decimals=parse_decimals(document.get("decimals")),
        image=text("image"),
    )


class MetadataClient:
    """HTTP client for jetton metadata with a raw-body cache keyed by URI."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.session: Optional[aiohttp.ClientSession] = None
        self._cache: Dict[str, bytes] = {}

    async def connect(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.metadata_timeout)
            )

    async def disconnect(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    def cached(self, uri: str) -> bool:
        return uri in self._cache

    async def fetch(self, uri: str) -> JettonMetadata:
        """Fetch and parse metadata from ``uri``."""
        body = self._cache.get(uri)
        if body is None:
            body = await self._fetch_body(uri)
            self._cache.setdefault(uri, body)
        return parse_metadata(body)

    async def _fetch_body(self, uri: str) -> bytes:
        if self.session is None:
            await self.connect()

        url = resolve_uri(uri)
        started = time.monotonic()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.settings.metadata_max_retries),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception_type((aiohttp.ClientError, asyncio.TimeoutError, _TransientHTTPError)),
                reraise=True,
            ):
                with attempt:
                    async with self.session.get(url) as response:
                        if response.status >= 500:
                            raise _TransientHTTPError(f"HTTP {response.status}")
                        if response.status != 200:
                            raise NetworkError(f"HTTP {response.status} fetching {url}")
                        body = await response.read()
        except NetworkError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, _TransientHTTPError) as e:
            raise NetworkError(f"failed to fetch {url}: {e}") from e

        logger.debug("Fetched jetton metadata",
                    uri=uri,
                    took_ms=int((time.monotonic() - started) * 1000))
        return body

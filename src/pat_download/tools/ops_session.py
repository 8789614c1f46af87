"""
European Patent Office Open Patent Services (EPO OPS) session for pat-download.

An `OPSSession` belongs to one download run and carries the state OPS asks
clients to track:
- the OAuth2 bearer token, fetched once and reused for the whole run;
- the latest quota snapshot from the ``X-Throttling-Control`` header, used to
  wait before every request so the fair-use limits are never exceeded.

Requests are issued strictly one after another. The session does not retry:
the preventive delays are meant to keep OPS from refusing requests at all.
Only page downloads retry connection-level failures.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional
from xml.etree import ElementTree as ET

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from pat_download.core.config import PatDownloadConfig, get_config
from pat_download.core.identifiers import PatentIdentifier
from pat_download.tools.instances import (
    InstanceListing,
    extract_instance_listings,
    filter_instances,
)
from pat_download.tools.throttle import (
    THROTTLE_HEADER,
    QuotaSnapshot,
    ServiceCategory,
    ServiceStatus,
    ThrottleParseError,
    TrafficLevel,
    default_quota_snapshot,
    failsafe_quota_snapshot,
    parse_throttle_header,
)
from pat_download.utils.pdf_merge import merge_pdf_pages

STATUS_DELAYS_MS: Dict[ServiceStatus, int] = {
    ServiceStatus.IDLE: 0,
    ServiceStatus.BUSY: 100,
    ServiceStatus.OVERLOADED: 2000,
}

TRAFFIC_DELAYS_MS: Dict[TrafficLevel, int] = {
    TrafficLevel.GREEN: 0,
    TrafficLevel.YELLOW: 10_000,
    TrafficLevel.RED: 30_000,
    TrafficLevel.BLACK: 60_000,
}

# Wait 20% of the average interval the per-minute limit allows.
RATE_DELAY_SHARE_OF_MINUTE_MS = 12_000
MAX_RATE_DELAY_MS = 60_000

STATUS_LOG_LEVELS = {
    ServiceStatus.IDLE: logging.DEBUG,
    ServiceStatus.BUSY: logging.INFO,
    ServiceStatus.OVERLOADED: logging.WARNING,
}

TRAFFIC_LOG_LEVELS = {
    TrafficLevel.GREEN: logging.DEBUG,
    TrafficLevel.YELLOW: logging.INFO,
    TrafficLevel.RED: logging.WARNING,
    TrafficLevel.BLACK: logging.WARNING,
}

PAGE_FETCH_ATTEMPTS = 3

PageProgress = Callable[[int, int], None]
SleepFunction = Callable[[float], Awaitable[None]]


def silent_progress(total: int, current: int) -> None:
    """Page progress callback that reports nothing."""


class OPSService(Enum):
    """Published-data operations, valued by their OPS endpoint name."""
    BIBLIO = "biblio"
    ABSTRACT = "abstract"
    FULL_CYCLE = "full-cycle"
    FULL_TEXT = "full-text"
    DESCRIPTION = "description"
    CLAIMS = "claims"
    EQUIVALENTS = "equivalents"
    IMAGES = "images"

    @property
    def quota_category(self) -> ServiceCategory:
        """Quota bucket OPS charges this operation against."""
        if self is OPSService.IMAGES:
            return ServiceCategory.IMAGES
        return ServiceCategory.RETRIEVAL


class OPSAPIError(Exception):
    """Raised when an EPO OPS call fails or returns invalid data."""


class OPSAuthenticationError(OPSAPIError):
    """Raised when no access token can be obtained. Fatal to the session."""


class OPSNotFoundError(OPSAPIError):
    """Raised when OPS has no document for the requested identifier."""


def rate_delay_ms(limit_per_minute: int) -> int:
    """Delay derived from a per-minute request limit; maximal when unknown."""
    if limit_per_minute <= 0:
        return MAX_RATE_DELAY_MS
    return RATE_DELAY_SHARE_OF_MINUTE_MS // limit_per_minute


class OPSSession:
    """
    Stateful client for one OPS download run.

    Not safe for concurrent use: one request at a time, awaited in order.
    """

    def __init__(
        self,
        consumer_key: Optional[str] = None,
        consumer_secret: Optional[str] = None,
        *,
        config: Optional[PatDownloadConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Optional[SleepFunction] = None,
    ) -> None:
        """
        Initialize an OPS session.

        Args:
            consumer_key: EPO OPS consumer key. If omitted, loaded from config.
            consumer_secret: EPO OPS consumer secret. If omitted, loaded from config.
            config: Settings to use instead of the global configuration.
            transport: Optional httpx transport, e.g. a mock in tests.
            logger: Destination for session log messages.
            sleep: Coroutine used to wait out throttling delays (seconds).
        """
        self.config = config or get_config()
        self.consumer_key = consumer_key or self.config.epo_consumer_key
        self.consumer_secret = consumer_secret or self.config.epo_consumer_secret
        self.base_url = self.config.epo_ops_base_url.rstrip("/")
        self.auth_url = self.config.epo_ops_auth_url
        self.logger = logger or logging.getLogger("OPSSession")

        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._access_token: Optional[str] = None
        self.quota: QuotaSnapshot = default_quota_snapshot()

        if not self.consumer_key or not self.consumer_secret:
            self.logger.warning("No EPO OPS credentials configured. Authentication will fail.")

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=float(self.config.epo_request_timeout_seconds),
            transport=self._transport,
        )

    async def authenticate(self) -> str:
        """
        Return the session's bearer token, requesting it on first use.

        The token is cached for the rest of the session and never refreshed.

        Raises:
            OPSAuthenticationError: If credentials are missing or OPS refuses them.
        """
        if self._access_token:
            return self._access_token

        if not self.consumer_key or not self.consumer_secret:
            raise OPSAuthenticationError("Missing EPO OPS credentials (consumer key/secret).")

        self.logger.info("Getting OAuth2 token")
        try:
            async with self._client() as client:
                response = await client.post(
                    self.auth_url,
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self.consumer_key,
                        "client_secret": self.consumer_secret,
                    },
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise OPSAuthenticationError(f"EPO auth request failed: {exc}") from exc

        if response.status_code != 200:
            raise OPSAuthenticationError(
                f"EPO auth error {response.status_code}: {response.text}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise OPSAuthenticationError("EPO auth response is not JSON.") from exc

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token or not isinstance(token, str):
            raise OPSAuthenticationError("EPO auth response missing access_token.")

        self._access_token = token
        return token

    def compute_delay_ms(self, service: OPSService) -> int:
        """
        Milliseconds to wait before the next request for `service`.

        Sum of a system status delay, a traffic light delay for the service's
        quota category and a share of the per-request interval its limit allows.
        """
        quota = self.quota.lookup(service.quota_category)
        return (
            STATUS_DELAYS_MS[self.quota.status]
            + TRAFFIC_DELAYS_MS[quota.traffic]
            + rate_delay_ms(quota.limit_per_minute)
        )

    async def throttle(self, service: OPSService) -> None:
        """Wait out the delay the current quota snapshot requires for `service`."""
        quota = self.quota.lookup(service.quota_category)
        self.logger.log(STATUS_LOG_LEVELS[self.quota.status], "System: %s.", self.quota.status.name.title())
        self.logger.log(TRAFFIC_LOG_LEVELS[quota.traffic], "Service Traffic: %s", quota.traffic.name.title())

        delay = self.compute_delay_ms(service)
        self.logger.debug(
            "Service rate limit is %s. Delaying %s milliseconds", quota.limit_per_minute, delay
        )
        if delay > 0:
            await self._sleep(delay / 1000.0)

    def update_from_advisory(self, text: str) -> None:
        """
        Replace the quota snapshot with the one advertised in `text`.

        An unreadable advisory installs the overloaded, empty snapshot so the
        next requests back off as far as possible.
        """
        self.logger.debug("rawThrottle: %r", text)
        try:
            self.quota = parse_throttle_header(text)
        except ThrottleParseError as exc:
            self.logger.error(f"X-Throttling-Control parsing failure: {exc}")
            self.quota = failsafe_quota_snapshot()
        self.logger.debug("parsedThrottle: %s", self.quota)

    def _raise_for_status(self, response: httpx.Response, what: str) -> None:
        if response.status_code == 404:
            raise OPSNotFoundError(f"Not Found: {what}")
        if response.status_code != 200:
            raise OPSAPIError(
                f"EPO OPS error {response.status_code} for {what}: {response.text[:300]}"
            )

    async def request(self, identifier: PatentIdentifier, service: OPSService) -> ET.Element:
        """
        Fetch a published-data document for `identifier` and parse its XML.

        Raises:
            OPSAuthenticationError: If no token can be obtained.
            OPSNotFoundError: If OPS does not know the publication.
            OPSAPIError: On other failures.
        """
        token = await self.authenticate()
        await self.throttle(service)

        url = f"{self.base_url}/published-data/publication/{identifier.search_key}/{service.value}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/xml",
        }

        self.logger.debug(f"GET {url}")
        try:
            async with self._client() as client:
                response = await client.get(url, headers=headers)
        except httpx.RequestError as exc:
            raise OPSAPIError(f"EPO request failed for {identifier}: {exc}") from exc

        self.update_from_advisory(response.headers.get(THROTTLE_HEADER, ""))
        self._raise_for_status(response, f"{identifier} ({service.value})")

        try:
            return ET.fromstring(response.content)
        except ET.ParseError as exc:
            raise OPSAPIError(f"Failed to parse EPO XML response: {exc}") from exc

    async def get_instances(self, strict: bool, identifier: PatentIdentifier) -> List[InstanceListing]:
        """
        List the full-document instances of `identifier` worth downloading.

        Args:
            strict: Only keep instances matching `identifier` itself.
            identifier: Requested publication.
        """
        root = await self.request(identifier, OPSService.IMAGES)
        raw_instances = extract_instance_listings(root)
        kept = filter_instances(strict, identifier, raw_instances)
        self.logger.debug(
            f"Found {len(raw_instances)} total instances. "
            f"After filtering, {len(kept)} are left."
        )
        return kept

    @retry(
        stop=stop_after_attempt(PAGE_FETCH_ATTEMPTS),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _fetch_page(self, url: str, page: int) -> httpx.Response:
        # Every attempt counts against the Images quota, retries included.
        token = await self.authenticate()
        await self.throttle(OPSService.IMAGES)
        async with self._client() as client:
            return await client.get(
                url,
                params={"Range": str(page)},
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/pdf",
                },
            )

    async def download_page(self, identifier: PatentIdentifier, page: int, directory: Path) -> Path:
        """Download one page of a document instance as a single-page PDF."""
        url = f"{self.base_url}/{identifier.image_path}.pdf"
        try:
            response = await self._fetch_page(url, page)
        except httpx.TransportError as exc:
            raise OPSAPIError(f"Page {page} of {identifier} could not be fetched: {exc}") from exc

        self.update_from_advisory(response.headers.get(THROTTLE_HEADER, ""))
        self._raise_for_status(response, f"{identifier} page {page}")

        target = directory / f"{identifier.compact}-{page:04d}.pdf"
        target.write_bytes(response.content)
        return target

    async def download_instance(
        self,
        listing: InstanceListing,
        output_dir: Path,
        progress: PageProgress = silent_progress,
    ) -> Path:
        """
        Download every page of `listing` and merge them into one PDF.

        Args:
            listing: Instance to fetch.
            output_dir: Directory receiving ``<compact identifier>.pdf``.
            progress: Called with (total pages, current page) after each page.

        Returns:
            Path of the merged PDF.
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        output = output_dir / f"{listing.identifier.compact}.pdf"

        with tempfile.TemporaryDirectory(prefix="pat-download.", dir=output_dir) as tmp_dir:
            pages: List[Path] = []
            for page in range(1, listing.page_count + 1):
                pages.append(await self.download_page(listing.identifier, page, Path(tmp_dir)))
                progress(listing.page_count, page)
            merge_pdf_pages(pages, output)

        self.logger.info(f"Saved {listing.identifier} ({listing.page_count} pages) to {output}")
        return output

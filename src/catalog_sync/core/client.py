import logging
import threading
import time
from collections.abc import Callable
from typing import Any

import requests

from ..config import Config
from ..errors import CatalogTransportError
from ..sync.models import RemoteRecord
from ..validators import validate_catalog_id

logger = logging.getLogger(__name__)

# Tokens live about an hour; refresh ahead of expiry.
TOKEN_TTL_SECONDS = 50 * 60


class CatalogClient:
    """HTTP client for the remote catalog service.

    Implements the ``RemoteCatalog`` protocol.  Every failure (network,
    HTTP status, unexpected payload) is raised as ``CatalogTransportError``.
    """

    def __init__(
        self, config: Config, clock: Callable[[], float] = time.monotonic
    ):
        self.config = config
        self._thread_local = threading.local()
        self._clock = clock
        self._token: str | None = None
        self._token_expiry = 0.0
        self._token_lock = threading.Lock()
        # catalog_id -> number of columns, from the last fetched snapshot
        self._column_counts: dict[str, int] = {}

    @property
    def session(self) -> requests.Session:
        """Session for the current thread."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.verify = not self.config.insecure
        return session

    def _url(self, path: str) -> str:
        return f"{self.config.api_url.rstrip('/')}/{path}"

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _get_token(self, force: bool = False) -> str:
        """Return a cached bearer token, requesting a new one if needed."""
        with self._token_lock:
            if (
                not force
                and self._token
                and self._clock() < self._token_expiry
            ):
                return self._token

            logger.debug("Requesting catalog access token")
            try:
                response = self._get_session().request(
                    "POST",
                    self.config.auth_url,
                    json={
                        "login": self.config.login,
                        "security_key": self.config.security_key,
                    },
                    timeout=self.config.timeout,
                )
            except requests.RequestException as exc:
                raise CatalogTransportError(
                    f"Authentication request failed: {exc}"
                ) from exc

            if response.status_code >= 400:
                raise CatalogTransportError(
                    f"Authentication rejected (HTTP {response.status_code})",
                    status_code=response.status_code,
                )
            try:
                token = response.json()["access_token"]
            except (ValueError, KeyError, TypeError) as exc:
                raise CatalogTransportError(
                    "Authentication response has no access_token"
                ) from exc

            self._token = token
            self._token_expiry = self._clock() + TOKEN_TTL_SECONDS
            logger.info("Obtained catalog access token")
            return token

    def validate_connection(self) -> str:
        """
        Validate credentials by requesting a fresh token.
        Returns the API base URL if successful.
        """
        self._get_token(force=True)
        return self.config.api_url

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _request(
        self, method: str, path: str, payload: dict | None = None
    ) -> Any:
        """
        Send an authenticated request and return the decoded JSON body.

        A 401 triggers one re-authentication and retry.
        """
        url = self._url(path)
        response = None
        for attempt in range(2):
            token = self._get_token(force=attempt > 0)
            try:
                response = self._get_session().request(
                    method,
                    url,
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=self.config.timeout,
                )
            except requests.RequestException as exc:
                raise CatalogTransportError(
                    f"{method} {url} failed: {exc}"
                ) from exc
            if response.status_code != 401 or attempt > 0:
                break
            logger.info("Access token rejected, re-authenticating")

        if response.status_code >= 400:
            raise CatalogTransportError(
                f"{method} {url} returned HTTP {response.status_code}: "
                f"{response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise CatalogTransportError(
                f"{method} {url} returned invalid JSON"
            ) from exc

    # ------------------------------------------------------------------
    # RemoteCatalog protocol
    # ------------------------------------------------------------------

    def fetch_snapshot(self, catalog_id: str) -> list[RemoteRecord]:
        """
        Get every item of a catalog, deleted ones included.

        Also remembers the catalog's column count for padding new items.
        """
        is_valid, error_msg = validate_catalog_id(catalog_id)
        if not is_valid:
            raise ValueError(error_msg)

        data = self._request("GET", f"catalogs/{catalog_id}")
        if not isinstance(data, dict) or not isinstance(
            data.get("items"), list
        ):
            raise CatalogTransportError(
                f"Catalog {catalog_id} response has no items list"
            )

        self._column_counts[catalog_id] = len(data.get("catalog_headers") or [])

        records = []
        for item in data["items"]:
            try:
                item_id = item.get("item_id")
                records.append(
                    RemoteRecord(
                        external_id=str(item_id) if item_id is not None else None,
                        values=[
                            "" if value is None else str(value)
                            for value in item.get("values") or []
                        ],
                        deleted=bool(item.get("deleted", False)),
                    )
                )
            except (AttributeError, TypeError) as exc:
                raise CatalogTransportError(
                    f"Catalog {catalog_id} returned a malformed item: {item!r}"
                ) from exc

        logger.info(
            "Fetched %d items from catalog %s", len(records), catalog_id
        )
        return records

    def create_item(self, catalog_id: str, values: list[str]) -> str:
        """
        Create a catalog item and return its id.

        Values are padded with empty strings to the catalog's column count.
        """
        padded = list(values)
        missing = self._column_counts.get(catalog_id, 0) - len(padded)
        if missing > 0:
            padded.extend([""] * missing)

        data = self._request(
            "POST",
            f"catalogs/{catalog_id}/diff",
            {"upsert": [{"values": padded}]},
        )
        items = data.get("items") if isinstance(data, dict) else None
        if not items or items[0].get("item_id") is None:
            raise CatalogTransportError(
                f"Catalog {catalog_id} did not return the created item"
            )
        item_id = str(items[0]["item_id"])
        logger.debug("Created item %s in catalog %s", item_id, catalog_id)
        return item_id

    def update_item(
        self, catalog_id: str, external_id: str, values: list[str]
    ) -> None:
        """
        Replace the values of an existing catalog item.
        """
        self._request(
            "PUT",
            f"catalogs/{catalog_id}/items/{external_id}",
            {"values": list(values)},
        )
        logger.debug("Updated item %s in catalog %s", external_id, catalog_id)

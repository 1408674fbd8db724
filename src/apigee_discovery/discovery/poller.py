"""
Generic paginated resource poller.

One ``ResourcePoller`` per resource kind. A poll cycle fetches every page of
the kind's listing(s) sequentially; any failure aborts the whole cycle so a
half-fetched listing is never diffed. The last successfully committed
listing is kept as the baseline for the next diff.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from apigee_discovery.client.envelope import unwrap_envelope
from apigee_discovery.client.http import ApigeeClient, TokenProvider
from apigee_discovery.discovery.diff import compute_diff
from apigee_discovery.discovery.models import RECORD_TYPES, RemoteRecord, ResourceKind, SyncDiff
from apigee_discovery.exceptions import MalformedResponseError, PollCancelledError
from apigee_discovery.utils.logging import get_logger

logger = get_logger("apigee_discovery.discovery.poller")


# --- Pagination strategies ---------------------------------------------------


class Paginator(Protocol):
    """Pagination convention of one listing endpoint."""

    def first_params(self) -> dict[str, Any]: ...

    def page_records(self, params: dict[str, Any], records: list[Any]) -> list[Any]: ...

    def next_params(self, params: dict[str, Any], records: list[Any], payload: Any) -> dict[str, Any] | None: ...


@dataclass(frozen=True)
class CursorPagination:
    """
    Opaque cursor returned in the response body.

    Terminal when a page is empty or the cursor is empty/absent.
    """

    page_size: int
    cursor_param: str = "cursor"
    cursor_field: str = "nextCursor"
    size_param: str = "pageSize"

    def first_params(self) -> dict[str, Any]:
        return {self.size_param: self.page_size}

    def page_records(self, params: dict[str, Any], records: list[Any]) -> list[Any]:
        return records

    def next_params(self, params: dict[str, Any], records: list[Any], payload: Any) -> dict[str, Any] | None:
        if not records or not isinstance(payload, dict):
            return None
        cursor = payload.get(self.cursor_field)
        if not cursor:
            return None
        return {**params, self.cursor_param: cursor}


@dataclass(frozen=True)
class OffsetPagination:
    """
    ``offset``/``limit`` paging. Terminal on an empty or short page.
    """

    page_size: int
    offset_param: str = "offset"
    limit_param: str = "limit"

    def first_params(self) -> dict[str, Any]:
        return {self.limit_param: self.page_size, self.offset_param: 0}

    def page_records(self, params: dict[str, Any], records: list[Any]) -> list[Any]:
        return records

    def next_params(self, params: dict[str, Any], records: list[Any], payload: Any) -> dict[str, Any] | None:
        if len(records) < self.page_size:
            return None
        return {**params, self.offset_param: int(params.get(self.offset_param, 0)) + len(records)}


def _record_key(record: Any) -> str:
    if isinstance(record, dict):
        return str(record.get("name", ""))
    return str(record)


@dataclass(frozen=True)
class KeyCursorPagination:
    """
    Management API paging: ``startKey`` is the last name of the previous page.

    The platform returns the start key itself as the first element of a
    follow-up page, so follow-ups ask for one extra element and drop it.
    """

    page_size: int
    key_param: str = "startKey"
    count_param: str = "count"
    key: Callable[[Any], str] = _record_key

    def first_params(self) -> dict[str, Any]:
        return {self.count_param: self.page_size}

    def page_records(self, params: dict[str, Any], records: list[Any]) -> list[Any]:
        start_key = params.get(self.key_param)
        if start_key is not None and records and self.key(records[0]) == start_key:
            return records[1:]
        return records

    def next_params(self, params: dict[str, Any], records: list[Any], payload: Any) -> dict[str, Any] | None:
        if not records or len(records) < int(params.get(self.count_param, self.page_size)):
            return None
        return {**params, self.key_param: self.key(records[-1]), self.count_param: self.page_size + 1}


# --- Poller ------------------------------------------------------------------


@dataclass
class ResourceEndpoint:
    """
    Where and how one resource kind is listed.

    ``urls`` is called at the start of every cycle, so kinds listed per parent
    (api docs per portal) see the parents known at that moment.
    """

    kind: ResourceKind
    urls: Callable[[], Sequence[str]]
    paginator: Paginator
    data_attribute: str | None = "data"
    params: dict[str, Any] = field(default_factory=dict)
    parse: Callable[[Any], RemoteRecord] | None = None

    def parse_record(self, raw: Any) -> RemoteRecord:
        parse = self.parse or RECORD_TYPES[self.kind].from_dict
        return parse(raw)


class ResourcePoller:
    """
    Fetches, diffs and commits the listing of one resource kind.

    Example:
        poller = ResourcePoller(client, endpoint)
        listing = await poller.poll(credentials.current_token)
        diff = poller.diff(listing)
        ...  # deliver the diff
        poller.commit(listing)
    """

    def __init__(self, client: ApigeeClient, endpoint: ResourceEndpoint, stop: asyncio.Event | None = None):
        self.client = client
        self.endpoint = endpoint
        self.stop = stop
        self._last_known: dict[str, RemoteRecord] = {}

    @property
    def kind(self) -> ResourceKind:
        return self.endpoint.kind

    @property
    def last_known(self) -> Mapping[str, RemoteRecord]:
        return self._last_known

    async def poll(self, token: TokenProvider) -> dict[str, RemoteRecord]:
        """
        Fetch the complete listing for this cycle, keyed by record id.

        Raises:
            AuthError, FetchError, MalformedResponseError: Any page failed
            PollCancelledError: Shutdown was requested between pages
        """
        listing: dict[str, RemoteRecord] = {}
        for url in self.endpoint.urls():
            pages = await self._fetch_all(url, token, listing)
            logger.debug(f"{self.kind.value}: {pages} page(s) from {url}")
        return listing

    async def _fetch_all(self, url: str, token: TokenProvider, listing: dict[str, RemoteRecord]) -> int:
        paginator = self.endpoint.paginator
        params: dict[str, Any] | None = {**self.endpoint.params, **paginator.first_params()}
        pages = 0
        while params is not None:
            self._checkpoint()
            payload = await self.client.get_json(url, token=token, params=params)
            raw_records = unwrap_envelope(payload, self.endpoint.data_attribute, url=url)
            pages += 1
            for raw in paginator.page_records(params, raw_records):
                record = self.endpoint.parse_record(raw)
                listing[record.id] = record

            next_params = paginator.next_params(params, raw_records, payload)
            if next_params is not None and next_params == params:
                raise MalformedResponseError(f"pagination did not advance for {url}", url=url)
            params = next_params
        return pages

    def _checkpoint(self) -> None:
        if self.stop is not None and self.stop.is_set():
            raise PollCancelledError(f"{self.kind.value} poll cancelled at a page boundary")

    def diff(self, listing: Mapping[str, RemoteRecord]) -> SyncDiff:
        """Compare ``listing`` with the last committed listing (no side effects)."""
        return compute_diff(self.kind, self._last_known, listing)

    def commit(self, listing: Mapping[str, RemoteRecord]) -> None:
        """Make ``listing`` the baseline for the next diff."""
        self._last_known = dict(listing)

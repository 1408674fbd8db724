"""
Catalog actions and the consumer interface.

The agent does not persist or publish the catalog; it hands reconciled
create/update/delete actions to a consumer supplied by the embedding
application. ``MemoryCatalog`` is a reference consumer used by the CLI and
tests.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from apigee_discovery.discovery.models import RemoteRecord, ResourceKind
from apigee_discovery.utils.logging import get_logger

logger = get_logger("apigee_discovery.discovery.catalog")


class ActionType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class CatalogAction:
    """
    One change to apply to the catalog.

    ``record`` is set for create/update and is None for delete.
    """

    action: ActionType
    kind: ResourceKind
    id: str
    record: RemoteRecord | None = None

    def __str__(self) -> str:
        return f"{self.action.value} {self.kind.value}/{self.id}"


class CatalogConsumer(Protocol):
    """Receives the actions of one reconciled poll cycle."""

    async def apply(self, actions: Sequence[CatalogAction]) -> None: ...


class MemoryCatalog:
    """In-memory catalog keyed by kind and id."""

    def __init__(self) -> None:
        self.entries: dict[ResourceKind, dict[str, RemoteRecord]] = {kind: {} for kind in ResourceKind}
        self.applied: list[CatalogAction] = []

    async def apply(self, actions: Sequence[CatalogAction]) -> None:
        for action in actions:
            bucket = self.entries[action.kind]
            if action.action is ActionType.DELETE:
                bucket.pop(action.id, None)
            elif action.record is not None:
                bucket[action.id] = action.record
            self.applied.append(action)
            logger.debug(f"Applied {action}")

    def count(self, kind: ResourceKind) -> int:
        return len(self.entries[kind])

    def get(self, kind: ResourceKind, record_id: str) -> RemoteRecord | None:
        return self.entries[kind].get(record_id)

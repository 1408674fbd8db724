"""
Diff reconciliation into catalog actions.

The reconciler resolves cross-references from lookups fed by committed
listings (portal titles for API docs, specs for products), applies the
inclusion filters and emits create/update/delete actions. It never performs
I/O and produces the same actions for the same diff and lookups.

The last emitted version of every API doc and product is kept. A record whose
cross-reference cannot be resolved yet is still emitted with what could be
resolved. Every later reconcile of that kind re-resolves the kept records
against the current lookups and emits an update when the resolution changed.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping

from apigee_discovery.discovery.catalog import ActionType, CatalogAction
from apigee_discovery.discovery.filters import FilterExpression
from apigee_discovery.discovery.models import (
    APIDocRecord,
    PortalRecord,
    ProductRecord,
    RemoteRecord,
    ResourceKind,
    SpecRecord,
    SyncDiff,
)
from apigee_discovery.utils.logging import get_logger

logger = get_logger("apigee_discovery.discovery.reconciler")

_LINKED_KINDS = (ResourceKind.API, ResourceKind.PRODUCT)


class Reconciler:
    """
    Args:
        filters: Inclusion filter per kind; kinds without one accept everything
    """

    def __init__(self, filters: Mapping[ResourceKind, FilterExpression] | None = None):
        self.filters: dict[ResourceKind, FilterExpression] = dict(filters or {})
        self.portal_titles: dict[str, str] = {}
        self._specs_by_id: dict[str, SpecRecord] = {}
        self._specs_by_name: dict[str, SpecRecord] = {}
        self.linked: dict[ResourceKind, dict[str, RemoteRecord]] = {kind: {} for kind in _LINKED_KINDS}

    @property
    def deferred(self) -> dict[ResourceKind, dict[str, RemoteRecord]]:
        """Emitted records whose cross-references are still incomplete, per kind."""
        return {
            kind: {rid: rec for rid, rec in self.linked.get(kind, {}).items() if self._unresolved(rec)}
            for kind in ResourceKind
        }

    # --- lookups -------------------------------------------------------------

    def observe(self, kind: ResourceKind, listing: Mapping[str, RemoteRecord]) -> None:
        """Refresh the lookups fed by a committed listing of ``kind``."""
        if kind is ResourceKind.PORTAL:
            self.portal_titles = {
                rid: rec.title for rid, rec in listing.items() if isinstance(rec, PortalRecord)
            }
        elif kind is ResourceKind.SPEC:
            # Products link only to specs that reach the catalog
            specs = [rec for rec in listing.values() if isinstance(rec, SpecRecord) and self._included(rec)]
            self._specs_by_id = {s.id: s for s in specs}
            self._specs_by_name = {s.name.lower(): s for s in sorted(specs, key=lambda s: s.id)}

    def known_portal_ids(self) -> list[str]:
        return sorted(self.portal_titles)

    # --- reconciliation ------------------------------------------------------

    def reconcile(self, diff: SyncDiff) -> list[CatalogAction]:
        """
        Turn one diff into catalog actions.

        Actions are ordered creates, updates, deletes, then updates for
        earlier records whose cross-references changed, each group sorted by id.
        """
        kind = diff.kind
        creates: list[CatalogAction] = []
        updates: list[CatalogAction] = []
        deletes: list[CatalogAction] = []
        linked = self.linked.get(kind, {})

        for rid in sorted(diff.added):
            record = self._resolve(diff.added[rid])
            if self._included(record):
                creates.append(CatalogAction(ActionType.CREATE, kind, rid, record))
                self._track(record)
            else:
                linked.pop(rid, None)

        for rid in sorted(diff.updated):
            old, new = diff.updated[rid]
            record = self._resolve(new)
            was_included = self._included(self._resolve(old))
            if self._included(record):
                action = ActionType.UPDATE if was_included else ActionType.CREATE
                target = updates if was_included else creates
                target.append(CatalogAction(action, kind, rid, record))
                self._track(record)
            else:
                linked.pop(rid, None)
                if was_included:
                    deletes.append(CatalogAction(ActionType.DELETE, kind, rid))

        for rid in sorted(diff.removed):
            linked.pop(rid, None)
            deletes.append(CatalogAction(ActionType.DELETE, kind, rid))

        touched = set(diff.added) | set(diff.updated) | diff.removed
        relinked = self._relink(kind, touched)

        creates.sort(key=lambda a: a.id)
        actions = creates + updates + deletes + relinked
        if actions:
            logger.debug(f"{kind.value}: {diff.summary()} -> {len(actions)} action(s)")
        return actions

    def _relink(self, kind: ResourceKind, skip: set[str]) -> list[CatalogAction]:
        """Re-resolve kept records against the current lookups."""
        actions: list[CatalogAction] = []
        linked = self.linked.get(kind, {})
        for rid in sorted(linked):
            if rid in skip:
                continue
            previous = linked[rid]
            record = self._resolve(previous)
            if record == previous:
                continue
            logger.info(f"Cross-reference changed for {kind.value}/{rid}")
            actions.append(CatalogAction(ActionType.UPDATE, kind, rid, record))
            self._track(record)
        return actions

    def _track(self, record: RemoteRecord) -> None:
        if record.kind in self.linked:
            self.linked[record.kind][record.id] = record

    def _included(self, record: RemoteRecord) -> bool:
        flt = self.filters.get(record.kind)
        return flt is None or flt.matches(record.filter_fields())

    # --- cross-references ----------------------------------------------------

    def _resolve(self, record: RemoteRecord) -> RemoteRecord:
        if isinstance(record, APIDocRecord):
            return dataclasses.replace(record, portal_title=self.portal_titles.get(record.portal_id))
        if isinstance(record, ProductRecord):
            resolved = []
            for ref in record.spec_refs:
                spec = self._specs_by_id.get(ref) or self._specs_by_name.get(ref.lower())
                if spec is not None:
                    resolved.append((ref, spec.id))
            return dataclasses.replace(record, resolved_specs=tuple(resolved))
        return record

    @staticmethod
    def _unresolved(record: RemoteRecord) -> bool:
        if isinstance(record, APIDocRecord):
            return record.portal_title is None
        if isinstance(record, ProductRecord):
            return len(record.resolved_specs) < len(record.spec_refs)
        return False

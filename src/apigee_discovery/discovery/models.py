"""
Records discovered from the Apigee platform.

Every record is immutable and rebuilt from the remote listing on each poll
cycle. ``raw`` keeps the payload as received; change detection compares raw
payloads so that derived cross-links (portal titles, resolved specs) never
register as remote updates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from apigee_discovery.exceptions import MalformedResponseError


class ResourceKind(str, Enum):
    PROXY = "proxy"
    SPEC = "spec"
    PRODUCT = "product"
    PORTAL = "portal"
    API = "api"


def _require_id(kind: ResourceKind, data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None or value == "":
        raise MalformedResponseError(f"{kind.value} record is missing '{key}'", url=None)
    return str(value)


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    raise MalformedResponseError(f"expected an object, got {type(value).__name__}")


@dataclass(frozen=True)
class RemoteRecord:
    """Common shape: identity, display name and the raw payload."""

    kind: ClassVar[ResourceKind]

    id: str
    name: str
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Any) -> RemoteRecord:
        raise NotImplementedError

    def same_remote_state(self, other: RemoteRecord) -> bool:
        return self.raw == other.raw

    def filter_fields(self) -> dict[str, Any]:
        """Attributes visible to inclusion filters."""
        return {"id": self.id, "name": self.name, **self.raw}


@dataclass(frozen=True)
class ProxyRecord(RemoteRecord):
    kind: ClassVar[ResourceKind] = ResourceKind.PROXY

    revisions: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> ProxyRecord:
        # The management API lists proxies as bare names unless expanded
        if isinstance(data, str):
            if not data:
                raise MalformedResponseError("proxy record is an empty name")
            return cls(id=data, name=data, raw={"name": data})
        data = _as_dict(data)
        name = _require_id(cls.kind, data, "name")
        return cls(
            id=name,
            name=name,
            revisions=tuple(str(r) for r in data.get("revision") or ()),
            raw=data,
        )


@dataclass(frozen=True)
class SpecRecord(RemoteRecord):
    kind: ClassVar[ResourceKind] = ResourceKind.SPEC

    content_url: str = ""
    modified: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> SpecRecord:
        data = _as_dict(data)
        spec_id = _require_id(cls.kind, data, "id")
        return cls(
            id=spec_id,
            name=str(data.get("name") or spec_id),
            content_url=str(data.get("content") or data.get("self") or ""),
            modified=str(data.get("modified") or ""),
            raw=data,
        )


@dataclass(frozen=True)
class ProductRecord(RemoteRecord):
    kind: ClassVar[ResourceKind] = ResourceKind.PRODUCT

    display_name: str = ""
    description: str = ""
    approval_type: str = ""
    attributes: dict[str, str] = field(default_factory=dict, compare=False)
    environments: tuple[str, ...] = ()
    proxies: tuple[str, ...] = ()
    scopes: tuple[str, ...] = ()
    # Spec identifiers or names this product documents
    spec_refs: tuple[str, ...] = ()
    # Filled by the reconciler: spec_ref -> spec id
    resolved_specs: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> ProductRecord:
        data = _as_dict(data)
        name = _require_id(cls.kind, data, "name")
        attributes = {
            str(a.get("name")): str(a.get("value", ""))
            for a in data.get("attributes") or ()
            if isinstance(a, dict) and a.get("name")
        }
        proxies = tuple(str(p) for p in data.get("proxies") or ())
        specs_attr = attributes.get("specs", "")
        spec_refs = tuple(s.strip() for s in specs_attr.split(",") if s.strip()) or proxies
        return cls(
            id=name,
            name=name,
            display_name=str(data.get("displayName") or name),
            description=str(data.get("description") or ""),
            approval_type=str(data.get("approvalType") or ""),
            attributes=attributes,
            environments=tuple(str(e) for e in data.get("environments") or ()),
            proxies=proxies,
            scopes=tuple(str(s) for s in data.get("scopes") or ()),
            spec_refs=spec_refs,
            raw=data,
        )

    def filter_fields(self) -> dict[str, Any]:
        fields = super().filter_fields()
        fields.update(
            {
                "displayName": self.display_name,
                "description": self.description,
                "approvalType": self.approval_type,
                "attributes": self.attributes,
                "environments": list(self.environments),
                "proxies": list(self.proxies),
            }
        )
        return fields


@dataclass(frozen=True)
class PortalRecord(RemoteRecord):
    kind: ClassVar[ResourceKind] = ResourceKind.PORTAL

    description: str = ""
    custom_domain: str = ""
    org_name: str = ""
    status: str = ""
    visible_to_customers: bool = False
    https: bool = False
    default_domain: str = ""
    custom_domain_enabled: bool = False
    default_url: str = ""
    current_url: str = ""
    current_domain: str = ""

    @property
    def title(self) -> str:
        return self.name

    @classmethod
    def from_dict(cls, data: Any) -> PortalRecord:
        data = _as_dict(data)
        portal_id = _require_id(cls.kind, data, "id")
        return cls(
            id=portal_id,
            name=str(data.get("name") or portal_id),
            description=str(data.get("description") or ""),
            custom_domain=str(data.get("customDomain") or ""),
            org_name=str(data.get("orgName") or ""),
            status=str(data.get("status") or ""),
            visible_to_customers=bool(data.get("visibleToCustomers", False)),
            https=bool(data.get("https", False)),
            default_domain=str(data.get("defaultDomain") or ""),
            custom_domain_enabled=bool(data.get("customDomainEnabled", False)),
            default_url=str(data.get("defaultURL") or ""),
            current_url=str(data.get("currentURL") or ""),
            current_domain=str(data.get("currentDomain") or ""),
            raw=data,
        )


@dataclass(frozen=True)
class APIDocRecord(RemoteRecord):
    """An API published on a portal (an "API doc")."""

    kind: ClassVar[ResourceKind] = ResourceKind.API

    portal_id: str = ""
    title: str = ""
    description: str = ""
    api_id: str = ""
    product_name: str = ""
    spec_content: str = ""
    spec_title: str = ""
    spec_id: str = ""
    product_exists: bool = False
    modified: int = 0
    snapshot_modified: int = 0
    image_url: str | None = None
    category_ids: tuple[int, ...] = ()
    # Filled by the reconciler from the portal listing
    portal_title: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> APIDocRecord:
        data = _as_dict(data)
        doc_id = _require_id(cls.kind, data, "id")
        portal_id = _require_id(cls.kind, data, "siteId")
        try:
            modified = int(data.get("modified") or 0)
            snapshot_modified = int(data.get("snapshotModified") or 0)
            category_ids = tuple(int(c) for c in data.get("categoryIds") or ())
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(f"api doc {doc_id} has a non-numeric field: {e}") from e
        title = str(data.get("title") or "")
        return cls(
            id=doc_id,
            name=title or doc_id,
            portal_id=portal_id,
            title=title,
            description=str(data.get("description") or ""),
            api_id=str(data.get("apiId") or ""),
            product_name=str(data.get("edgeAPIProductName") or ""),
            spec_content=str(data.get("specContent") or ""),
            spec_title=str(data.get("specTitle") or ""),
            spec_id=str(data.get("specId") or ""),
            product_exists=bool(data.get("productExists", False)),
            modified=modified,
            snapshot_modified=snapshot_modified,
            image_url=data.get("imageUrl"),
            category_ids=category_ids,
            raw=data,
        )

    def filter_fields(self) -> dict[str, Any]:
        fields = super().filter_fields()
        fields.update({"portalId": self.portal_id, "productName": self.product_name, "portalTitle": self.portal_title})
        return fields


RECORD_TYPES: dict[ResourceKind, type[RemoteRecord]] = {
    ResourceKind.PROXY: ProxyRecord,
    ResourceKind.SPEC: SpecRecord,
    ResourceKind.PRODUCT: ProductRecord,
    ResourceKind.PORTAL: PortalRecord,
    ResourceKind.API: APIDocRecord,
}


@dataclass(frozen=True)
class SyncDiff:
    """
    Changes between two consecutive listings of one resource kind.

    ``added`` and ``updated`` are keyed by record id; ``updated`` maps to
    ``(old, new)`` pairs.
    """

    kind: ResourceKind
    added: dict[str, RemoteRecord] = field(default_factory=dict)
    updated: dict[str, tuple[RemoteRecord, RemoteRecord]] = field(default_factory=dict)
    removed: frozenset[str] = frozenset()

    @property
    def empty(self) -> bool:
        return not (self.added or self.updated or self.removed)

    def summary(self) -> str:
        return f"+{len(self.added)} ~{len(self.updated)} -{len(self.removed)}"

"""
Listing comparison.
"""

from collections.abc import Mapping

from apigee_discovery.discovery.models import RemoteRecord, ResourceKind, SyncDiff


def compute_diff(
    kind: ResourceKind,
    previous: Mapping[str, RemoteRecord],
    current: Mapping[str, RemoteRecord],
) -> SyncDiff:
    """
    Compare the last committed listing with a freshly fetched one.

    A record is "updated" when its raw remote payload changed; records whose
    payload is identical are not reported at all.
    """
    added = {rid: rec for rid, rec in current.items() if rid not in previous}
    updated = {
        rid: (previous[rid], rec)
        for rid, rec in current.items()
        if rid in previous and not previous[rid].same_remote_state(rec)
    }
    removed = frozenset(rid for rid in previous if rid not in current)
    return SyncDiff(kind=kind, added=added, updated=updated, removed=removed)

"""Organization resolution for inbound events.

The two platforms do not share tenant identifiers, so an inbound
``organizationId`` may be a local id, a stale id from a legacy deployment,
or missing. The lookup order below decides which tenant inbound chat
messages land in; changing it moves conversations between tenants.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from syncbridge.config import settings
from syncbridge.errors import TenantNotFound
from syncbridge.observability import incr_metric, log_event
from syncbridge.store import SyncStore


ResolutionStep = Literal["exact", "fallback_id", "oldest", "linked", "created"]


@dataclass(frozen=True)
class ResolvedOrganization:
    organization: dict[str, Any]
    step: ResolutionStep

    @property
    def id(self) -> str:
        return self.organization["id"]


def resolve_organization(
    store: SyncStore,
    reference: str | None,
    *,
    legacy_ids: set[str] | None = None,
    fallback_id: str | None = None,
) -> ResolvedOrganization:
    """Map an ambiguous tenant reference to a local organization.

    1. exact id lookup
    2. legacy sentinel reference, or a miss in step 1: the configured fallback id
    3. the oldest organization (single-tenant and freshly reset deployments)
    4. otherwise TenantNotFound
    """
    if legacy_ids is None:
        legacy_ids = settings.legacy_organization_id_set()
    if fallback_id is None:
        fallback_id = settings.fallback_organization_id

    reference = (reference or "").strip() or None
    is_legacy = reference is not None and reference in legacy_ids

    if reference and not is_legacy:
        org = store.get_organization(reference)
        if org:
            return ResolvedOrganization(org, "exact")

    log_event(
        "organization_resolution_fallback",
        level=logging.WARNING,
        reference=reference,
        legacy_sentinel=is_legacy,
    )

    if fallback_id:
        org = store.get_organization(fallback_id)
        if org:
            incr_metric("identity.fallback", step="fallback_id")
            return ResolvedOrganization(org, "fallback_id")

    org = store.get_oldest_organization()
    if org:
        incr_metric("identity.fallback", step="oldest")
        log_event("organization_resolved_to_oldest", reference=reference, organization_id=org["id"])
        return ResolvedOrganization(org, "oldest")

    incr_metric("identity.fallback", step="exhausted")
    raise TenantNotFound("Organization not found", reference=reference)


def resolve_linked_organization(
    store: SyncStore,
    crm_organization_id: str,
    *,
    name_hint: str | None = None,
) -> ResolvedOrganization:
    """Dev-side tenant for a CRM organization id, created on first contact."""
    org = store.find_organization_by_crm_id(crm_organization_id)
    if org:
        return ResolvedOrganization(org, "linked")

    org = store.get_organization(crm_organization_id)
    if org:
        return ResolvedOrganization(org, "exact")

    org = store.create_organization(
        {
            "id": crm_organization_id,
            "name": name_hint or "CRM Organization",
            "slug": f"crm-{crm_organization_id[-8:]}",
            "crm_organization_id": crm_organization_id,
        }
    )
    log_event("organization_created_from_crm", organization_id=org["id"], name=org.get("name"))
    return ResolvedOrganization(org, "created")

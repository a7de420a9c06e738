import pytest
from conftest import FakeSupabase

from syncbridge.domain.identity import resolve_linked_organization, resolve_organization
from syncbridge.errors import TenantNotFound
from syncbridge.store import SyncStore


def _store():
    return SyncStore(
        FakeSupabase(
            {
                "organizations": [
                    {"id": "org-new", "name": "Newer", "created_at": "2024-05-01T00:00:00+00:00"},
                    {"id": "org-old", "name": "Oldest", "created_at": "2021-01-01T00:00:00+00:00"},
                    {
                        "id": "org-fallback",
                        "name": "Fallback",
                        "created_at": "2023-01-01T00:00:00+00:00",
                        "crm_organization_id": "crm-7",
                    },
                ]
            }
        )
    )


def test_exact_match_wins():
    resolved = resolve_organization(_store(), "org-new", legacy_ids=set(), fallback_id="org-fallback")
    assert (resolved.id, resolved.step) == ("org-new", "exact")


def test_unknown_reference_uses_configured_fallback():
    resolved = resolve_organization(_store(), "org-gone", legacy_ids=set(), fallback_id="org-fallback")
    assert (resolved.id, resolved.step) == ("org-fallback", "fallback_id")


def test_legacy_sentinel_skips_exact_lookup():
    store = _store()
    store.client.tables["organizations"].append({"id": "default", "created_at": "2020-01-01T00:00:00+00:00"})
    resolved = resolve_organization(store, "default", legacy_ids={"default"}, fallback_id="org-fallback")
    assert resolved.id == "org-fallback"


def test_oldest_organization_is_last_resort():
    resolved = resolve_organization(_store(), None, legacy_ids=set(), fallback_id="missing")
    assert (resolved.id, resolved.step) == ("org-old", "oldest")


def test_no_organizations_raises_tenant_not_found():
    with pytest.raises(TenantNotFound):
        resolve_organization(SyncStore(FakeSupabase({})), "org-1", legacy_ids=set(), fallback_id=None)


def test_linked_organization_lookup_order():
    store = _store()
    assert resolve_linked_organization(store, "crm-7").id == "org-fallback"
    assert resolve_linked_organization(store, "org-new").step == "exact"

    created = resolve_linked_organization(store, "crm-org-abcdef123", name_hint="ACME")
    assert created.step == "created"
    assert created.organization["name"] == "ACME"
    assert created.organization["crm_organization_id"] == "crm-org-abcdef123"
    assert resolve_linked_organization(store, "crm-org-abcdef123").step == "linked"

from uuid import UUID

import pytest

from conftest import ACTOR, history
from src.shared.exceptions import (
    AlreadyExistsError,
    BadRequestError,
    EntryNotFoundError,
    ValidationError,
)
from src.system_settings.bootstrap import initialize_default_roles
from src.system_settings.domain.modules import DEFAULT_ROLES

pytestmark = pytest.mark.asyncio


async def test_flag_create_duplicate_and_toggle(container):
    flags = container.feature_flags
    created = await flags.create_entry("T2", {"name": "data_masking", "enabled": True}, ACTOR)
    assert created["enabled"] is True

    with pytest.raises(AlreadyExistsError):
        await flags.create_entry("T2", {"name": "data_masking", "enabled": False}, ACTOR)

    toggled = await flags.toggle("T2", "data_masking", ACTOR)
    assert toggled["enabled"] is False
    assert await flags.is_enabled("T2", "data_masking") is False
    assert [i["action"] for i in await history(container, "T2")] == ["toggle", "create"]


async def test_absent_flag_is_disabled(container):
    assert await container.feature_flags.is_enabled("T2", "compliance_reports") is False
    await container.feature_flags.create_entry("T2", {"name": "data_masking"}, ACTOR)
    assert await container.feature_flags.is_enabled("T2", "compliance_reports") is False


async def test_flags_are_tenant_scoped(container):
    with pytest.raises(ValidationError):
        await container.feature_flags.create_entry(None, {"name": "data_masking"}, ACTOR)


async def test_unknown_flag_name_rejected(container):
    with pytest.raises(ValidationError):
        await container.feature_flags.create_entry("T2", {"name": "dark_mode"}, ACTOR)


async def test_bulk_first_occurrence_wins(container):
    roles = container.roles
    result = await roles.bulk_create(
        "T3",
        [
            {"name": "admin", "permissions": ["settings:read"]},
            {"name": "admin", "permissions": ["settings:write"]},
        ],
        ACTOR,
    )
    assert [r["name"] for r in result["created"]] == ["admin"]
    assert result["skipped"] == ["admin"]
    assert await roles.get_permissions("T3", "admin") == ["settings:read"]


async def test_bulk_skips_existing_and_fails_when_nothing_is_new(container):
    roles = container.roles
    await roles.create_entry("T3", {"name": "teacher", "permissions": ["settings:read"]}, ACTOR)

    result = await roles.bulk_create(
        "T3",
        [{"name": "teacher", "permissions": ["settings:read"]}, {"name": "clerk", "permissions": ["flags:read"]}],
        ACTOR,
    )
    assert [r["name"] for r in result["created"]] == ["clerk"]
    assert result["skipped"] == ["teacher"]

    with pytest.raises(BadRequestError) as exc:
        await roles.bulk_create("T3", [{"name": "clerk", "permissions": ["flags:read"]}], ACTOR)
    assert exc.value.details["skipped"] == ["clerk"]


async def test_entry_update_and_missing_entry(container):
    roles = container.roles
    await roles.create_entry("T3", {"name": "teacher", "permissions": ["settings:read"]}, ACTOR)
    updated = await roles.update_entry("T3", "teacher", {"permissions": ["settings:read", "audit:read"]}, ACTOR)
    assert updated["permissions"] == ["settings:read", "audit:read"]

    with pytest.raises(EntryNotFoundError):
        await roles.update_entry("T3", "principal", {"enabled": False}, ACTOR)
    with pytest.raises(EntryNotFoundError):
        await roles.get_entry("T3", "principal")


async def test_entry_delete_can_be_rolled_back(container):
    roles = container.roles
    await roles.create_entry("T3", {"name": "teacher", "permissions": ["settings:read"]}, ACTOR)
    await roles.delete_entry("T3", "teacher", ACTOR)
    with pytest.raises(EntryNotFoundError):
        await roles.get_entry("T3", "teacher")
    with pytest.raises(EntryNotFoundError):
        await roles.delete_entry("T3", "teacher", ACTOR)

    entry = (await history(container, "T3", action="delete"))[0]
    await container.audit.rollback_settings("T3", UUID(entry["id"]), ACTOR)
    assert (await roles.get_entry("T3", "teacher"))["permissions"] == ["settings:read"]


async def test_list_pagination(container):
    roles = container.roles
    await roles.bulk_create(
        "T3", [{"name": f"role-{i}", "permissions": ["settings:read"]} for i in range(5)], ACTOR
    )
    await roles.delete_entry("T3", "role-0", ACTOR)

    page = await roles.list_entries("T3", page=2, limit=2)
    assert page["total"] == 4
    assert [e["name"] for e in page["items"]] == ["role-3", "role-4"]

    with pytest.raises(BadRequestError):
        await roles.list_entries("T3", page=0)


async def test_purge_cache_is_recorded(container, fake_redis):
    roles = container.roles
    await roles.create_entry("T3", {"name": "teacher", "permissions": ["settings:read"]}, ACTOR)
    await roles.list_entries("T3")
    assert fake_redis.keys_matching("test:settings:role:T3:list*")

    await roles.purge_cache("T3", ACTOR)
    assert not fake_redis.keys_matching("test:settings:role:T3*")
    assert (await history(container, "T3"))[0]["action"] == "purge_cache"


async def test_global_roles_seeded_once(container):
    created = await initialize_default_roles(container.roles)
    assert sorted(created) == sorted(DEFAULT_ROLES)
    assert await initialize_default_roles(container.roles) == []

    entries = (await container.roles.list_entries(None))["items"]
    assert {e["name"] for e in entries} == set(DEFAULT_ROLES)
    assert [i["changed_by"] for i in await history(container, None)] == ["system"]

import asyncio
import json
from uuid import UUID

import pytest

from conftest import ACTOR, history
from src.shared.config import get_settings
from src.shared.exceptions import AlreadyExistsError, ConcurrentModificationError, NotFoundError, ValidationError
from src.shared.redis import RedisClient
from src.system_settings.container import build_container
from src.system_settings.domain.modules import SettingsModule

pytestmark = pytest.mark.asyncio

INFRA = {"cloud_providers": ["AWS"], "data_center_regions": ["Mumbai"]}


async def test_update_then_rollback_restores_previous_state(container):
    svc = container.security
    created = await svc.create("T1", {"encryption": {"standard": "AES-256"}}, ACTOR)
    assert (await svc.get("T1")).data["encryption"]["standard"] == "AES-256"

    await svc.update("T1", {"encryption": {"standard": "RSA-2048"}}, ACTOR)
    updated = await svc.get("T1")
    assert updated.data["encryption"]["standard"] == "RSA-2048"
    # replacing the section keeps the active key
    assert updated.data["encryption"]["current_key_id"] == created.data["encryption"]["current_key_id"]

    entry = (await history(container, "T1", action="update"))[0]
    await container.audit.rollback_settings("T1", UUID(entry["id"]), ACTOR)

    assert (await svc.get("T1")).data == created.data
    rollback = (await history(container, "T1", action="rollback"))[0]
    assert rollback["previous_value"] == updated.data
    assert rollback["new_value"] == created.data


async def test_delete_then_rollback_revives_aggregate(container):
    svc = container.security
    created = await svc.create("T1", {"ip_geofencing": {"enabled": True, "whitelist": ["10.0.0.1"]}}, ACTOR)
    await svc.delete("T1", ACTOR)
    with pytest.raises(NotFoundError):
        await svc.get("T1")

    entry = (await history(container, "T1", action="delete"))[0]
    await container.audit.rollback_settings("T1", UUID(entry["id"]), ACTOR)

    revived = await svc.get("T1")
    assert revived.data == created.data
    assert revived.is_deleted is False


async def test_rollback_of_create_removes_aggregate(container):
    svc = container.enterprise_infra
    await svc.create("T8", INFRA, ACTOR)
    entry = (await history(container, "T8", action="create"))[0]
    await container.audit.rollback_settings("T8", UUID(entry["id"]), ACTOR)
    with pytest.raises(NotFoundError):
        await svc.get("T8")


async def test_rollback_needs_a_live_aggregate(container):
    svc = container.core_config
    await svc.create("T8", {"system_identifier": "erp-8"}, ACTOR)
    await svc.update("T8", {"locale": "hi-IN"}, ACTOR)
    await svc.delete("T8", ACTOR)
    entry = (await history(container, "T8", action="update"))[0]
    with pytest.raises(NotFoundError):
        await container.audit.rollback_settings("T8", UUID(entry["id"]), ACTOR)


async def test_rollback_is_tenant_scoped(container):
    await container.core_config.create("T8", {"system_identifier": "erp-8"}, ACTOR)
    entry = (await history(container, "T8"))[0]
    with pytest.raises(NotFoundError) as exc:
        await container.audit.rollback_settings("other", UUID(entry["id"]), ACTOR)
    assert exc.value.code == "history_not_found"


async def test_each_operation_records_one_entry_with_snapshots(container):
    svc = container.core_config
    created = await svc.create("T9", {"system_identifier": "erp-9"}, ACTOR)
    updated = await svc.update("T9", {"time_zone": "Asia/Kolkata"}, ACTOR)
    await svc.delete("T9", ACTOR)

    items = await history(container, "T9")
    assert [i["action"] for i in items] == ["delete", "update", "create"]
    delete, update, create = items
    assert create["previous_value"] == {} and create["new_value"] == created.data
    assert update["previous_value"] == created.data and update["new_value"] == updated.data
    assert delete["previous_value"] == updated.data and delete["new_value"] == {}
    assert all(i["changed_by"] == "admin-1" and i["ip_address"] == "10.0.0.1" for i in items)
    assert all(i["module"] == "coreSystemConfig" for i in items)


async def test_second_delete_is_not_found_and_not_recorded(container):
    svc = container.enterprise_infra
    await svc.create("T5", INFRA, ACTOR)
    await svc.delete("T5", ACTOR)
    with pytest.raises(NotFoundError):
        await svc.delete("T5", ACTOR)
    assert len(await history(container, "T5", action="delete")) == 1


async def test_one_live_aggregate_per_tenant_and_module(container):
    svc = container.enterprise_infra
    await svc.create("T5", INFRA, ACTOR)
    with pytest.raises(AlreadyExistsError):
        await svc.create("T5", INFRA, ACTOR)
    # other tenants and a recreate after delete are fine
    await svc.create("T5b", INFRA, ACTOR)
    await svc.delete("T5", ACTOR)
    again = await svc.create("T5", {**INFRA, "cloud_providers": ["Azure"]}, ACTOR)
    assert again.version == 1
    assert len(await history(container, "T5", action="create")) == 2


async def test_stale_version_is_rejected(container):
    await container.enterprise_infra.create("T5", INFRA, ACTOR)
    async with container.uow() as uow:
        current = await uow.store.get(SettingsModule.ENTERPRISE_INFRA, "T5")
        await uow.store.replace(current, {**current.data, "cloud_providers": ["Azure"]})
        with pytest.raises(ConcurrentModificationError):
            await uow.store.replace(current, {**current.data, "cloud_providers": ["AWS"]})


async def test_failed_validation_writes_nothing(container):
    svc = container.core_config
    with pytest.raises(ValidationError):
        await svc.create("T6", {"system_identifier": "erp", "time_zone": "Mars/Base"}, ACTOR)
    with pytest.raises(NotFoundError):
        await svc.get("T6")
    assert await history(container, "T6") == []


async def test_empty_or_unknown_patch_is_rejected(container):
    svc = container.core_config
    await svc.create("T6", {"system_identifier": "erp"}, ACTOR)
    with pytest.raises(ValidationError):
        await svc.update("T6", {}, ACTOR)
    with pytest.raises(ValidationError):
        await svc.update("T6", {"colour": "blue"}, ACTOR)


async def test_tenant_required_outside_roles(container):
    with pytest.raises(ValidationError):
        await container.core_config.get(None)


async def test_get_after_update_reflects_new_state(container, fake_redis):
    svc = container.core_config
    await svc.create("T6", {"system_identifier": "erp"}, ACTOR)
    await svc.get("T6")
    assert fake_redis.keys_matching("test:settings:coreSystemConfig:T6*")

    await svc.update("T6", {"locale": "hi-IN"}, ACTOR)
    assert not fake_redis.keys_matching("test:settings:coreSystemConfig:T6*")
    assert (await svc.get("T6")).data["locale"] == "hi-IN"


async def test_reads_are_served_from_cache(container, fake_redis):
    svc = container.core_config
    await svc.create("T6", {"system_identifier": "erp"}, ACTOR)
    await svc.get("T6")
    key = "test:settings:coreSystemConfig:T6"
    cached = json.loads(fake_redis.data[key])
    cached["value"]["data"]["locale"] = "from-cache"
    fake_redis.data[key] = json.dumps(cached)
    assert (await svc.get("T6")).data["locale"] == "from-cache"


async def test_changes_are_published_after_commit(container, fake_redis):
    await container.core_config.create("T6", {"system_identifier": "erp"}, ACTOR)
    channel, raw = fake_redis.published[-1]
    message = json.loads(raw)
    assert channel == "settings:coreSystemConfig"
    assert message["tenantId"] == "T6"
    assert message["action"] == "create"
    assert message["module"] == "coreSystemConfig"


async def test_subscribers_receive_change_messages(container):
    await container.core_config.create("T7", {"system_identifier": "erp"}, ACTOR)
    received = [m async for m in container.notifier.subscribe("coreSystemConfig")]
    assert [(m["tenantId"], m["action"]) for m in received] == [("T7", "create")]


async def test_slow_read_does_not_repopulate_cache_after_update(db, fake_redis, providers):
    redis = RedisClient("redis://fake", namespace="test", timeout=5, client=fake_redis)
    svc = build_container(get_settings(), db=db, redis=redis, providers=providers).core_config
    await svc.create("T8", {"system_identifier": "erp"}, ACTOR)
    key = "test:settings:coreSystemConfig:T8"

    loaded, release = asyncio.Event(), asyncio.Event()
    plain_set = fake_redis.set

    async def held_set(k, value, ex=None):
        if k == key and not release.is_set():
            loaded.set()
            await release.wait()
        return await plain_set(k, value, ex=ex)

    fake_redis.set = held_set
    reader = asyncio.create_task(svc.get("T8"))
    await loaded.wait()
    await svc.update("T8", {"locale": "hi-IN"}, ACTOR)
    release.set()
    assert (await reader).data["locale"] == "en-US"

    # the late write landed, tagged with the generation it was loaded under
    entry = json.loads(fake_redis.data[key])
    assert entry["value"]["data"]["locale"] == "en-US"
    assert entry["gen"] < int(fake_redis.data["test:settings:gen:coreSystemConfig:T8"])

    assert (await svc.get("T8")).data["locale"] == "hi-IN"

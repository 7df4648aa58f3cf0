from uuid import UUID

import pytest

from conftest import ACTOR
from src.shared.exceptions import InternalServerError
from src.system_settings.domain.repositories import HistoryFilter

pytestmark = pytest.mark.asyncio


async def exercise(container, tenant_id):
    """The same script of reads and writes; returns what a caller could observe."""
    core = container.core_config
    await core.create(tenant_id, {"system_identifier": "erp"}, ACTOR)
    first = (await core.get(tenant_id)).data
    await core.update(tenant_id, {"locale": "hi-IN"}, ACTOR)
    second = (await core.get(tenant_id)).data

    await container.feature_flags.create_entry(tenant_id, {"name": "data_masking", "enabled": True}, ACTOR)
    await container.feature_flags.toggle(tenant_id, "data_masking", ACTOR)
    flag = await container.feature_flags.is_enabled(tenant_id, "data_masking")

    log = await container.audit.get_audit_log(tenant_id, HistoryFilter(module="coreSystemConfig"))
    update_id = next(i["id"] for i in log["items"] if i["action"] == "update")
    await container.audit.rollback_settings(tenant_id, UUID(update_id), ACTOR)
    restored = (await core.get(tenant_id)).data

    stats = await container.audit.get_audit_log_stats(tenant_id)
    return {
        "first": first,
        "second_locale": second["locale"],
        "flag": flag,
        "restored_locale": restored["locale"],
        "actions": [i["action"] for i in log["items"]],
        "groups": [(g["module"], g["action"], g["count"]) for g in stats["groups"]],
    }


async def test_redis_outage_does_not_change_results(container, degraded_container):
    healthy = await exercise(container, "healthy")
    degraded = await exercise(degraded_container, "degraded")
    assert healthy == degraded
    assert degraded["restored_locale"] == "en-US"


async def test_rate_limits_are_not_enforced_without_redis(degraded_container):
    for _ in range(101):
        await degraded_container.audit.get_audit_log("T10")


async def test_otp_cannot_be_issued_without_storage(degraded_container, providers):
    security = degraded_container.security
    await security.create(
        "T10",
        {"authentication_stack": {"email": {"enabled": True, "smtp_server": "smtp.school.test"}}},
        ACTOR,
    )
    await degraded_container.feature_flags.create_entry("T10", {"name": "multi_factor_auth", "enabled": True}, ACTOR)
    with pytest.raises(InternalServerError):
        await security.send_email_otp("T10", ACTOR, "parent@example.com")
    assert providers.email.sent == []

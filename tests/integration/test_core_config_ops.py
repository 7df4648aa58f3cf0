import hashlib
from datetime import datetime, timezone

import pytest

from conftest import ACTOR
from src.shared.exceptions import InternalServerError, NotFoundError, ValidationError
from src.system_settings.infrastructure.providers.geoip import GeoLocation

pytestmark = pytest.mark.asyncio

CORE = {
    "system_identifier": "erp-main",
    "ntp_server": "ntp.primary.test",
    "fallback_ntp_servers": ["ntp.backup-1.test", "ntp.backup-2.test"],
}


async def test_ntp_falls_back_in_order(container, providers):
    await container.core_config.create("T6", CORE, ACTOR)
    providers.ntp.down.add("ntp.primary.test")

    result = await container.core_config.sync_with_ntp("T6")
    assert providers.ntp.asked == ["ntp.primary.test", "ntp.backup-1.test"]
    assert result["server"] == "ntp.backup-1.test"
    assert result["formatted_time"] == "2023-11-14 22:13:20"
    assert result["offset"] == 0.01


async def test_ntp_time_rendered_in_tenant_zone(container):
    await container.core_config.create("T6", {**CORE, "time_zone": "Asia/Kolkata"}, ACTOR)
    result = await container.core_config.sync_with_ntp("T6")
    assert result["server"] == "ntp.primary.test"
    assert result["formatted_time"] == "2023-11-15 03:43:20"
    assert result["timestamp"].startswith("2023-11-14T22:13:20")


async def test_ntp_all_servers_down(container, providers):
    await container.core_config.create("T6", CORE, ACTOR)
    providers.ntp.down.update({"ntp.primary.test", "ntp.backup-1.test", "ntp.backup-2.test"})
    with pytest.raises(InternalServerError) as exc:
        await container.core_config.sync_with_ntp("T6")
    assert exc.value.message == "NTP synchronization failed with all servers"
    assert len(exc.value.details["errors"]) == 3


async def test_ntp_needs_settings(container):
    with pytest.raises(NotFoundError):
        await container.core_config.sync_with_ntp("T6")


async def test_preview_date_time_format(container):
    at = datetime(2024, 2, 29, 18, 30, tzinfo=timezone.utc)
    preview = container.core_config.preview_date_time_format("DD/MM/YYYY", at=at)
    assert preview == {"format": "DD/MM/YYYY", "strftime": "%d/%m/%Y", "formatted": "29/02/2024", "time_zone": "UTC"}

    # the zone can move the calendar day
    shifted = container.core_config.preview_date_time_format("DD/MM/YYYY HH:mm", "Asia/Kolkata", at=at)
    assert shifted["formatted"] == "01/03/2024 00:00"


async def test_preview_rejects_bad_input(container):
    with pytest.raises(ValidationError):
        container.core_config.preview_date_time_format("YYYY-QQ")
    with pytest.raises(ValidationError):
        container.core_config.preview_date_time_format("YYYY", "Mars/Base")


async def test_language_pack_is_cached(container, fake_redis):
    pack = await container.core_config.get_language_pack("T6", "hi")
    assert pack == {"welcome_message": "Welcome (hi)"}
    assert fake_redis.expiry["test:settings:coreSystemConfig:T6:language:hi"] == 3600


async def test_translate_text(container, fake_redis):
    result = await container.core_config.translate_text("T6", "Good morning", "hi")
    assert result == {"translated_text": "Good morning", "target_language": "hi"}
    digest = hashlib.sha256(b"Good morning").hexdigest()
    assert f"test:settings:coreSystemConfig:T6:translate:hi:{digest}" in fake_redis.data

    with pytest.raises(ValidationError):
        await container.core_config.translate_text("T6", "", "hi")


async def test_regional_defaults(container, providers):
    providers.geoip.known["203.0.113.7"] = GeoLocation(country="IN", time_zone="Asia/Kolkata", locale="hi-IN")
    providers.geoip.known["203.0.113.8"] = GeoLocation(country="AQ", time_zone="Mars/Base")

    india = await container.core_config.get_regional_defaults("T6", "203.0.113.7")
    assert india == {
        "country": "IN",
        "time_zone": "Asia/Kolkata",
        "locale": "hi-IN",
        "language": "hi",
        "date_time_format": "YYYY-MM-DD HH:mm:ss",
    }

    odd = await container.core_config.get_regional_defaults("T6", "203.0.113.8")
    assert (odd["time_zone"], odd["locale"]) == ("UTC", "en-US")

    unknown = await container.core_config.get_regional_defaults("T6", "198.51.100.1")
    assert unknown["country"] is None
    assert unknown["language"] == "en"


# ---------- enterprise infra ----------

async def test_infrastructure_validation_checks_unsaved_payloads(container):
    infra = container.enterprise_infra
    draft = {
        "cloud_providers": ["AWS"],
        "data_center_regions": ["Mumbai"],
        "high_availability_cluster": {"enabled": True, "node_count": 1},
        "automated_backup": {"offsite": True},
    }
    assert infra.validate_infrastructure(draft) == {
        "valid": False,
        "issues": [
            "High availability requires at least 2 nodes",
            "Offsite backup requires a disaster recovery site",
        ],
    }

    fixed = {
        **draft,
        "high_availability_cluster": {"enabled": True, "node_count": 3, "failover_strategy": "Automatic"},
        "disaster_recovery": {"dr_site": "AWS Mumbai"},
    }
    assert infra.validate_infrastructure(fixed) == {"valid": True, "issues": []}

    with pytest.raises(ValidationError):
        infra.validate_infrastructure({**draft, "cloud_providers": ["Moon"]})

    # nothing was stored along the way
    with pytest.raises(NotFoundError):
        await infra.get("T5")


async def test_infrastructure_status(container):
    infra = container.enterprise_infra
    await infra.create(
        "T5",
        {
            "cloud_providers": ["AWS"],
            "data_center_regions": ["Mumbai"],
            "high_availability_cluster": {"enabled": True, "node_count": 3},
        },
        ACTOR,
    )
    status = await infra.get_infrastructure_status("T5")
    assert status["high_availability"] == "Enabled (3 nodes)"
    assert status["regions"] == ["Mumbai"]
    assert status["database"] == "PostgreSQL"
    assert status["issues"] == []
    assert status["status"] == "Operational"
    assert status["last_checked"]

from uuid import UUID

import pytest

from conftest import ACTOR, history, otp_from
from src.shared.exceptions import BadRequestError, NotFoundError, RateLimitedError, ValidationError
from src.system_settings.application.context import ActorContext
from src.system_settings.infrastructure.providers.geoip import GeoLocation

pytestmark = pytest.mark.asyncio

SECURITY = {
    "authentication_stack": {
        "methods": ["Email OTP", "SMS OTP"],
        "email": {"enabled": True, "smtp_server": "smtp.school.test", "smtp_port": 2525},
        "sms": {"enabled": True},
    },
    "ip_geofencing": {"enabled": True, "whitelist": ["10.0.0.1"], "blacklist": ["10.0.0.66"]},
    "compliance_suite": {"standards": ["GDPR"], "report_generation": {"enabled": True, "format": "CSV"}},
    "data_masking": {"enabled": True, "fields": ["Aadhaar", "Email"], "policy": "Partial"},
}


async def _setup(container, tenant_id="T7", flags=("multi_factor_auth", "compliance_reports", "data_masking")):
    await container.security.create(tenant_id, SECURITY, ACTOR)
    if flags:
        await container.feature_flags.bulk_create(tenant_id, [{"name": f, "enabled": True} for f in flags], ACTOR)


# ---------- OTP ----------

async def test_email_otp_send_and_verify(container, providers):
    await _setup(container)
    sent = await container.security.send_email_otp("T7", ACTOR, "parent@example.com")
    assert sent == {"sent": True, "channel": "email", "expires_in": 300}

    mail = providers.email.sent[-1]
    assert (mail["to"], mail["host"], mail["port"]) == ("parent@example.com", "smtp.school.test", 2525)
    assert "expires in 5 minutes" in mail["body"]

    otp = otp_from(mail["body"])
    assert len(otp) == 6
    assert await container.security.verify_otp("T7", ACTOR, otp) == {"verified": True}

    # single use
    with pytest.raises(BadRequestError) as exc:
        await container.security.verify_otp("T7", ACTOR, otp)
    assert exc.value.code == "invalid_otp"


async def test_sms_otp_is_bound_to_the_actor(container, providers):
    await _setup(container)
    await container.security.send_sms_otp("T7", ACTOR, "+919876543210")
    otp = otp_from(providers.sms.sent[-1]["body"])
    with pytest.raises(BadRequestError):
        await container.security.verify_otp("T7", ActorContext(actor_id="someone-else"), otp)
    assert (await container.security.verify_otp("T7", ACTOR, otp))["verified"] is True


async def test_wrong_otp_rejected(container):
    await _setup(container)
    await container.security.send_email_otp("T7", ACTOR, "parent@example.com")
    with pytest.raises(BadRequestError) as exc:
        await container.security.verify_otp("T7", ACTOR, "0000000")
    assert exc.value.code == "invalid_otp"


async def test_otp_send_limit_per_actor(container):
    await _setup(container)
    for _ in range(3):
        await container.security.send_email_otp("T7", ACTOR, "parent@example.com")
    with pytest.raises(RateLimitedError):
        await container.security.send_email_otp("T7", ACTOR, "parent@example.com")
    other = ActorContext(actor_id="admin-2")
    assert (await container.security.send_email_otp("T7", other, "parent@example.com"))["sent"] is True


async def test_otp_requires_mfa_flag(container, providers):
    await _setup(container, flags=())
    with pytest.raises(BadRequestError) as exc:
        await container.security.send_email_otp("T7", ACTOR, "parent@example.com")
    assert exc.value.code == "feature_disabled"
    assert providers.email.sent == []


async def test_otp_requires_enabled_channel(container):
    await _setup(container)
    await container.security.update(
        "T7", {"authentication_stack": {"methods": ["Email OTP"], "email": SECURITY["authentication_stack"]["email"]}}, ACTOR
    )
    with pytest.raises(BadRequestError) as exc:
        await container.security.send_sms_otp("T7", ACTOR, "+919876543210")
    assert exc.value.message == "SMS OTP is disabled"


async def test_otp_recipient_validated(container):
    await _setup(container)
    with pytest.raises(ValidationError):
        await container.security.send_email_otp("T7", ACTOR, "not-an-email")
    with pytest.raises(ValidationError):
        await container.security.send_sms_otp("T7", ACTOR, "12345")


# ---------- encryption ----------

async def test_encrypt_decrypt(container):
    await _setup(container, flags=())
    envelope = await container.security.encrypt_data("T7", "Aadhaar 1234-5678-9012")
    key_id = (await container.security.get("T7")).data["encryption"]["current_key_id"]
    assert envelope["key_id"] == key_id
    assert envelope["algorithm"] == "AES-256-GCM"

    payload = {k: envelope[k] for k in ("encrypted_data", "iv", "key")}
    assert await container.security.decrypt_data("T7", payload) == {"decrypted_data": "Aadhaar 1234-5678-9012"}

    tampered = {**payload, "encrypted_data": ("0" if payload["encrypted_data"][0] != "0" else "1") + payload["encrypted_data"][1:]}
    with pytest.raises(BadRequestError):
        await container.security.decrypt_data("T7", tampered)
    with pytest.raises(BadRequestError):
        await container.security.decrypt_data("T7", {**payload, "key": "abcd"})


async def test_rsa_standard_cannot_encrypt(container):
    await container.security.create("T7", {"encryption": {"standard": "RSA-2048"}}, ACTOR)
    with pytest.raises(BadRequestError):
        await container.security.encrypt_data("T7", "secret")


async def test_encrypt_needs_settings(container):
    with pytest.raises(NotFoundError):
        await container.security.encrypt_data("T7", "secret")


async def test_key_rotation_is_recorded_and_reversible(container):
    await _setup(container, flags=())
    before = (await container.security.get("T7")).data["encryption"]["current_key_id"]
    rotated = await container.security.rotate_encryption_key("T7", ACTOR)
    assert rotated["current_key_id"] != before
    assert (await container.security.get("T7")).data["encryption"]["current_key_id"] == rotated["current_key_id"]

    entry = (await history(container, "T7", action="key_rotation"))[0]
    assert entry["previous_value"]["encryption"]["current_key_id"] == before
    await container.audit.rollback_settings("T7", UUID(entry["id"]), ACTOR)
    assert (await container.security.get("T7")).data["encryption"]["current_key_id"] == before


# ---------- geofencing ----------

async def test_geofencing_decisions(container, providers):
    await _setup(container, flags=())
    providers.geoip.known["203.0.113.7"] = GeoLocation(country="IN")
    check = container.security.check_ip_geofencing

    assert await check("T7", "10.0.0.1") == {"allowed": True, "reason": "IP whitelisted"}
    assert await check("T7", "10.0.0.66") == {"allowed": False, "reason": "IP blacklisted"}
    assert await check("T7", "203.0.113.7") == {"allowed": True, "country": "IN", "reason": "Geo-IP check passed"}
    assert (await check("T7", "198.51.100.1"))["allowed"] is False
    with pytest.raises(ValidationError):
        await check("T7", "999.1.1.1")


async def test_geofencing_disabled_allows_everything(container):
    await container.security.create("T7", {}, ACTOR)
    assert await container.security.check_ip_geofencing("T7", "10.0.0.66") == {
        "allowed": True,
        "reason": "Geofencing disabled",
    }


# ---------- compliance / masking / status ----------

async def test_compliance_report(container):
    await _setup(container)
    report = await container.security.generate_compliance_report("T7")
    assert report["standards"] == ["GDPR"]
    assert report["audit_logs"] == "Retained for 365 days"
    assert report["encryption"] == "AES-256"
    assert report["format"] == "CSV"


async def test_compliance_report_gates(container):
    await _setup(container, flags=())
    with pytest.raises(BadRequestError):
        await container.security.generate_compliance_report("T7")

    await container.feature_flags.create_entry("T7", {"name": "compliance_reports", "enabled": True}, ACTOR)
    await container.security.update(
        "T7", {"compliance_suite": {"standards": ["GDPR"], "report_generation": {"enabled": False}}}, ACTOR
    )
    with pytest.raises(BadRequestError) as exc:
        await container.security.generate_compliance_report("T7")
    assert exc.value.message == "Report generation is disabled"


async def test_mask_data(container):
    await _setup(container)
    masked = await container.security.mask_data("T7", "Aadhaar", "1234-5678-9012")
    assert masked == {"field": "Aadhaar", "masked_value": "XXXX-XXXX-9012"}
    # not a configured field
    assert (await container.security.mask_data("T7", "Name", "Jason"))["masked_value"] == "Jason"


async def test_mask_data_needs_flag(container):
    await _setup(container, flags=("multi_factor_auth",))
    with pytest.raises(BadRequestError):
        await container.security.mask_data("T7", "Aadhaar", "1234-5678-9012")


async def test_security_status(container):
    await _setup(container, flags=())
    status = await container.security.get_security_status("T7")
    assert status["authentication"] == "Configured"
    assert status["encryption"] == "AES-256"
    assert status["ip_geofencing"] == "Enabled"
    assert status["compliance"] == "Compliant"
    assert status["data_masking"] == "Enabled"

    await container.security.create("T7b", {}, ACTOR)
    bare = await container.security.get_security_status("T7b")
    assert (bare["authentication"], bare["compliance"]) == ("Not Configured", "Non-Compliant")

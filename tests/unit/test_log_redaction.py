import structlog

from src.shared.logging import REDACTED, SensitiveDataRedactor, bind_request_context, clear_request_context


def test_secret_keys_are_replaced_at_any_depth():
    out = SensitiveDataRedactor()(None, "info", {
        "event": "otp_sent",
        "otp": "482913",
        "details": {"smtp_password": "hunter2", "channel": "email"},
    })
    assert out["otp"] == REDACTED
    assert out["details"] == {"smtp_password": REDACTED, "channel": "email"}
    assert out["event"] == "otp_sent"


def test_free_text_contact_details_are_masked():
    redactor = SensitiveDataRedactor()
    assert redactor.scrub_text("sent to parent@example.com") == "sent to ***@example.com"
    assert redactor.scrub_text("call +14155550123") == "call +14****0123"
    assert REDACTED in redactor.scrub_text("id 1234 5678 9012")


def test_request_context_binds_only_known_fields():
    clear_request_context()
    try:
        bind_request_context(path="/x", method="GET", user_id=None, colour="blue")
        assert structlog.contextvars.get_contextvars() == {"path": "/x", "method": "GET"}
    finally:
        clear_request_context()

from src.system_settings.domain.masking import MASK, mask_value

FIELDS = ["Aadhaar", "Phone", "Email", "Name"]


def partial(value, field):
    return mask_value(value, field, enabled=True, fields=FIELDS, policy="Partial")


def test_partial_rules():
    assert partial("1234-5678-9012", "Aadhaar") == "XXXX-XXXX-9012"
    assert partial("+91 98765 43210", "phone") == "XXXX-XXX-3210"
    assert partial("john.doe@example.com", "Email") == "jo****@example.com"
    assert partial("Jason", "Name") == "J****n"


def test_too_short_values_are_fully_masked():
    assert partial("123", "Aadhaar") == MASK
    assert partial("J", "Name") == MASK
    assert partial("not-an-email", "Email") == MASK


def test_full_policy_ignores_field_type():
    assert mask_value("john@example.com", "Email", enabled=True, fields=FIELDS, policy="Full") == "****"


def test_empty_value():
    assert partial("", "Name") == ""


def test_unlisted_or_unknown_fields_pass_through():
    assert mask_value("Jason", "Name", enabled=True, fields=["Email"], policy="Partial") == "Jason"
    assert partial("secret", "Address") == "secret"


def test_disabled_policy_passes_through():
    assert mask_value("Jason", "Name", enabled=False, fields=FIELDS, policy="Full") == "Jason"

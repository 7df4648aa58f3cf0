"""
Field-level data masking rules.
"""
from __future__ import annotations

from typing import Callable, Dict, Iterable

MASK = "****"


def _last_four(prefix: str) -> Callable[[str], str]:
    def rule(value: str) -> str:
        digits = "".join(ch for ch in value if ch.isalnum())
        return f"{prefix}{digits[-4:]}" if len(digits) >= 4 else MASK
    return rule


def _email(value: str) -> str:
    local, sep, domain = value.partition("@")
    if not sep or not local or not domain:
        return MASK
    return f"{local[:2]}{MASK}@{domain}"


def _name(value: str) -> str:
    value = value.strip()
    if len(value) < 2:
        return MASK
    return f"{value[0]}{MASK}{value[-1]}"


PARTIAL_RULES: Dict[str, Callable[[str], str]] = {
    "aadhaar": _last_four("XXXX-XXXX-"),
    "phone": _last_four("XXXX-XXX-"),
    "email": _email,
    "name": _name,
}


def mask_value(value: str, field: str, *, enabled: bool, fields: Iterable[str], policy: str) -> str:
    """
    Apply the tenant's masking policy to one value.
    Fields outside the configured list, or without a rule, come back unchanged.
    """
    if not value:
        return ""
    key = field.strip().lower()
    if not enabled or key not in {f.lower() for f in fields}:
        return value
    if policy == "Full":
        return MASK
    rule = PARTIAL_RULES.get(key)
    return rule(value) if rule else value

"""
Settings modules and their closed vocabularies.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

GLOBAL_TENANT_KEY = "global"
AUDIT_LOG_MODULE = "auditLog"


class SettingsModule(str, Enum):
    """Closed set of configuration modules; rollback dispatch is keyed on this."""
    SECURITY_FRAMEWORK = "securityFramework"
    CORE_SYSTEM_CONFIG = "coreSystemConfig"
    ENTERPRISE_INFRA = "enterpriseInfra"
    FEATURE_FLAGS = "featureFlags"
    ROLE = "role"

    @property
    def is_collection(self) -> bool:
        return self in (SettingsModule.FEATURE_FLAGS, SettingsModule.ROLE)

    @property
    def allows_global(self) -> bool:
        return self is SettingsModule.ROLE

    @classmethod
    def parse(cls, value: str) -> Optional["SettingsModule"]:
        try:
            return cls(value)
        except ValueError:
            return None


class HistoryAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ROLLBACK = "rollback"
    BULK_CREATE = "bulk_create"
    TOGGLE = "toggle"
    PURGE_CACHE = "purge_cache"
    KEY_ROTATION = "key_rotation"


def tenant_key(tenant_id: Optional[str]) -> str:
    """Storage key for a tenant; tenant-less (system) aggregates share one key."""
    return str(tenant_id) if tenant_id else GLOBAL_TENANT_KEY


# ───────────────────────────── feature flags / RBAC ─────────────────────────────

FEATURE_FLAGS = ("multi_factor_auth", "data_masking", "compliance_reports")

PERMISSIONS = (
    "settings:read",
    "settings:write",
    "flags:read",
    "flags:write",
    "roles:read",
    "roles:write",
    "audit:read",
    "audit:write",
    "audit:rollback",
    "manageAdmins",
    "getAdmins",
    "updateProfile",
    "changePassword",
    "manageRoles",
)

DEFAULT_ROLES = {
    "SUPER_ADMIN": [
        "manageAdmins",
        "getAdmins",
        "updateProfile",
        "changePassword",
        "manageRoles",
        "roles:read",
        "roles:write",
        "flags:read",
        "flags:write",
        "settings:read",
        "settings:write",
        "audit:read",
        "audit:write",
        "audit:rollback",
    ],
    "SCHOOL_ADMIN": ["updateProfile", "changePassword", "roles:read", "flags:read", "settings:read"],
}

# ───────────────────────────── security framework ─────────────────────────────

AUTHENTICATION_METHODS = ("Email OTP", "SMS OTP", "App-Based")
SMS_PROVIDERS = ("Twilio", "Other")
ENCRYPTION_STANDARDS = ("AES-256", "RSA-2048")
GEO_IP_DATABASES = ("GeoLite2", "MaxMind")
COMPLIANCE_STANDARDS = ("ISO 27001", "CBSE", "GDPR", "HIPAA")
REPORT_FORMATS = ("PDF", "CSV")
MASKABLE_FIELDS = ("Aadhaar", "Phone", "Email", "Name")
MASKING_POLICIES = ("Partial", "Full")

# ───────────────────────────── core system config ─────────────────────────────

OPERATIONAL_MODES = ("production", "staging", "development")
TIME_ZONES = ("UTC", "America/New_York", "America/Los_Angeles", "Asia/Kolkata", "Europe/London")
DEFAULT_NTP_SERVER = "pool.ntp.org"
DEFAULT_FALLBACK_NTP_SERVERS = ("time.google.com", "time.windows.com")
DEFAULT_DATE_TIME_FORMAT = "YYYY-MM-DD HH:mm:ss"
CONFIG_ENCRYPTION_ALGORITHMS = ("AES-256", "RSA")

# ───────────────────────────── enterprise infra ─────────────────────────────

CLOUD_PROVIDERS = ("AWS", "Azure", "Google Cloud", "Hybrid")
DATA_CENTER_REGIONS = ("Mumbai", "Singapore", "Frankfurt", "US-East-1", "Sydney", "Tokyo", "London", "Sao Paulo")
FAILOVER_STRATEGIES = ("Manual", "Automatic", "Custom")
IN_MEMORY_ENGINES = ("SAP HANA", "Redis Enterprise")
DATABASE_ENGINES = ("Cassandra", "PostgreSQL", "MongoDB")
DATABASE_CONFIGURATIONS = ("Sharded", "Replicated")
BACKUP_MODES = ("Real-time", "Incremental")
STORAGE_TYPES = ("Local", "Cloud", "Tape")
DR_SITES = ("AWS US-East-1", "AWS Mumbai", "Azure Singapore", "Google Cloud Tokyo")

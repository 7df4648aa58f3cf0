"""
Module payload schemas (Pydantic v2)
Create models describe a full aggregate; update models carry whole top-level sections.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Type
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, EmailStr, Field, IPvAnyAddress, field_validator, model_validator

from src.system_settings.domain.datetime_format import to_strftime
from src.system_settings.domain.modules import (
    AUTHENTICATION_METHODS,
    BACKUP_MODES,
    CLOUD_PROVIDERS,
    COMPLIANCE_STANDARDS,
    CONFIG_ENCRYPTION_ALGORITHMS,
    DATA_CENTER_REGIONS,
    DATABASE_CONFIGURATIONS,
    DATABASE_ENGINES,
    DEFAULT_DATE_TIME_FORMAT,
    DEFAULT_FALLBACK_NTP_SERVERS,
    DEFAULT_NTP_SERVER,
    DR_SITES,
    ENCRYPTION_STANDARDS,
    FAILOVER_STRATEGIES,
    FEATURE_FLAGS,
    GEO_IP_DATABASES,
    IN_MEMORY_ENGINES,
    MASKABLE_FIELDS,
    MASKING_POLICIES,
    OPERATIONAL_MODES,
    PERMISSIONS,
    REPORT_FORMATS,
    SMS_PROVIDERS,
    STORAGE_TYPES,
    TIME_ZONES,
    SettingsModule,
)


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


def _unique(values: List[Any]) -> List[Any]:
    return list(dict.fromkeys(values))


def top_level_patch(model: BaseModel) -> Dict[str, Any]:
    """Only the sections the caller supplied, each dumped in full."""
    full = model.model_dump(mode="json")
    return {name: full[name] for name in model.model_fields_set}


# ───────────────────────────── securityFramework ─────────────────────────────

class EmailChannel(_Strict):
    enabled: bool = False
    smtp_server: Optional[str] = None
    smtp_port: int = Field(default=587, ge=1, le=65535)

    @model_validator(mode="after")
    def server_when_enabled(self):
        if self.enabled and not self.smtp_server:
            raise ValueError("smtp_server is required when email OTP is enabled")
        return self


class SmsChannel(_Strict):
    enabled: bool = False
    provider: Literal[SMS_PROVIDERS] = "Twilio"


class AppBasedChannel(_Strict):
    enabled: bool = False
    secret_length: int = Field(default=32, ge=16)


class AuthenticationStack(_Strict):
    methods: List[Literal[AUTHENTICATION_METHODS]] = Field(default_factory=list)
    email: EmailChannel = Field(default_factory=EmailChannel)
    sms: SmsChannel = Field(default_factory=SmsChannel)
    app_based: AppBasedChannel = Field(default_factory=AppBasedChannel)

    @field_validator("methods")
    @classmethod
    def dedupe_methods(cls, v):
        return _unique(v)


class EncryptionPolicy(_Strict):
    standard: Literal[ENCRYPTION_STANDARDS] = "AES-256"
    key_rotation_frequency: int = Field(default=90, ge=1, description="days")
    current_key_id: Optional[UUID] = None


class IpGeofencing(_Strict):
    enabled: bool = False
    whitelist: List[IPvAnyAddress] = Field(default_factory=list)
    blacklist: List[IPvAnyAddress] = Field(default_factory=list)
    geo_ip_database: Literal[GEO_IP_DATABASES] = "GeoLite2"


class SessionGovernance(_Strict):
    idle_timeout: int = Field(default=30, ge=1, description="minutes")
    concurrent_limit: int = Field(default=3, ge=1)


class AuditLogPolicy(_Strict):
    enabled: bool = True
    retention_period: int = Field(default=365, ge=1, description="days")


class ReportGeneration(_Strict):
    enabled: bool = False
    format: Literal[REPORT_FORMATS] = "PDF"


class ComplianceSuite(_Strict):
    standards: List[Literal[COMPLIANCE_STANDARDS]] = Field(default_factory=list)
    audit_logs: AuditLogPolicy = Field(default_factory=AuditLogPolicy)
    report_generation: ReportGeneration = Field(default_factory=ReportGeneration)


class DataMaskingPolicy(_Strict):
    enabled: bool = False
    fields: List[Literal[MASKABLE_FIELDS]] = Field(default_factory=list)
    policy: Literal[MASKING_POLICIES] = "Partial"


class TokenBlacklist(_Strict):
    enabled: bool = False
    max_tokens: int = Field(default=10000, ge=1)


class SecurityFrameworkCreate(_Strict):
    authentication_stack: AuthenticationStack = Field(default_factory=AuthenticationStack)
    encryption: EncryptionPolicy = Field(default_factory=EncryptionPolicy)
    ip_geofencing: IpGeofencing = Field(default_factory=IpGeofencing)
    session_governance: SessionGovernance = Field(default_factory=SessionGovernance)
    compliance_suite: ComplianceSuite = Field(default_factory=ComplianceSuite)
    data_masking: DataMaskingPolicy = Field(default_factory=DataMaskingPolicy)
    token_blacklist: TokenBlacklist = Field(default_factory=TokenBlacklist)

    @model_validator(mode="after")
    def assign_key_id(self):
        if self.encryption.current_key_id is None:
            self.encryption.current_key_id = uuid4()
        return self


class SecurityFrameworkUpdate(_Strict):
    authentication_stack: Optional[AuthenticationStack] = None
    encryption: Optional[EncryptionPolicy] = None
    ip_geofencing: Optional[IpGeofencing] = None
    session_governance: Optional[SessionGovernance] = None
    compliance_suite: Optional[ComplianceSuite] = None
    data_masking: Optional[DataMaskingPolicy] = None
    token_blacklist: Optional[TokenBlacklist] = None


# ───────────────────────────── coreSystemConfig ─────────────────────────────

class NumberFormat(_Strict):
    decimal_separator: str = Field(default=".", min_length=1, max_length=1)
    thousands_separator: str = Field(default=",", max_length=1)


class AddressFormat(_Strict):
    country: str = Field(default="IN", min_length=2, max_length=2)
    template: Optional[str] = None


class CacheSettings(_Strict):
    enabled: bool = False
    host: str = "localhost"
    port: int = Field(default=6379, ge=1, le=65535)
    ttl: int = Field(default=300, ge=60)


class ConfigEncryptionSettings(_Strict):
    enabled: bool = False
    algorithm: Literal[CONFIG_ENCRYPTION_ALGORITHMS] = "AES-256"
    key_rotation_interval: int = Field(default=90, ge=1)


def _check_date_time_format(value: Optional[str]) -> Optional[str]:
    if value is not None:
        to_strftime(value)
    return value


class CoreSystemConfigCreate(_Strict):
    system_identifier: str = Field(min_length=1, max_length=100)
    version: str = Field(default="1.0.0", max_length=32)
    operational_mode: Literal[OPERATIONAL_MODES] = "development"
    sandbox_mode: bool = False
    ntp_server: str = Field(default=DEFAULT_NTP_SERVER, min_length=1)
    fallback_ntp_servers: List[str] = Field(default_factory=lambda: list(DEFAULT_FALLBACK_NTP_SERVERS))
    sync_interval: int = Field(default=60, ge=1, description="minutes")
    time_zone: Literal[TIME_ZONES] = "UTC"
    date_time_format: str = DEFAULT_DATE_TIME_FORMAT
    locale: str = "en-US"
    language: str = Field(default="en", min_length=2, max_length=8)
    number_format: NumberFormat = Field(default_factory=NumberFormat)
    address_format: AddressFormat = Field(default_factory=AddressFormat)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    encryption_settings: ConfigEncryptionSettings = Field(default_factory=ConfigEncryptionSettings)

    @field_validator("date_time_format")
    @classmethod
    def valid_date_time_format(cls, v):
        return _check_date_time_format(v)


class CoreSystemConfigUpdate(_Strict):
    system_identifier: Optional[str] = Field(default=None, min_length=1, max_length=100)
    version: Optional[str] = Field(default=None, max_length=32)
    operational_mode: Optional[Literal[OPERATIONAL_MODES]] = None
    sandbox_mode: Optional[bool] = None
    ntp_server: Optional[str] = Field(default=None, min_length=1)
    fallback_ntp_servers: Optional[List[str]] = None
    sync_interval: Optional[int] = Field(default=None, ge=1)
    time_zone: Optional[Literal[TIME_ZONES]] = None
    date_time_format: Optional[str] = None
    locale: Optional[str] = None
    language: Optional[str] = Field(default=None, min_length=2, max_length=8)
    number_format: Optional[NumberFormat] = None
    address_format: Optional[AddressFormat] = None
    cache: Optional[CacheSettings] = None
    encryption_settings: Optional[ConfigEncryptionSettings] = None

    @field_validator("date_time_format")
    @classmethod
    def valid_date_time_format(cls, v):
        return _check_date_time_format(v)


# ───────────────────────────── enterpriseInfra ─────────────────────────────

class HighAvailabilityCluster(_Strict):
    enabled: bool = False
    node_count: int = Field(default=1, ge=1, le=100)
    failover_strategy: Literal[FAILOVER_STRATEGIES] = "Manual"


class DistributedDatabase(_Strict):
    in_memory_engine: Optional[Literal[IN_MEMORY_ENGINES]] = None
    engine: Literal[DATABASE_ENGINES] = "PostgreSQL"
    configuration: Literal[DATABASE_CONFIGURATIONS] = "Replicated"


class AutomatedBackup(_Strict):
    mode: Literal[BACKUP_MODES] = "Incremental"
    storage_types: List[Literal[STORAGE_TYPES]] = Field(default_factory=lambda: ["Cloud"])
    dr_site: Optional[Literal[DR_SITES]] = None
    offsite: bool = False


class DisasterRecovery(_Strict):
    rpo: int = Field(default=60, ge=0, description="minutes")
    rto: int = Field(default=240, ge=0, description="minutes")
    dr_site: Optional[Literal[DR_SITES]] = None


class PredictiveScaling(_Strict):
    threshold: int = Field(default=80, ge=0, le=100, description="percent")
    scale_factor: float = Field(default=1.5, gt=0)


class AiDrivenLoadBalancing(_Strict):
    enabled: bool = False
    predictive_scaling: Optional[PredictiveScaling] = None


class InfraSecuritySettings(_Strict):
    encryption_at_rest: bool = True
    firewall_enabled: bool = True
    waf_rules: List[str] = Field(default_factory=list)


class EnterpriseInfraCreate(_Strict):
    cloud_providers: List[Literal[CLOUD_PROVIDERS]] = Field(min_length=1)
    data_center_regions: List[Literal[DATA_CENTER_REGIONS]] = Field(min_length=1)
    high_availability_cluster: HighAvailabilityCluster = Field(default_factory=HighAvailabilityCluster)
    distributed_database: DistributedDatabase = Field(default_factory=DistributedDatabase)
    automated_backup: AutomatedBackup = Field(default_factory=AutomatedBackup)
    disaster_recovery: DisasterRecovery = Field(default_factory=DisasterRecovery)
    ai_driven_load_balancing: AiDrivenLoadBalancing = Field(default_factory=AiDrivenLoadBalancing)
    security_settings: InfraSecuritySettings = Field(default_factory=InfraSecuritySettings)


class EnterpriseInfraUpdate(_Strict):
    cloud_providers: Optional[List[Literal[CLOUD_PROVIDERS]]] = Field(default=None, min_length=1)
    data_center_regions: Optional[List[Literal[DATA_CENTER_REGIONS]]] = Field(default=None, min_length=1)
    high_availability_cluster: Optional[HighAvailabilityCluster] = None
    distributed_database: Optional[DistributedDatabase] = None
    automated_backup: Optional[AutomatedBackup] = None
    disaster_recovery: Optional[DisasterRecovery] = None
    ai_driven_load_balancing: Optional[AiDrivenLoadBalancing] = None
    security_settings: Optional[InfraSecuritySettings] = None


# ───────────────────────────── collections ─────────────────────────────

class FeatureFlagCreate(_Strict):
    name: Literal[FEATURE_FLAGS]
    enabled: bool = False


class FeatureFlagUpdate(_Strict):
    enabled: bool


class RoleCreate(_Strict):
    name: str = Field(min_length=2, max_length=50)
    permissions: List[Literal[PERMISSIONS]] = Field(min_length=1)
    enabled: bool = True

    @field_validator("permissions")
    @classmethod
    def dedupe_permissions(cls, v):
        return _unique(v)


class RoleUpdate(_Strict):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    permissions: Optional[List[Literal[PERMISSIONS]]] = Field(default=None, min_length=1)
    enabled: Optional[bool] = None


class CollectionCreate(_Strict):
    """Whole-aggregate create for collection modules: the initial entries."""
    entries: List[Dict[str, Any]] = Field(default_factory=list)


# ───────────────────────────── side-operation requests ─────────────────────────────

class EmailOtpRequest(_Strict):
    email: EmailStr


class SmsOtpRequest(_Strict):
    phone: str = Field(pattern=r"^\+[1-9]\d{7,14}$")


class VerifyOtpRequest(_Strict):
    otp: str = Field(pattern=r"^\d{4,10}$")


class EncryptRequest(_Strict):
    data: str = Field(min_length=1)


class DecryptRequest(_Strict):
    encrypted_data: str = Field(min_length=1)
    iv: str = Field(min_length=1)
    key: str = Field(min_length=1)


class MaskRequest(_Strict):
    field: str = Field(min_length=1)
    value: str = ""


class TranslateRequest(_Strict):
    text: str = Field(min_length=1, max_length=5000)
    target_language: str = Field(min_length=2, max_length=8)


class DateTimePreviewRequest(_Strict):
    format: str = Field(min_length=1)
    time_zone: Optional[Literal[TIME_ZONES]] = None


# ───────────────────────────── registry ─────────────────────────────

@dataclass(frozen=True)
class ModuleSchemas:
    create: Type[BaseModel]
    update: Optional[Type[BaseModel]] = None
    entry_create: Optional[Type[BaseModel]] = None
    entry_update: Optional[Type[BaseModel]] = None


MODULE_SCHEMAS: Dict[SettingsModule, ModuleSchemas] = {
    SettingsModule.SECURITY_FRAMEWORK: ModuleSchemas(SecurityFrameworkCreate, SecurityFrameworkUpdate),
    SettingsModule.CORE_SYSTEM_CONFIG: ModuleSchemas(CoreSystemConfigCreate, CoreSystemConfigUpdate),
    SettingsModule.ENTERPRISE_INFRA: ModuleSchemas(EnterpriseInfraCreate, EnterpriseInfraUpdate),
    SettingsModule.FEATURE_FLAGS: ModuleSchemas(
        CollectionCreate, entry_create=FeatureFlagCreate, entry_update=FeatureFlagUpdate
    ),
    SettingsModule.ROLE: ModuleSchemas(CollectionCreate, entry_create=RoleCreate, entry_update=RoleUpdate),
}

"""
Service wiring for the settings core.
One container per process; the FastAPI app keeps it on `app.state.container`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from src.shared.config import Settings, get_settings
from src.shared.database import DatabaseSessionFactory, get_session_factory
from src.shared.logging import get_logger
from src.shared.redis import RedisClient
from src.system_settings.application.services.audit_service import AuditQueryService
from src.system_settings.application.services.collection_service import FeatureFlagService, RoleService
from src.system_settings.application.services.core_config_service import CoreSystemConfigService
from src.system_settings.application.services.enterprise_infra_service import EnterpriseInfraService
from src.system_settings.application.services.security_service import SecurityFrameworkService
from src.system_settings.application.services.settings_service import SettingsService
from src.system_settings.domain.modules import SettingsModule
from src.system_settings.infrastructure.cache import SettingsCache
from src.system_settings.infrastructure.notifier import ChangeNotifier
from src.system_settings.infrastructure.providers.email import SmtpEmailSender
from src.system_settings.infrastructure.providers.geoip import HttpGeoIpLookup
from src.system_settings.infrastructure.providers.ntp import NtpTimeSource
from src.system_settings.infrastructure.providers.sms import TwilioSmsSender
from src.system_settings.infrastructure.providers.translation import StaticTranslationProvider
from src.system_settings.infrastructure.rate_limiter import RateLimiter
from src.system_settings.infrastructure.unit_of_work import SettingsUnitOfWork

logger = get_logger(__name__)


@dataclass
class Providers:
    """External collaborators; tests swap these for fakes."""
    email: Optional[SmtpEmailSender] = None
    sms: Optional[TwilioSmsSender] = None
    ntp: Optional[NtpTimeSource] = None
    geoip: Optional[HttpGeoIpLookup] = None
    translator: Optional[StaticTranslationProvider] = None


@dataclass
class SettingsContainer:
    db: DatabaseSessionFactory
    redis: RedisClient
    cache: SettingsCache
    notifier: ChangeNotifier
    rate_limiter: RateLimiter
    security: SecurityFrameworkService
    core_config: CoreSystemConfigService
    enterprise_infra: EnterpriseInfraService
    feature_flags: FeatureFlagService
    roles: RoleService
    audit: AuditQueryService
    services: Dict[SettingsModule, SettingsService] = field(default_factory=dict)

    def uow(self) -> SettingsUnitOfWork:
        return SettingsUnitOfWork(self.db.session_factory)

    async def close(self) -> None:
        await self.redis.close()
        await self.db.dispose()


def build_container(
    settings: Optional[Settings] = None,
    *,
    db: Optional[DatabaseSessionFactory] = None,
    redis: Optional[RedisClient] = None,
    providers: Optional[Providers] = None,
) -> SettingsContainer:
    settings = settings or get_settings()
    providers = providers or Providers()
    db = db or get_session_factory()
    if redis is None:
        redis = RedisClient(
            settings.REDIS_URL,
            namespace=settings.REDIS_NAMESPACE,
            timeout=settings.REDIS_TIMEOUT_SECONDS,
        )
        redis.connect()

    def uow_factory() -> SettingsUnitOfWork:
        return SettingsUnitOfWork(db.session_factory)

    cache = SettingsCache(redis, default_ttl=settings.CONFIG_CACHE_TTL_SECONDS)
    notifier = ChangeNotifier(redis)
    limiter = RateLimiter(redis, window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS)
    common = dict(uow_factory=uow_factory, cache=cache, notifier=notifier, cache_ttl=settings.CONFIG_CACHE_TTL_SECONDS)
    geoip = providers.geoip or HttpGeoIpLookup()

    flags = FeatureFlagService(**common)
    roles = RoleService(**common)
    security = SecurityFrameworkService(
        flags=flags,
        rate_limiter=limiter,
        otp_store=redis,
        email_sender=providers.email or SmtpEmailSender(),
        sms_sender=providers.sms or TwilioSmsSender(),
        geoip=geoip,
        otp_length=settings.OTP_LENGTH,
        otp_ttl_seconds=settings.OTP_TTL_SECONDS,
        otp_max_per_window=settings.OTP_MAX_PER_WINDOW,
        **common,
    )
    core_config = CoreSystemConfigService(
        ntp=providers.ntp or NtpTimeSource(timeout=settings.NTP_TIMEOUT_SECONDS),
        translator=providers.translator or StaticTranslationProvider(),
        geoip=geoip,
        language_cache_ttl=settings.LANGUAGE_CACHE_TTL_SECONDS,
        **common,
    )
    enterprise_infra = EnterpriseInfraService(**common)

    services: Dict[SettingsModule, SettingsService] = {
        SettingsModule.SECURITY_FRAMEWORK: security,
        SettingsModule.CORE_SYSTEM_CONFIG: core_config,
        SettingsModule.ENTERPRISE_INFRA: enterprise_infra,
        SettingsModule.FEATURE_FLAGS: flags,
        SettingsModule.ROLE: roles,
    }
    audit = AuditQueryService(
        uow_factory=uow_factory,
        cache=cache,
        rate_limiter=limiter,
        services=services,
        query_limit=settings.AUDIT_QUERY_LIMIT,
        stats_limit=settings.AUDIT_STATS_LIMIT,
        cache_ttl=settings.CONFIG_CACHE_TTL_SECONDS,
    )
    logger.info("settings_container_built", redis_enabled=redis.enabled)
    return SettingsContainer(
        db=db,
        redis=redis,
        cache=cache,
        notifier=notifier,
        rate_limiter=limiter,
        security=security,
        core_config=core_config,
        enterprise_infra=enterprise_infra,
        feature_flags=flags,
        roles=roles,
        audit=audit,
        services=services,
    )

from __future__ import annotations

from typing import Any, Dict, List

from src.system_settings.application.services.settings_service import SettingsService
from src.system_settings.domain.entities import utcnow
from src.system_settings.domain.modules import SettingsModule


def infrastructure_issues(data: Dict[str, Any]) -> List[str]:
    """Cross-section consistency checks that single-field validation cannot express."""
    issues: List[str] = []
    ha = data["high_availability_cluster"]
    if ha["enabled"] and ha["node_count"] < 2:
        issues.append("High availability requires at least 2 nodes")
    if ha["failover_strategy"] == "Automatic" and not ha["enabled"]:
        issues.append("Automatic failover requires high availability to be enabled")

    backup = data["automated_backup"]
    dr_site = backup.get("dr_site") or data["disaster_recovery"].get("dr_site")
    if backup["offsite"] and not dr_site:
        issues.append("Offsite backup requires a disaster recovery site")

    balancing = data["ai_driven_load_balancing"]
    if balancing.get("predictive_scaling") and not balancing["enabled"]:
        issues.append("Predictive scaling requires AI-driven load balancing")
    return issues


class EnterpriseInfraService(SettingsService):
    def __init__(self, **kwargs: Any) -> None:
        super().__init__(SettingsModule.ENTERPRISE_INFRA, **kwargs)

    def validate_infrastructure(self, payload: Any) -> Dict[str, Any]:
        """Check a candidate configuration without storing it; schema errors raise ValidationError."""
        issues = infrastructure_issues(self.validate_create(payload))
        return {"valid": not issues, "issues": issues}

    async def get_infrastructure_status(self, tenant_id: str) -> Dict[str, Any]:
        aggregate = await self.get(tenant_id)
        data = aggregate.data
        ha = data["high_availability_cluster"]
        return {
            "cloud_providers": data["cloud_providers"],
            "regions": data["data_center_regions"],
            "high_availability": f"Enabled ({ha['node_count']} nodes)" if ha["enabled"] else "Disabled",
            "database": data["distributed_database"]["engine"],
            "backup_mode": data["automated_backup"]["mode"],
            "load_balancing": "AI-driven" if data["ai_driven_load_balancing"]["enabled"] else "Standard",
            "issues": infrastructure_issues(data),
            "status": "Operational",
            "last_checked": utcnow().isoformat(),
            "last_updated": aggregate.updated_at.isoformat(),
        }

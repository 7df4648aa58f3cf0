from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .entities import utcnow


@dataclass(frozen=True, slots=True)
class SettingsChanged:
    """Broadcast after a committed mutation; subscribers drop their local copies."""
    module: str
    tenant_id: Optional[str]
    action: str
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def channel(self) -> str:
        return f"settings:{self.module}"

    def to_message(self) -> Dict[str, Any]:
        return {
            "tenantId": self.tenant_id,
            "action": self.action,
            "module": self.module,
            "timestamp": self.occurred_at.isoformat(),
        }

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from src.shared.exceptions import ValidationError

M = TypeVar("M", bound=BaseModel)

SYSTEM_ACTOR = "system"


@dataclass(frozen=True, slots=True)
class ActorContext:
    """Who is calling. Authentication and permission checks happen before the core is reached."""
    actor_id: str
    tenant_id: Optional[str] = None
    ip_address: Optional[str] = None
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def system(cls) -> "ActorContext":
        return cls(actor_id=SYSTEM_ACTOR)


def validate_payload(model: Type[M], payload: Any) -> M:
    """Run a pydantic model over raw input, mapping failures to the domain ValidationError."""
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_unset=True)
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid configuration provided",
            details={"errors": json.loads(e.json(include_url=False))},
        ) from e

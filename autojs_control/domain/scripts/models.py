"""Script domain model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from autojs_control.db import models as orm


@dataclass(slots=True)
class Script:
    id: int
    name: str
    version: Optional[str]
    timeout: int
    is_active: bool

    @classmethod
    def from_orm(cls, instance: orm.Script) -> "Script":
        return cls(
            id=int(instance.id),
            name=instance.name,
            version=instance.version,
            timeout=int(instance.timeout or 300),
            is_active=bool(instance.is_active),
        )

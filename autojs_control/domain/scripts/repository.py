"""Repository protocol for script lookups."""

from __future__ import annotations

from typing import Optional, Protocol

from autojs_control.db.models import Script as ScriptModel


class ScriptRepository(Protocol):
    async def get_by_id(self, script_id: int) -> ScriptModel | None:
        ...

    async def create_script(
        self, *, name: str, content: Optional[str], version: Optional[str], timeout: int
    ) -> ScriptModel:
        ...

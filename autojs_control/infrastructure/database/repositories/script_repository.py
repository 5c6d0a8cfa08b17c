"""SQLAlchemy repository for scripts."""

from __future__ import annotations

from typing import Optional

from autojs_control.db.models import Script as ScriptModel
from autojs_control.domain.common.repository import AsyncRepository


class SqlScriptRepository(AsyncRepository[ScriptModel]):
    async def get_by_id(self, script_id: int) -> ScriptModel | None:
        return await self.session.get(ScriptModel, script_id)

    async def create_script(
        self, *, name: str, content: Optional[str], version: Optional[str], timeout: int
    ) -> ScriptModel:
        model = ScriptModel(name=name, content=content, version=version, timeout=timeout, is_active=True)
        return await self.add(model)

"""Script catalogue lookups used by task fanout."""

from .models import Script
from .repository import ScriptRepository

__all__ = ["Script", "ScriptRepository"]

"""Ad-hoc device commands sent outside of tasks."""

from .service import CommandService

__all__ = ["CommandService"]

"""Database models - import all models here for table discovery."""

from courier_api.models.tracking import TrackedWrite

__all__ = [
    "TrackedWrite",
]

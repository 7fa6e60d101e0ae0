"""
Base model helpers shared by all data models.
"""

import secrets
import time
from dataclasses import fields, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_id(prefix: str = "") -> str:
    """Generate an opaque identifier, e.g. ``job_1718000000000_a1b2c3d4e``."""
    token = f"{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"
    return f"{prefix}_{token}" if prefix else token


def _serialize(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _serialize(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    return value


class BaseModel:
    """Mixin for dataclass models."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert the model to a JSON-friendly dictionary."""
        return {f.name: _serialize(getattr(self, f.name)) for f in fields(self)}

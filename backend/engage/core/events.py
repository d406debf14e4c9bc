"""Domain Event Envelope — the unit published on the in-process event system.

Invariants:
    - id and timestamp assigned at construction (callers never set them)
    - data is JSON-friendly: ids as str, datetimes as ISO-8601 str
    - version defaults to "1.0"
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4


def _event_id() -> str:
    return f"evt_{uuid4().hex}"


@dataclass
class DomainEvent:
    type: str
    source: str
    data: dict[str, Any]
    organization_id: int | None = None
    user_id: int | None = None
    correlation_id: str | None = None
    version: str = "1.0"
    metadata: dict[str, Any] | None = None
    id: str = field(default_factory=_event_id)
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
            "correlation_id": self.correlation_id,
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "metadata": self.metadata,
            "data": self.data,
        }

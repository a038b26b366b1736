"""Domain event model: rows of the transactional outbox."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.mk_common.id_generator import generate_id


@dataclass
class DomainEvent:
    event_type: str  # EventType value
    aggregate_id: str  # listing_id / bid_id / order_id the event is about
    payload: dict[str, Any]
    created_at: datetime
    id: str = field(default_factory=generate_id)
    published_at: datetime | None = None

    def to_message(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.event_type,
            "aggregate_id": self.aggregate_id,
            "payload": self.payload,
            "created_at": self.created_at.isoformat(),
        }

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class SavedReport:
    name: str
    definition: dict[str, Any]
    id: UUID = field(default_factory=uuid4)
    description: str = ""
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def data_source(self) -> str | None:
        return self.definition.get("data_source")

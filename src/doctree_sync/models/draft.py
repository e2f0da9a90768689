"""Draft model."""

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class Draft:
    """Persisted, named, timestamped edit buffer independent of the live tree."""

    key: str
    timestamp: int
    content: str
    display_name: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Draft":
        return cls(
            key=data["key"],
            timestamp=int(data["timestamp"]),
            content=data["content"],
            display_name=data.get("display_name", data["key"]),
        )

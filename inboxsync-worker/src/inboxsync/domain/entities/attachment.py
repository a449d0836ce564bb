from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

@dataclass(frozen=True)
class Attachment:
    name: str
    mime_type: Optional[str]
    size_bytes: Optional[int]

    # base64 of the decoded content; None when the part could not be read
    payload: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.mime_type,
            "size": self.size_bytes,
            "data": self.payload,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Attachment":
        return cls(
            name=data.get("name") or "attachment",
            mime_type=data.get("type"),
            size_bytes=data.get("size"),
            payload=data.get("data"),
        )

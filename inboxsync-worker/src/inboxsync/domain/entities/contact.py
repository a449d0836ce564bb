from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

@dataclass(frozen=True)
class ContactMatch:
    contact_id: str
    customer_id: Optional[str] = None

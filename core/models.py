from dataclasses import dataclass, field
from typing import Any, Optional

# ---------------------------------------------------------------------------
# Booking directory records
#
# Read-through values owned by the external directory. Nothing in this
# project mutates them; the verifier only caches reads.
# ---------------------------------------------------------------------------


@dataclass
class Customer:
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None
    properties: Optional[dict[str, Any]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class Booking:
    id: str
    number: str
    customer_id: Optional[str]
    status: str = ""
    starts_at: Optional[str] = None
    stops_at: Optional[str] = None
    # Money fields are integer cents, as the directory reports them.
    total_in_cents: int = 0
    deposit_in_cents: int = 0
    grand_total_in_cents: int = 0
    price_in_cents: int = 0
    total_paid_in_cents: int = 0
    to_be_paid_in_cents: int = 0
    properties: Optional[dict[str, Any]] = None
    lines: list[dict[str, Any]] = field(default_factory=list)
    customer: Optional[Customer] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, Optional

# Canonical lowercase label -> raw value string.
FieldMap = Dict[str, str]


@dataclass(frozen=True)
class BillRecord:
    """Transaction fields recovered from one ticket. ``None`` means not recovered."""
    ticket_number: Optional[str] = None
    amount: Optional[float] = None
    date: Optional[datetime] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    emissions_saved: Optional[str] = None
    raw_text: Optional[str] = None

    def has_values(self) -> bool:
        return bool(
            self.ticket_number
            or self.amount is not None
            or self.origin
            or self.destination
            or self.date is not None
        )

    def to_dict(self) -> dict:
        out = asdict(self)
        if self.date is not None:
            out["date"] = self.date.isoformat()
        if self.amount is not None:
            out["amount"] = round(self.amount, 2)
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "BillRecord":
        date = data.get("date")
        if isinstance(date, str):
            date = datetime.fromisoformat(date)
        amount = data.get("amount")
        return cls(
            ticket_number=data.get("ticket_number"),
            amount=float(amount) if amount is not None else None,
            date=date,
            origin=data.get("origin"),
            destination=data.get("destination"),
            emissions_saved=data.get("emissions_saved"),
            raw_text=data.get("raw_text"),
        )

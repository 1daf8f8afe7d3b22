import re
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from farescan.config import CO2_CHART_POINTS, DISTANCE_PER_BILL_KM
from farescan.model import BillRecord

_GRAMS_RE = re.compile(r"(\d+(?:\.\d+)?)")


@dataclass(frozen=True)
class ExpenseStats:
    total_expenses: float = 0.0
    total_distance: float = 0.0
    average_expense: float = 0.0
    bill_count: int = 0
    total_co2_saved: float = 0.0

    def to_dict(self) -> dict:
        return {
            "total_expenses": round(self.total_expenses, 2),
            "total_distance": self.total_distance,
            "average_expense": round(self.average_expense, 2),
            "bill_count": self.bill_count,
            "total_co2_saved": round(self.total_co2_saved, 2),
        }


def co2_grams(record: BillRecord) -> Optional[float]:
    if not record.emissions_saved:
        return None
    m = _GRAMS_RE.search(record.emissions_saved)
    return float(m.group(1)) if m else None


def expense_stats(records: Iterable[BillRecord]) -> ExpenseStats:
    """Totals over saved bills. Distance is a flat per-bill estimate until routes carry lengths."""
    records = list(records)
    bill_count = len(records)
    total = sum(r.amount or 0.0 for r in records)
    co2 = sum(co2_grams(r) or 0.0 for r in records)
    return ExpenseStats(
        total_expenses=total,
        total_distance=float(bill_count * DISTANCE_PER_BILL_KM),
        average_expense=total / bill_count if bill_count else 0.0,
        bill_count=bill_count,
        total_co2_saved=co2,
    )


def co2_by_day(records: Iterable[BillRecord], limit: int = CO2_CHART_POINTS) -> list[tuple[date, float]]:
    """Grams saved per calendar day, oldest first, keeping the last ``limit`` days."""
    dated = [r for r in records if r.emissions_saved and r.date is not None]
    dated.sort(key=lambda r: r.date)

    totals = OrderedDict()
    for record in dated:
        day = record.date.date()
        totals[day] = totals.get(day, 0.0) + (co2_grams(record) or 0.0)

    points = [(day, round(grams, 2)) for day, grams in totals.items()]
    if limit <= 0:
        return []
    return points[-limit:]

# donations/aggregates.py
"""
Totals, leaderboard and list filters.

Everything here works on small result sets: donation totals page through the
campaign with `crud.list_donations_page` and fold the matching rows, the
expense filters run on rows already loaded for a page.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import crud, models
from .forms import is_anonymous

ZERO = Decimal("0.00")

PRESET_TODAY = "TODAY"
PRESET_7D = "7D"
PRESET_ALL = "ALL"
PRESETS = (PRESET_TODAY, PRESET_7D, PRESET_ALL)

CATEGORY_ALL = "ALL"


def format_money(amount, symbol: str = "$") -> str:
    """123456.5 -> $123,456.50"""
    return f"{symbol}{Decimal(amount or 0):,.2f}"


def sum_amounts(rows: Iterable) -> Decimal:
    total = ZERO
    for r in rows:
        total += Decimal(r.amount or 0)
    return total


# ---------- Donations ----------
@dataclass
class DonationFilter:
    name_query: Optional[str] = None
    method: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def matches(self, donation: models.Donation) -> bool:
        needle = (self.name_query or "").strip().lower()
        if needle and needle not in (donation.donor_name_lower or ""):
            return False
        if self.method and donation.method != self.method:
            return False
        if self.date_from or self.date_to:
            if donation.created_at is None:
                return False
            day = donation.created_at.date()
            if self.date_from and day < self.date_from:
                return False
            if self.date_to and day > self.date_to:
                return False
        return True


@dataclass
class Totals:
    total: Decimal = ZERO
    count: int = 0

    @property
    def average(self) -> Decimal:
        if not self.count:
            return ZERO
        return (self.total / self.count).quantize(Decimal("0.01"))


def _iter_pages(list_page, db: Session, campaign_id: str, page_size: int):
    cursor = None
    while True:
        page = list_page(db, campaign_id, page_size=page_size, cursor=cursor)
        yield from page.items
        if page.next_cursor is None:
            return
        cursor = page.next_cursor


def iter_donations(db: Session, campaign_id: str, page_size: int = 200):
    """Yield every active donation of a campaign, newest first, page by page."""
    return _iter_pages(crud.list_donations_page, db, campaign_id, page_size)


def iter_expenses(db: Session, campaign_id: str, page_size: int = 200):
    return _iter_pages(crud.list_expenses_page, db, campaign_id, page_size)


def donation_totals(
    db: Session,
    campaign_id: str,
    flt: Optional[DonationFilter] = None,
    page_size: int = 200,
) -> Totals:
    flt = flt or DonationFilter()
    totals = Totals()
    for d in iter_donations(db, campaign_id, page_size=page_size):
        if flt.matches(d):
            totals.total += Decimal(d.amount)
            totals.count += 1
    return totals


@dataclass
class LeaderboardEntry:
    name: str
    total: Decimal
    count: int


def top_donors(
    db: Session, campaign_id: str, limit: int = 10, page_size: int = 200
) -> List[LeaderboardEntry]:
    """Top donors by summed amount; anonymous gifts are left out."""
    board: Dict[str, LeaderboardEntry] = {}
    for d in iter_donations(db, campaign_id, page_size=page_size):
        if is_anonymous(d.donor_name):
            continue
        key = d.donor_name_lower
        entry = board.get(key)
        if entry is None:
            # newest first, so the first spelling seen is the latest one
            board[key] = LeaderboardEntry(name=d.donor_name, total=Decimal(d.amount), count=1)
        else:
            entry.total += Decimal(d.amount)
            entry.count += 1

    ranked = sorted(board.values(), key=lambda e: (-e.total, e.name.lower()))
    return ranked[:limit]


# ---------- Expenses ----------
@dataclass
class ExpenseFilter:
    query: Optional[str] = None
    category: str = CATEGORY_ALL
    preset: str = PRESET_ALL


def _in_preset(created_at: Optional[datetime], preset: str, now: datetime) -> bool:
    if preset == PRESET_ALL:
        return True
    if created_at is None:
        return False
    if preset == PRESET_TODAY:
        start = datetime(now.year, now.month, now.day)
        return start <= created_at < start + timedelta(days=1)
    if preset == PRESET_7D:
        return created_at >= now - timedelta(days=7)
    return True


def filter_expenses(
    rows: Iterable[models.Expense],
    flt: ExpenseFilter,
    now: Optional[datetime] = None,
) -> List[models.Expense]:
    now = now or models.utcnow()
    q = (flt.query or "").strip().lower()
    category = flt.category or CATEGORY_ALL
    preset = flt.preset if flt.preset in PRESETS else PRESET_ALL

    out = []
    for r in rows:
        if category != CATEGORY_ALL and r.category != category:
            continue
        if q and q not in (r.concept or "").lower() and q not in (r.note or "").lower():
            continue
        if not _in_preset(r.created_at, preset, now):
            continue
        out.append(r)
    return out


def expense_categories(rows: Iterable[models.Expense]) -> List[str]:
    seen: List[str] = []
    for r in rows:
        if r.category and r.category not in seen:
            seen.append(r.category)
    return [CATEGORY_ALL] + seen


def expense_share_text(campaign_id: str, rows: List[models.Expense], symbol: str = "$") -> str:
    """Plain text summary for pasting in a chat."""
    total = sum_amounts(rows)
    lines = []
    for i, r in enumerate(rows, start=1):
        line = f"{i}. {r.concept or '-'} · {format_money(r.amount, symbol)}"
        if r.category:
            line += f" · {r.category}"
        lines.append(line)

    return (
        f"Expenses - Campaign {campaign_id}\n"
        f"Total: {format_money(total, symbol)} · Records: {len(rows)}\n\n"
        "=== Detail ===\n" + "\n".join(lines)
    )


# ---------- Campaign ----------
@dataclass
class CampaignSummary:
    campaign_id: str
    donations_total: Decimal
    donations_count: int
    expenses_total: Decimal
    expenses_count: int

    @property
    def balance(self) -> Decimal:
        return self.donations_total - self.expenses_total


def _sum_and_count(db: Session, model, campaign_id: str):
    total, count = (
        db.query(func.coalesce(func.sum(model.amount), 0), func.count(model.id))
        .filter(model.campaign_id == campaign_id)
        .filter(model.status == models.STATUS_ACTIVE)
        .one()
    )
    return Decimal(str(total or 0)).quantize(Decimal("0.01")), int(count or 0)


def campaign_summary(db: Session, campaign_id: str) -> CampaignSummary:
    d_total, d_count = _sum_and_count(db, models.Donation, campaign_id)
    e_total, e_count = _sum_and_count(db, models.Expense, campaign_id)
    return CampaignSummary(
        campaign_id=campaign_id,
        donations_total=d_total,
        donations_count=d_count,
        expenses_total=e_total,
        expenses_count=e_count,
    )

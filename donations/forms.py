# donations/forms.py
"""Parsing and validation of the donation / expense forms."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from .exceptions import FormError
from .models import DONATION_METHODS, EXPENSE_CATEGORIES

ANONYMOUS_NAME = "Anonymous"
ANONYMOUS_NAMES = ("anonymous", "anónimo", "anonimo")

_CENTS = Decimal("0.01")
# Numeric(12, 2) holds at most ten integer digits
MAX_AMOUNT = Decimal(10) ** 10


def parse_amount(raw) -> Decimal:
    """
    Coerce user input to a positive amount with two decimals.

    Accepts a comma as decimal separator ("12,5" -> 12.50).
    """
    if raw is None:
        raise FormError("Amount is required")
    if isinstance(raw, Decimal):
        amount = raw
    else:
        s = str(raw).strip().replace(",", ".")
        if not s:
            raise FormError("Amount is required")
        try:
            amount = Decimal(s)
        except InvalidOperation:
            raise FormError("Amount must be a number")

    if not amount.is_finite():
        raise FormError("Amount must be a number")
    if amount <= 0:
        raise FormError("Amount must be greater than zero")
    if amount >= MAX_AMOUNT:
        raise FormError("Amount is too large")
    try:
        amount = amount.quantize(_CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise FormError("Amount is too large")
    if amount >= MAX_AMOUNT:
        raise FormError("Amount is too large")
    if amount <= 0:
        raise FormError("Amount must be greater than zero")
    return amount


def _clean_note(note: Optional[str]) -> str:
    return (note or "").strip()[:500]


def is_anonymous(name: Optional[str]) -> bool:
    return (name or "").strip().lower() in ANONYMOUS_NAMES


@dataclass
class DonationForm:
    donor_name: str
    amount: Decimal
    method: str = "cash"
    note: str = ""

    @classmethod
    def parse(
        cls,
        donor_name: Optional[str],
        amount,
        method: Optional[str] = "cash",
        note: Optional[str] = "",
        anonymous: bool = False,
    ) -> "DonationForm":
        name = ANONYMOUS_NAME if anonymous else (donor_name or "").strip()
        if not name:
            raise FormError("Enter the donor's name (or mark it anonymous)")
        if len(name) > 120:
            raise FormError("Donor name is too long")

        method = (method or "cash").strip().lower()
        if method not in DONATION_METHODS:
            raise FormError(f"Method must be one of: {', '.join(DONATION_METHODS)}")

        return cls(
            donor_name=name,
            amount=parse_amount(amount),
            method=method,
            note=_clean_note(note),
        )


@dataclass
class ExpenseForm:
    concept: str
    amount: Decimal
    category: str = "medicines"
    note: str = ""

    @classmethod
    def parse(
        cls,
        concept: Optional[str],
        amount,
        category: Optional[str] = "medicines",
        note: Optional[str] = "",
    ) -> "ExpenseForm":
        concept = (concept or "").strip()
        if not concept:
            raise FormError("Enter the concept")
        if len(concept) > 200:
            raise FormError("Concept is too long")

        category = (category or "medicines").strip().lower()
        if category not in EXPENSE_CATEGORIES:
            raise FormError(
                f"Category must be one of: {', '.join(EXPENSE_CATEGORIES)}"
            )

        return cls(
            concept=concept,
            amount=parse_amount(amount),
            category=category,
            note=_clean_note(note),
        )

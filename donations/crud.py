# donations/crud.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

import structlog
from passlib.context import CryptContext
from sqlalchemy import and_, desc, or_
from sqlalchemy.orm import Session

from . import models
from .exceptions import ValidationError
from .forms import DonationForm, ExpenseForm, parse_amount

logger = structlog.get_logger(__name__)

# pbkdf2_sha256 is pure python, no bcrypt backend needed
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


@dataclass
class Page:
    items: list = field(default_factory=list)
    next_cursor: Optional[str] = None


# ---------- Users ----------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        # malformed hash in the table
        return False


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.get(models.User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    email = (email or "").strip().lower()
    return db.query(models.User).filter(models.User.email == email).one_or_none()


def create_user(
    db: Session, email: str, password: str, role: str = models.ROLE_MEMBER
) -> models.User:
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if role not in (models.ROLE_MEMBER, models.ROLE_ADMIN):
        raise ValidationError(f"Unknown role: {role}")
    if get_user_by_email(db, email):
        raise ValidationError("That email is already registered")

    user = models.User(email=email, password_hash=hash_password(password), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User created", user_id=user.id, role=role)
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[models.User]:
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


# ---------- Shared helpers ----------
def _active(db: Session, model, campaign_id: str):
    return db.query(model).filter(
        model.campaign_id == campaign_id,
        model.status == models.STATUS_ACTIVE,
    )


def _newest_first(q, model):
    return q.order_by(desc(model.created_at), desc(model.id))


def _page(db: Session, model, campaign_id: str, page_size: int, cursor: Optional[str]) -> Page:
    if page_size < 1:
        raise ValidationError("page_size must be positive")

    q = _newest_first(_active(db, model, campaign_id), model)

    if cursor:
        try:
            cursor_id = int(cursor)
        except (TypeError, ValueError):
            raise ValidationError("Invalid cursor")
        anchor = db.get(model, cursor_id)
        if anchor is None or anchor.campaign_id != campaign_id:
            raise ValidationError("Invalid cursor")
        q = q.filter(
            or_(
                model.created_at < anchor.created_at,
                and_(model.created_at == anchor.created_at, model.id < anchor.id),
            )
        )

    # one extra row tells us whether there is a next page
    rows = q.limit(page_size + 1).all()
    if len(rows) > page_size:
        rows = rows[:page_size]
        return Page(items=rows, next_cursor=str(rows[-1].id))
    return Page(items=rows, next_cursor=None)


def _get(db: Session, model, record_id: int, campaign_id: Optional[str]):
    obj = db.get(model, record_id)
    if obj is None:
        return None
    if campaign_id is not None and obj.campaign_id != campaign_id:
        return None
    return obj


def _soft_delete(db: Session, obj):
    if obj.status == models.STATUS_DELETED:
        return obj
    obj.status = models.STATUS_DELETED
    obj.updated_at = models.utcnow()
    db.commit()
    db.refresh(obj)
    return obj


# ---------- Donations ----------
def create_donation(
    db: Session, campaign_id: str, form: DonationForm, user_id: Optional[int] = None
) -> models.Donation:
    now = models.utcnow()
    obj = models.Donation(
        campaign_id=campaign_id,
        donor_name=form.donor_name,
        donor_name_lower=form.donor_name.lower(),
        amount=parse_amount(form.amount),
        method=form.method,
        note=form.note or "",
        created_by=user_id,
        created_at=now,
        updated_at=now,
        status=models.STATUS_ACTIVE,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    logger.info(
        "Donation created",
        donation_id=obj.id,
        campaign_id=campaign_id,
        amount=str(obj.amount),
        user_id=user_id,
    )
    return obj


def get_donation(
    db: Session, donation_id: int, campaign_id: Optional[str] = None
) -> Optional[models.Donation]:
    return _get(db, models.Donation, donation_id, campaign_id)


def update_donation(
    db: Session, donation: models.Donation, form: DonationForm, user_id: Optional[int] = None
) -> models.Donation:
    # full overwrite of the editable fields
    donation.donor_name = form.donor_name
    donation.donor_name_lower = form.donor_name.lower()
    donation.amount = parse_amount(form.amount)
    donation.method = form.method
    donation.note = form.note or ""
    donation.updated_at = models.utcnow()
    db.commit()
    db.refresh(donation)
    logger.info("Donation updated", donation_id=donation.id, user_id=user_id)
    return donation


def delete_donation(db: Session, donation: models.Donation) -> models.Donation:
    obj = _soft_delete(db, donation)
    logger.info("Donation deleted", donation_id=obj.id, campaign_id=obj.campaign_id)
    return obj


def list_donations(
    db: Session,
    campaign_id: str,
    name_query: Optional[str] = None,
    limit: int = 25,
) -> List[models.Donation]:
    q = _newest_first(_active(db, models.Donation, campaign_id), models.Donation)
    rows = q.limit(limit).all()

    # substring match runs on the fetched rows, same as the page filters
    needle = (name_query or "").strip().lower()
    if needle:
        return [r for r in rows if needle in (r.donor_name_lower or "")]
    return rows


def list_donations_page(
    db: Session, campaign_id: str, page_size: int = 25, cursor: Optional[str] = None
) -> Page:
    return _page(db, models.Donation, campaign_id, page_size, cursor)


# ---------- Expenses ----------
def create_expense(
    db: Session, campaign_id: str, form: ExpenseForm, user_id: Optional[int] = None
) -> models.Expense:
    now = models.utcnow()
    obj = models.Expense(
        campaign_id=campaign_id,
        concept=form.concept,
        category=form.category,
        amount=parse_amount(form.amount),
        note=form.note or "",
        created_by=user_id,
        created_at=now,
        updated_at=now,
        status=models.STATUS_ACTIVE,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    logger.info(
        "Expense created",
        expense_id=obj.id,
        campaign_id=campaign_id,
        amount=str(obj.amount),
        user_id=user_id,
    )
    return obj


def get_expense(
    db: Session, expense_id: int, campaign_id: Optional[str] = None
) -> Optional[models.Expense]:
    return _get(db, models.Expense, expense_id, campaign_id)


def update_expense(
    db: Session, expense: models.Expense, form: ExpenseForm, user_id: Optional[int] = None
) -> models.Expense:
    expense.concept = form.concept
    expense.category = form.category
    expense.amount = parse_amount(form.amount)
    expense.note = form.note or ""
    expense.updated_at = models.utcnow()
    db.commit()
    db.refresh(expense)
    logger.info("Expense updated", expense_id=expense.id, user_id=user_id)
    return expense


def delete_expense(db: Session, expense: models.Expense) -> models.Expense:
    obj = _soft_delete(db, expense)
    logger.info("Expense deleted", expense_id=obj.id, campaign_id=obj.campaign_id)
    return obj


def list_expenses_page(
    db: Session, campaign_id: str, page_size: int = 12, cursor: Optional[str] = None
) -> Page:
    return _page(db, models.Expense, campaign_id, page_size, cursor)

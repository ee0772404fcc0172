# donations/main.py
from contextlib import asynccontextmanager
from datetime import datetime, date
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

import structlog
from fastapi import FastAPI, Request, Form, Depends, Query
from fastapi.responses import (
    RedirectResponse,
    HTMLResponse,
    JSONResponse,
    PlainTextResponse,
)
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from . import aggregates, crud
from .auth import (
    clear_session_cookie,
    get_current_user,
    get_optional_user,
    require_admin,
    set_session_cookie,
)
from .config import settings
from .db import Base, engine, get_db
from .exceptions import (
    DonationsError,
    FormError,
    LoginRequired,
    RecordNotFound,
    ValidationError,
)
from .forms import DonationForm, ExpenseForm, is_anonymous
from .logging_config import setup_logging
from .models import (
    DONATION_METHODS,
    EXPENSE_CATEGORIES,
    ROLE_ADMIN,
    ROLE_MEMBER,
    STATUS_ACTIVE,
    User,
)
from .schemas import (
    ErrorResponse,
    HealthResponse,
    LeaderboardItem,
    LeaderboardResponse,
    SummaryResponse,
    TotalsResponse,
)

setup_logging(settings.LOG_LEVEL, debug=settings.DEBUG)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting donation tracker", version=settings.VERSION)
    # create tables on first boot
    Base.metadata.create_all(bind=engine)
    yield
    logger.info("Donation tracker stopped")


# ---------- App ----------
app = FastAPI(
    title="Donation Tracker",
    version=settings.VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

if STATIC_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def money(amount) -> str:
    return aggregates.format_money(amount, settings.CURRENCY_SYMBOL)


def short_date(value: Optional[datetime]) -> str:
    if not value:
        return ""
    return value.strftime("%b %d, %Y")


templates.env.filters["money"] = money
templates.env.filters["short_date"] = short_date
templates.env.globals["METHODS"] = DONATION_METHODS
templates.env.globals["CATEGORIES"] = EXPENSE_CATEGORIES
templates.env.globals["PRESETS"] = aggregates.PRESETS


# ---------- Helpers ----------
def parse_date_str(s: Optional[str]) -> Optional[date]:
    # YYYY-MM-DD, blank means no bound
    s = (s or "").strip()
    if not s:
        return None
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError("Dates must be YYYY-MM-DD")


def render(
    request: Request,
    name: str,
    context: Optional[dict] = None,
    user: Optional[User] = None,
    status_code: int = 200,
):
    ctx = {"user": user, "notice": request.query_params.get("notice")}
    ctx.update(context or {})
    return templates.TemplateResponse(
        request=request, name=name, context=ctx, status_code=status_code
    )


def redirect(url: str, notice: Optional[str] = None) -> RedirectResponse:
    if notice:
        sep = "&" if "?" in url else "?"
        url = f"{url}{sep}{urlencode({'notice': notice})}"
    return RedirectResponse(url=url, status_code=303)


def safe_next(next_url: Optional[str]) -> str:
    # only local paths, never //host
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return "/"


def donation_filter(q, method, date_from, date_to) -> aggregates.DonationFilter:
    method = (method or "").strip().lower() or None
    if method and method not in DONATION_METHODS:
        raise ValidationError(f"Unknown method: {method}")
    return aggregates.DonationFilter(
        name_query=(q or "").strip() or None,
        method=method,
        date_from=parse_date_str(date_from),
        date_to=parse_date_str(date_to),
    )


def expense_filter(q, category, preset) -> aggregates.ExpenseFilter:
    preset = (preset or aggregates.PRESET_ALL).strip().upper()
    if preset not in aggregates.PRESETS:
        preset = aggregates.PRESET_ALL
    return aggregates.ExpenseFilter(
        query=(q or "").strip() or None,
        category=(category or aggregates.CATEGORY_ALL).strip() or aggregates.CATEGORY_ALL,
        preset=preset,
    )


def load_donation(db: Session, campaign_id: str, donation_id: int):
    obj = crud.get_donation(db, donation_id, campaign_id=campaign_id)
    if obj is None or obj.status != STATUS_ACTIVE:
        raise RecordNotFound("Donation not found")
    return obj


def load_expense(db: Session, campaign_id: str, expense_id: int):
    obj = crud.get_expense(db, expense_id, campaign_id=campaign_id)
    if obj is None or obj.status != STATUS_ACTIVE:
        raise RecordNotFound("Expense not found")
    return obj


# ---------- Errors ----------
@app.exception_handler(DonationsError)
async def donations_error_handler(request: Request, exc: DonationsError):
    is_api = request.url.path.startswith("/api/")

    if isinstance(exc, LoginRequired):
        if is_api:
            return JSONResponse(
                status_code=401,
                content=ErrorResponse(detail=exc.message).model_dump(exclude_none=True),
            )
        # keep filters and cursor across the sign-in
        next_url = request.url.path
        if request.url.query:
            next_url += "?" + request.url.query
        return RedirectResponse(
            url="/login?" + urlencode({"next": next_url}), status_code=303
        )

    logger.info(
        "Request rejected",
        path=request.url.path,
        error=type(exc).__name__,
        detail=exc.message,
    )
    if is_api:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                detail=exc.message, error_code=type(exc).__name__
            ).model_dump(),
        )
    return render(
        request,
        "error.html",
        {"status_code": exc.status_code, "message": exc.message},
        status_code=exc.status_code,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.DEBUG else None,
        },
    )


# ---------- Health ----------
@app.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(service=settings.SERVICE_NAME, version=settings.VERSION)


# ---------- Auth pages ----------
@app.get("/", response_class=HTMLResponse)
def home():
    return redirect(f"/c/{settings.DEFAULT_CAMPAIGN}")


@app.get("/login", response_class=HTMLResponse)
def login_page(
    request: Request,
    next: Optional[str] = None,
    user: Optional[User] = Depends(get_optional_user),
):
    if user is not None:
        return redirect(safe_next(next))
    return render(request, "login.html", {"next": next or "", "email": ""})


@app.post("/login")
def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next: str = Form(""),
    db: Session = Depends(get_db),
):
    user = crud.authenticate(db, email, password)
    if user is None:
        logger.info("Login failed", email=email.strip().lower())
        return render(
            request,
            "login.html",
            {"error": "Invalid email or password", "next": next, "email": email},
            status_code=400,
        )

    logger.info("Login succeeded", user_id=user.id)
    response = redirect(safe_next(next))
    set_session_cookie(response, user)
    return response


@app.get("/register", response_class=HTMLResponse)
def register_page(request: Request):
    return render(request, "register.html", {"email": ""})


@app.post("/register")
def register(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    db: Session = Depends(get_db),
):
    email = email.strip().lower()
    role = ROLE_ADMIN if email in settings.admin_emails_list else ROLE_MEMBER
    try:
        if len(password) < settings.PASSWORD_MIN_LENGTH:
            raise ValidationError(
                f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters"
            )
        user = crud.create_user(db, email, password, role=role)
    except ValidationError as e:
        return render(
            request,
            "register.html",
            {"error": e.message, "email": email},
            status_code=400,
        )

    response = redirect("/")
    set_session_cookie(response, user)
    return response


@app.post("/logout")
def logout():
    response = redirect("/login")
    clear_session_cookie(response)
    return response


# ---------- Dashboard ----------
@app.get("/c/{campaign_id}", response_class=HTMLResponse)
def dashboard(
    request: Request,
    campaign_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    summary = aggregates.campaign_summary(db, campaign_id)
    # unfiltered, so the summary sums are the totals
    totals = aggregates.Totals(
        total=summary.donations_total, count=summary.donations_count
    )
    latest = crud.list_donations(db, campaign_id, limit=settings.DASHBOARD_LATEST)
    top = aggregates.top_donors(db, campaign_id, limit=settings.DASHBOARD_TOP_DONORS)

    return render(
        request,
        "dashboard.html",
        {
            "campaign_id": campaign_id,
            "totals": totals,
            "summary": summary,
            "latest": latest,
            "top": top,
        },
        user=user,
    )


# ---------- Donations ----------
@app.get("/c/{campaign_id}/donations", response_class=HTMLResponse)
def donations_list(
    request: Request,
    campaign_id: str,
    q: Optional[str] = None,
    method: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    cursor: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    flt = donation_filter(q, method, date_from, date_to)
    page = crud.list_donations_page(
        db, campaign_id, page_size=settings.DONATIONS_PAGE_SIZE, cursor=cursor
    )
    rows = [d for d in page.items if flt.matches(d)]
    totals = aggregates.donation_totals(
        db, campaign_id, flt, page_size=settings.TOTALS_PAGE_SIZE
    )

    next_url = None
    if page.next_cursor:
        params = {
            "q": q or "",
            "method": method or "",
            "date_from": date_from or "",
            "date_to": date_to or "",
            "cursor": page.next_cursor,
        }
        next_url = f"/c/{campaign_id}/donations?{urlencode(params)}"

    return render(
        request,
        "donations_list.html",
        {
            "campaign_id": campaign_id,
            "rows": rows,
            "totals": totals,
            "next_url": next_url,
            "q": q or "",
            "method": method or "",
            "date_from": date_from or "",
            "date_to": date_to or "",
            "generated_at": datetime.now(),
        },
        user=user,
    )


@app.get("/c/{campaign_id}/donations/new", response_class=HTMLResponse)
def new_donation_page(
    request: Request,
    campaign_id: str,
    user: User = Depends(get_current_user),
):
    return render(
        request,
        "donation_form.html",
        {"campaign_id": campaign_id, "form": {"method": "cash"}, "donation": None},
        user=user,
    )


@app.post("/c/{campaign_id}/donations/new")
def create_donation(
    request: Request,
    campaign_id: str,
    donor_name: str = Form(""),
    anonymous: bool = Form(False),
    amount: str = Form(""),
    method: str = Form("cash"),
    note: str = Form(""),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    raw = {
        "donor_name": donor_name,
        "anonymous": anonymous,
        "amount": amount,
        "method": method,
        "note": note,
    }
    try:
        form = DonationForm.parse(donor_name, amount, method, note, anonymous=anonymous)
    except FormError as e:
        return render(
            request,
            "donation_form.html",
            {"campaign_id": campaign_id, "form": raw, "donation": None, "error": e.message},
            user=user,
            status_code=400,
        )

    crud.create_donation(db, campaign_id, form, user_id=user.id)
    return redirect(f"/c/{campaign_id}/donations/new", notice="Donation added")


@app.get("/c/{campaign_id}/donations/{donation_id}/edit", response_class=HTMLResponse)
def edit_donation_page(
    request: Request,
    campaign_id: str,
    donation_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    donation = load_donation(db, campaign_id, donation_id)
    form = {
        "donor_name": donation.donor_name,
        "anonymous": is_anonymous(donation.donor_name),
        "amount": str(donation.amount),
        "method": donation.method,
        "note": donation.note,
    }
    return render(
        request,
        "donation_form.html",
        {"campaign_id": campaign_id, "form": form, "donation": donation},
        user=user,
    )


@app.post("/c/{campaign_id}/donations/{donation_id}/edit")
def update_donation(
    request: Request,
    campaign_id: str,
    donation_id: int,
    donor_name: str = Form(""),
    anonymous: bool = Form(False),
    amount: str = Form(""),
    method: str = Form("cash"),
    note: str = Form(""),
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    donation = load_donation(db, campaign_id, donation_id)
    try:
        form = DonationForm.parse(donor_name, amount, method, note, anonymous=anonymous)
    except FormError as e:
        raw = {
            "donor_name": donor_name,
            "anonymous": anonymous,
            "amount": amount,
            "method": method,
            "note": note,
        }
        return render(
            request,
            "donation_form.html",
            {"campaign_id": campaign_id, "form": raw, "donation": donation, "error": e.message},
            user=user,
            status_code=400,
        )

    crud.update_donation(db, donation, form, user_id=user.id)
    return redirect(f"/c/{campaign_id}/donations", notice="Donation updated")


@app.post("/c/{campaign_id}/donations/{donation_id}/delete")
def delete_donation(
    campaign_id: str,
    donation_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    donation = load_donation(db, campaign_id, donation_id)
    crud.delete_donation(db, donation)
    return redirect(f"/c/{campaign_id}/donations", notice="Donation deleted")


# ---------- Expenses ----------
def _expenses_context(db: Session, campaign_id: str, q, category, preset, cursor) -> dict:
    flt = expense_filter(q, category, preset)
    page = crud.list_expenses_page(
        db, campaign_id, page_size=settings.EXPENSES_PAGE_SIZE, cursor=cursor
    )
    rows = aggregates.filter_expenses(page.items, flt)

    next_url = None
    if page.next_cursor:
        params = {
            "q": flt.query or "",
            "category": flt.category,
            "preset": flt.preset,
            "cursor": page.next_cursor,
        }
        next_url = f"/c/{campaign_id}/expenses?{urlencode(params)}"

    return {
        "campaign_id": campaign_id,
        "rows": rows,
        "total": aggregates.sum_amounts(rows),
        "categories": aggregates.expense_categories(page.items),
        "next_url": next_url,
        "q": flt.query or "",
        "category": flt.category,
        "preset": flt.preset,
        "share_url": f"/c/{campaign_id}/expenses/share?"
        + urlencode({"q": flt.query or "", "category": flt.category, "preset": flt.preset}),
        "form": {"category": "medicines"},
    }


@app.get("/c/{campaign_id}/expenses", response_class=HTMLResponse)
def expenses_list(
    request: Request,
    campaign_id: str,
    q: Optional[str] = None,
    category: Optional[str] = None,
    preset: Optional[str] = None,
    cursor: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ctx = _expenses_context(db, campaign_id, q, category, preset, cursor)
    return render(request, "expenses.html", ctx, user=user)


@app.post("/c/{campaign_id}/expenses")
def create_expense(
    request: Request,
    campaign_id: str,
    concept: str = Form(""),
    category: str = Form("medicines"),
    amount: str = Form(""),
    note: str = Form(""),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        form = ExpenseForm.parse(concept, amount, category, note)
    except FormError as e:
        ctx = _expenses_context(db, campaign_id, None, None, None, None)
        ctx["form"] = {"concept": concept, "category": category, "amount": amount, "note": note}
        ctx["error"] = e.message
        return render(request, "expenses.html", ctx, user=user, status_code=400)

    crud.create_expense(db, campaign_id, form, user_id=user.id)
    return redirect(f"/c/{campaign_id}/expenses", notice="Expense recorded")


@app.get("/c/{campaign_id}/expenses/share", response_class=PlainTextResponse)
def share_expenses(
    campaign_id: str,
    q: Optional[str] = None,
    category: Optional[str] = None,
    preset: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    flt = expense_filter(q, category, preset)
    rows = aggregates.filter_expenses(
        aggregates.iter_expenses(db, campaign_id, page_size=settings.TOTALS_PAGE_SIZE),
        flt,
    )
    text = aggregates.expense_share_text(campaign_id, rows, settings.CURRENCY_SYMBOL)
    return PlainTextResponse(text)


@app.get("/c/{campaign_id}/expenses/{expense_id}/edit", response_class=HTMLResponse)
def edit_expense_page(
    request: Request,
    campaign_id: str,
    expense_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    expense = load_expense(db, campaign_id, expense_id)
    form = {
        "concept": expense.concept,
        "category": expense.category,
        "amount": str(expense.amount),
        "note": expense.note,
    }
    return render(
        request,
        "expense_form.html",
        {"campaign_id": campaign_id, "form": form, "expense": expense},
        user=user,
    )


@app.post("/c/{campaign_id}/expenses/{expense_id}/edit")
def update_expense(
    request: Request,
    campaign_id: str,
    expense_id: int,
    concept: str = Form(""),
    category: str = Form("medicines"),
    amount: str = Form(""),
    note: str = Form(""),
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    expense = load_expense(db, campaign_id, expense_id)
    try:
        form = ExpenseForm.parse(concept, amount, category, note)
    except FormError as e:
        raw = {"concept": concept, "category": category, "amount": amount, "note": note}
        return render(
            request,
            "expense_form.html",
            {"campaign_id": campaign_id, "form": raw, "expense": expense, "error": e.message},
            user=user,
            status_code=400,
        )

    crud.update_expense(db, expense, form, user_id=user.id)
    return redirect(f"/c/{campaign_id}/expenses", notice="Expense updated")


@app.post("/c/{campaign_id}/expenses/{expense_id}/delete")
def delete_expense(
    campaign_id: str,
    expense_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    expense = load_expense(db, campaign_id, expense_id)
    crud.delete_expense(db, expense)
    return redirect(f"/c/{campaign_id}/expenses", notice="Expense deleted")


# ---------- JSON API ----------
@app.get("/api/c/{campaign_id}/totals", response_model=TotalsResponse)
def api_totals(
    campaign_id: str,
    q: Optional[str] = None,
    method: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    flt = donation_filter(q, method, date_from, date_to)
    totals = aggregates.donation_totals(
        db, campaign_id, flt, page_size=settings.TOTALS_PAGE_SIZE
    )
    return TotalsResponse(
        campaign_id=campaign_id,
        total=totals.total,
        count=totals.count,
        average=totals.average,
        name_query=flt.name_query,
        method=flt.method,
        date_from=flt.date_from,
        date_to=flt.date_to,
    )


@app.get("/api/c/{campaign_id}/leaderboard", response_model=LeaderboardResponse)
def api_leaderboard(
    campaign_id: str,
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    top = aggregates.top_donors(db, campaign_id, limit=limit)
    return LeaderboardResponse(
        campaign_id=campaign_id,
        donors=[LeaderboardItem(name=e.name, total=e.total, count=e.count) for e in top],
    )


@app.get("/api/c/{campaign_id}/summary", response_model=SummaryResponse)
def api_summary(
    campaign_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    s = aggregates.campaign_summary(db, campaign_id)
    return SummaryResponse(
        campaign_id=campaign_id,
        donations_total=s.donations_total,
        donations_count=s.donations_count,
        expenses_total=s.expenses_total,
        expenses_count=s.expenses_count,
        balance=s.balance,
    )

import csv
import logging
from io import StringIO
from pathlib import Path

from fastapi import APIRouter, FastAPI, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware
from fastapi.templating import Jinja2Templates

from .balances import (
    BALANCE_FILTERS,
    aggregate_balances,
    balance_for,
    filter_balances,
    summarize_portfolio,
)
from .db import init_db
from .exceptions import AuthenticationError, NotFoundError
from .log import setup_logging
from .logic import (
    COUNTRIES,
    cents_to_amount,
    currency_for_country,
    format_money,
    parse_amount_to_cents,
    supported_currencies,
    validate_email,
    validate_password,
    validate_phone,
    validate_transaction_type,
)
from .models import Admin
from .repo import (
    authenticate_admin,
    change_password,
    create_admin,
    create_friend,
    create_txn,
    delete_friend,
    delete_txn,
    get_admin,
    get_friend,
    get_friend_balances,
    get_friend_by_tracking_url,
    list_txns,
    load_snapshot,
    update_admin_profile,
    update_friend,
    update_tracking_code,
)
from .settings import Settings, get_settings
from .tracking import full_tracking_url, generate_tracking_code, is_valid_tracking_url

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
SESSION_ADMIN_KEY = "admin_id"
SESSION_COOKIE = "loanbook_session"

templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
templates.env.filters["money"] = format_money
templates.env.filters["cents"] = cents_to_amount
router = APIRouter()


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, AuthenticationError):
        return HTTPException(status_code=401, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _current_admin(request: Request) -> Admin | None:
    admin_id = request.session.get(SESSION_ADMIN_KEY)
    if not isinstance(admin_id, int):
        return None
    return get_admin(_settings(request).db_path, admin_id)


def _require_admin(request: Request) -> Admin:
    admin = _current_admin(request)
    if admin is None:
        raise HTTPException(status_code=303, headers={"Location": "/"})
    return admin


def _logged_in_redirect(request: Request, admin_id: int, url: str = "/") -> RedirectResponse:
    request.session.clear()
    request.session[SESSION_ADMIN_KEY] = admin_id
    return RedirectResponse(url=url, status_code=303)


def _matches_search(friend, needle: str) -> bool:
    return needle in friend.full_name.lower() or needle in friend.whatsapp_number


def _build_dashboard_context(
    request: Request, admin: Admin, status: str, q: str = ""
) -> dict:
    settings = _settings(request)
    pairs = get_friend_balances(
        settings.db_path,
        admin_id=admin.id,
        unknown_type_policy=settings.unknown_type_policy,
    )
    balances = {friend.id: balance for friend, balance in pairs}
    visible = filter_balances(balances, status)
    needle = q.strip().lower()
    return {
        "admin": admin,
        "currency": admin.preferred_currency,
        "summary": summarize_portfolio(balances),
        "friends": [
            (f, b) for f, b in pairs if f.id in visible and _matches_search(f, needle)
        ],
        "status": status,
        "q": q.strip(),
        "filters": BALANCE_FILTERS,
        "recent": list_txns(settings.db_path, admin_id=admin.id)[:10],
    }


def _build_friend_context(request: Request, admin: Admin, friend_id: int) -> dict:
    settings = _settings(request)
    friend = get_friend(settings.db_path, friend_id, admin_id=admin.id)
    balances = aggregate_balances(
        load_snapshot(settings.db_path, admin_id=admin.id, friend_id=friend.id),
        unknown_type_policy=settings.unknown_type_policy,
    )
    return {
        "admin": admin,
        "currency": admin.preferred_currency,
        "friend": friend,
        "balance": balance_for(balances, friend.id),
        "transactions": list_txns(settings.db_path, admin_id=admin.id, friend_id=friend.id),
        "tracking_link": full_tracking_url(settings.base_url, friend.tracking_url),
    }


@router.get("/", response_class=HTMLResponse)
def index(request: Request, status: str = "all", q: str = ""):
    admin = _current_admin(request)
    if admin is None:
        return templates.TemplateResponse(
            request, "login.html", {"countries": sorted(COUNTRIES), "error": None}
        )
    try:
        context = _build_dashboard_context(request, admin, status, q)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return templates.TemplateResponse(request, "index.html", context)


@router.post("/register")
def register(
    request: Request,
    full_name: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    confirm_password: str = Form(...),
    country_code: str = Form(...),
    phone: str = Form(...),
):
    try:
        valid_email = validate_email(email)
        validate_password(password)
        if password != confirm_password:
            raise ValueError("passwords do not match")
        whatsapp_number = validate_phone(country_code, phone)
        admin_id = create_admin(
            _settings(request).db_path,
            full_name=full_name,
            email=valid_email,
            whatsapp_number=whatsapp_number,
            password=password,
            preferred_currency=currency_for_country(country_code),
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _logged_in_redirect(request, admin_id)


@router.post("/login")
def login(request: Request, email: str = Form(...), password: str = Form(...)):
    try:
        admin = authenticate_admin(_settings(request).db_path, email, password)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _logged_in_redirect(request, admin.id)


@router.post("/logout")
def logout(request: Request):
    request.session.clear()
    return RedirectResponse(url="/", status_code=303)


@router.get("/profile", response_class=HTMLResponse)
def profile(request: Request, saved: str | None = None):
    admin = _require_admin(request)
    return templates.TemplateResponse(
        request,
        "profile.html",
        {"admin": admin, "currencies": supported_currencies(), "saved": saved},
    )


@router.post("/profile")
def update_profile(
    request: Request,
    full_name: str = Form(...),
    preferred_currency: str = Form(...),
):
    admin = _require_admin(request)
    try:
        update_admin_profile(
            _settings(request).db_path,
            admin.id,
            full_name=full_name,
            preferred_currency=preferred_currency,
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return RedirectResponse(url="/profile?saved=profile", status_code=303)


@router.post("/profile/password")
def update_password(
    request: Request,
    current_password: str = Form(...),
    new_password: str = Form(...),
    confirm_password: str = Form(...),
):
    admin = _require_admin(request)
    try:
        if new_password != confirm_password:
            raise ValueError("passwords do not match")
        change_password(
            _settings(request).db_path,
            admin.id,
            current_password=current_password,
            new_password=new_password,
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return RedirectResponse(url="/profile?saved=password", status_code=303)


@router.post("/friends")
def add_friend(
    request: Request,
    full_name: str = Form(...),
    country_code: str = Form(...),
    phone: str = Form(...),
):
    admin = _require_admin(request)
    try:
        friend_id = create_friend(
            _settings(request).db_path,
            admin_id=admin.id,
            full_name=full_name,
            whatsapp_number=validate_phone(country_code, phone),
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return RedirectResponse(url=f"/friends/{friend_id}", status_code=303)


@router.get("/friends/{friend_id}", response_class=HTMLResponse)
def friend_profile(friend_id: int, request: Request):
    admin = _require_admin(request)
    try:
        context = _build_friend_context(request, admin, friend_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return templates.TemplateResponse(request, "friend.html", context)


@router.post("/friends/{friend_id}/edit")
def edit_friend(
    friend_id: int,
    request: Request,
    full_name: str = Form(...),
    country_code: str = Form(...),
    phone: str = Form(...),
):
    admin = _require_admin(request)
    try:
        update_friend(
            _settings(request).db_path,
            friend_id,
            admin_id=admin.id,
            full_name=full_name,
            whatsapp_number=validate_phone(country_code, phone),
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return RedirectResponse(url=f"/friends/{friend_id}", status_code=303)


@router.post("/friends/{friend_id}/delete")
def remove_friend(friend_id: int, request: Request):
    admin = _require_admin(request)
    try:
        delete_friend(_settings(request).db_path, friend_id, admin_id=admin.id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return RedirectResponse(url="/", status_code=303)


@router.post("/friends/{friend_id}/tracking-code")
def change_tracking_code(
    friend_id: int,
    request: Request,
    code: str | None = Form(default=None),
):
    admin = _require_admin(request)
    try:
        update_tracking_code(
            _settings(request).db_path,
            friend_id,
            admin_id=admin.id,
            code=(code or "").strip() or generate_tracking_code(),
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return RedirectResponse(url=f"/friends/{friend_id}", status_code=303)


@router.post("/transactions", response_class=HTMLResponse)
def record_transaction(
    request: Request,
    friend_id: int = Form(...),
    txn_type: str = Form(..., alias="type"),
    amount: str = Form(...),
    description: str = Form(default=""),
    date: str | None = Form(default=None),
):
    admin = _require_admin(request)
    try:
        create_txn(
            _settings(request).db_path,
            admin_id=admin.id,
            friend_id=friend_id,
            txn_type=validate_transaction_type(txn_type),
            amount_cents=parse_amount_to_cents(amount),
            description=description.strip(),
            date_str=date or None,
        )
    except ValueError as exc:
        raise _http_error(exc) from exc

    if request.headers.get("HX-Request") == "true":
        return _render_friend_partial(request, admin, friend_id)
    return RedirectResponse(url=f"/friends/{friend_id}", status_code=303)


@router.post("/transactions/{txn_id}/delete", response_class=HTMLResponse)
def delete_transaction(txn_id: int, request: Request, friend_id: int = Form(...)):
    admin = _require_admin(request)
    try:
        delete_txn(_settings(request).db_path, txn_id, admin_id=admin.id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    if request.headers.get("HX-Request") == "true":
        return _render_friend_partial(request, admin, friend_id)
    return RedirectResponse(url=f"/friends/{friend_id}", status_code=303)


def _render_friend_partial(request: Request, admin: Admin, friend_id: int) -> HTMLResponse:
    try:
        context = _build_friend_context(request, admin, friend_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    summary_html = templates.get_template("_balance_summary.html").render(**context)
    table_html = templates.get_template("_transactions_table.html").render(**context)
    return HTMLResponse(summary_html + table_html)


@router.get("/track/{tracking_url}", response_class=HTMLResponse)
def track(tracking_url: str, request: Request, code: str | None = None):
    settings = _settings(request)
    if not is_valid_tracking_url(tracking_url):
        raise HTTPException(status_code=404, detail="tracking link not found")
    try:
        friend = get_friend_by_tracking_url(settings.db_path, tracking_url)
    except ValueError as exc:
        raise _http_error(exc) from exc

    context = {"tracking_url": tracking_url, "friend": None, "error": None}
    if code is None:
        return templates.TemplateResponse(request, "track.html", context)
    if code != friend.tracking_code:
        logger.warning("Wrong tracking code", extra={"friend_id": friend.id})
        context["error"] = "Incorrect code."
        return templates.TemplateResponse(request, "track.html", context, status_code=403)

    admin = get_admin(settings.db_path, friend.admin_id)
    balances = aggregate_balances(
        load_snapshot(settings.db_path, admin_id=friend.admin_id, friend_id=friend.id),
        unknown_type_policy=settings.unknown_type_policy,
    )
    context.update(
        friend=friend,
        currency=admin.preferred_currency if admin else "USD",
        balance=balance_for(balances, friend.id),
        transactions=list_txns(settings.db_path, admin_id=friend.admin_id, friend_id=friend.id),
    )
    return templates.TemplateResponse(request, "track.html", context)


@router.get("/export.csv")
def export_csv(request: Request, friend_id: int | None = None):
    admin = _require_admin(request)
    transactions = list_txns(
        _settings(request).db_path, admin_id=admin.id, friend_id=friend_id
    )

    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(
        ["id", "friend_id", "friend", "date", "type", "amount", "description"]
    )
    for txn in transactions:
        writer.writerow(
            [
                txn["id"],
                txn["friend_id"],
                txn["friend_name"],
                txn["transaction_date"],
                txn["type"],
                f"{cents_to_amount(txn['amount_cents']):.2f}",
                txn["description"] or "",
            ]
        )

    body = "\ufeff" + output.getvalue()
    suffix = f"-friend-{friend_id}" if friend_id is not None else ""
    filename = f"loanbook-{admin.id}{suffix}.csv"
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/api/balances")
def api_balances(request: Request):
    admin = _current_admin(request)
    if admin is None:
        raise HTTPException(status_code=401, detail="login required")
    settings = _settings(request)
    balances = aggregate_balances(
        load_snapshot(settings.db_path, admin_id=admin.id),
        unknown_type_policy=settings.unknown_type_policy,
    )
    summary = summarize_portfolio(balances)
    return JSONResponse(
        {
            "currency": admin.preferred_currency,
            "balances": {str(k): b.to_dict() for k, b in balances.items()},
            "summary": {
                "friend_count": summary.friend_count,
                "total_lent": str(summary.total_lent),
                "total_repaid": str(summary.total_repaid),
                "total_outstanding": str(summary.total_outstanding),
                "outstanding_count": summary.outstanding_count,
                "all_settled": summary.all_settled,
            },
        }
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    init_db(settings)

    application = FastAPI(title="loanbook")
    application.state.settings = settings
    application.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=SESSION_COOKIE,
        same_site="lax",
    )
    application.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")
    application.include_router(router)
    return application


settings = get_settings()
setup_logging(settings.log_level)
app = create_app(settings)

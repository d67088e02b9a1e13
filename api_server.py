"""HTTP API for the AI assistant, category seeding, report export and the health score.

Callers identify themselves with ``Authorization: Bearer <token>``, where the
token comes from ``POST /api/auth/token`` (or the Settings tab of the UI).
The AI endpoints also accept anonymous callers, who are rate limited by IP.
"""

import logging
import math
from dataclasses import asdict
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

import crud
from ai_assistant import (
    format_ai_response,
    parse_followup_payload,
    parse_summary_payload,
    request_followup,
    request_summary,
)
from ai_client import get_client
from auth import LoginThrottle, authenticate, issue_api_token, user_for_token
from config import AI_DAILY_LIMIT, configure_logging, is_development
from database import User, get_db, init_db
from errors import AIProviderError, AuthError, FinoraError, PayloadError, RateLimitExceeded, ValidationError
from financial_health import FinancialHealthOptions, calculate_financial_health
from insights import comparison_window_start, monthly_finance, transactions_to_df
from rate_limit import DailyRateLimiter, limiter_key
from reports import report_filename, transactions_csv

logger = logging.getLogger(__name__)

app = FastAPI(title="Finora API", version="0.1.0")

# Failed token logins, per email
_login_throttles: Dict[str, LoginThrottle] = {}


def get_client_factory() -> Callable:
    """The AI client is built lazily so bad payloads fail before the key check."""
    return get_client


def get_bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(token: Optional[str] = Depends(get_bearer_token), db: Session = Depends(get_db)) -> Optional[User]:
    """The verified caller, or None for anonymous requests.

    A token that is present but does not verify is rejected rather than
    treated as anonymous.
    """
    if token is None:
        return None
    user = user_for_token(db, token)
    if user is None:
        raise AuthError("Invalid API token.")
    return user


def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if user is None:
        raise AuthError("Sign in required.")
    return user


def _debug(value):
    return value if is_development() else None


@app.exception_handler(FinoraError)
async def finora_error_handler(request: Request, exc: FinoraError):
    body = {"ok": False, "code": exc.code, "error": exc.message}
    headers = {}
    if isinstance(exc, PayloadError):
        body.update(hint=exc.hint, received=exc.received, parsed=exc.parsed)
    if isinstance(exc, AIProviderError) and is_development():
        body["debug"] = exc.detail
    if isinstance(exc, RateLimitExceeded):
        headers = {"X-RateLimit-Limit": str(exc.limit), "X-RateLimit-Remaining": "0"}
        if exc.reset_at is not None:
            headers["X-RateLimit-Reset"] = exc.reset_at.isoformat()
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    body = {"ok": False, "code": "SERVER_ERROR", "error": "Server error. Please try again."}
    if is_development():
        body["debug"] = str(exc)[:400]
    return JSONResponse(status_code=500, content=body)


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return {}


def _charge_ai_quota(db: Session, request: Request, user: Optional[User], response: Response) -> None:
    client_ip = request.client.host if request.client else None
    key = limiter_key(str(user.id) if user else None, client_ip)
    result = DailyRateLimiter(db, limit=AI_DAILY_LIMIT).hit(key)
    response.headers.update(result.headers())


class TokenRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    ok: bool = True
    token: str
    user_id: int


@app.post("/api/auth/token", response_model=TokenResponse)
def create_token(payload: TokenRequest, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    throttle = _login_throttles.setdefault(email, LoginThrottle())
    user = authenticate(db, email, payload.password, throttle)
    _login_throttles.pop(email, None)
    return TokenResponse(token=issue_api_token(db, user), user_id=user.id)


class AiTextResponse(BaseModel):
    ok: bool = True
    text: str
    lines: List[dict] = []
    debug: Optional[dict] = None


@app.post("/api/ai/summary", response_model=AiTextResponse)
async def ai_summary(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_current_user),
    client_factory: Callable = Depends(get_client_factory),
):
    body = await _json_body(request)
    # validate before spending quota
    parse_summary_payload(body)
    await run_in_threadpool(_charge_ai_quota, db, request, user, response)

    result = await run_in_threadpool(request_summary, client_factory(), body)
    return AiTextResponse(text=result["text"], lines=format_ai_response(result["text"]), debug=_debug(result["parsed"]))


@app.post("/api/ai/followup", response_model=AiTextResponse)
async def ai_followup(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_current_user),
    client_factory: Callable = Depends(get_client_factory),
):
    body = await _json_body(request)
    parse_followup_payload(body)
    await run_in_threadpool(_charge_ai_quota, db, request, user, response)

    result = await run_in_threadpool(request_followup, client_factory(), body)
    return AiTextResponse(
        text=result["text"],
        lines=format_ai_response(result["text"]),
        debug=_debug({"mode": result["mode"], "questionLength": result["question_length"], "historyTurns": result["history_turns"]}),
    )


class SeedResponse(BaseModel):
    ok: bool = True
    added: int
    total: int


@app.post("/api/categories/seed", response_model=SeedResponse)
def seed_categories(user: User = Depends(require_user), db: Session = Depends(get_db)):
    added = crud.seed_default_categories(db, user.id)
    return SeedResponse(added=added, total=len(crud.list_categories(db, user.id)))


@app.get("/api/reports/transactions.csv")
def export_transactions_csv(
    start: date = Query(...),
    end: date = Query(...),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    if end < start:
        raise ValidationError("End date must be on or after the start date.")
    records = crud.transaction_records(crud.list_transactions_between(db, user.id, start, end))
    return Response(
        content=transactions_csv(records),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{report_filename(start, end)}"'},
    )


class HealthScoreResponse(BaseModel):
    ok: bool = True
    score: Optional[int] = None
    breakdown: Optional[dict] = None
    signals: Optional[dict] = None
    insight: Optional[dict] = None
    delta_from_previous_month: Optional[int] = None


def _finite_or_none(values: dict) -> dict:
    return {k: (v if not isinstance(v, float) or math.isfinite(v) else None) for k, v in values.items()}


@app.get("/api/financial-health", response_model=HealthScoreResponse)
def financial_health(
    emergency_fund: Optional[float] = Query(None, ge=0),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    today = date.today()
    txns = crud.list_transactions_since(db, user.id, comparison_window_start(today, 5))
    months = monthly_finance(transactions_to_df(crud.transaction_records(txns)), months=6)
    result = calculate_financial_health(months, FinancialHealthOptions(emergency_fund_amount=emergency_fund))
    if result is None:
        return HealthScoreResponse()
    return HealthScoreResponse(
        score=result.score,
        breakdown=result.breakdown.as_dict(),
        signals=_finite_or_none(asdict(result.signals)),
        insight=asdict(result.insight),
        delta_from_previous_month=result.delta_from_previous_month,
    )


@app.get("/health")
async def health():
    return {"status": "ok"}


def main():
    import uvicorn

    configure_logging()
    init_db()
    uvicorn.run("api_server:app", host="0.0.0.0", port=8001, reload=is_development())


if __name__ == "__main__":
    main()

import os
import secrets
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .categories import ALL_CATEGORIES, is_category, map_category
from .currencies import CURRENCIES, DEFAULT_CURRENCY as CATALOG_DEFAULT_CURRENCY, currency_as_dict, is_currency_code
from .db import get_db, init_db
from .dedup import is_processed, mark_processed
from .ledger import (
    add_manual_transaction,
    add_pending,
    approve_pending,
    budget_as_dict,
    budget_summaries,
    delete_budget,
    delete_transaction,
    dismiss_pending,
    get_pending,
    get_transaction,
    list_budgets,
    list_pending,
    list_transactions,
    pending_as_dict,
    save_budget,
    transaction_as_dict,
    update_transaction,
)
from .logging_utils import configure_logging, log_event, reset_request_id, set_request_id
from .sms_parser import STATUS_PARSED, analyze_sms, is_financial_sms


configure_logging()

DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", CATALOG_DEFAULT_CURRENCY).strip().upper()
if not is_currency_code(DEFAULT_CURRENCY):
    log_event('warning', 'config.invalid_default_currency', value=DEFAULT_CURRENCY, fallback=CATALOG_DEFAULT_CURRENCY)
    DEFAULT_CURRENCY = CATALOG_DEFAULT_CURRENCY

# The review queue is for expenses; incoming money is dropped unless enabled.
INGEST_CREDIT_SMS = os.getenv("INGEST_CREDIT_SMS", "false").lower() in {"1", "true", "on", "yes"}

STATUS_DUPLICATE = "duplicate"
STATUS_IGNORED_CREDIT = "ignored_credit"
STATUS_PENDING = "pending"

app = FastAPI(title="Taqqafi SMS API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "").split(",") if o.strip()] or ["http://localhost:8081", "http://127.0.0.1:8081"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started = datetime.now(timezone.utc)
    rid = request.headers.get("x-request-id") or secrets.token_hex(8)
    token = set_request_id(rid)
    response = None
    try:
        response = await call_next(request)
        return response
    except Exception:
        duration_ms = int((datetime.now(timezone.utc) - started).total_seconds() * 1000)
        log_event(
            'error',
            'http.request_failed',
            method=request.method,
            path=request.url.path,
            query=str(request.url.query or ''),
            duration_ms=duration_ms,
        )
        raise
    finally:
        if response is not None:
            response.headers['X-Request-ID'] = rid
            duration_ms = int((datetime.now(timezone.utc) - started).total_seconds() * 1000)
            if request.url.path != '/health':
                status = int(response.status_code)
                req_level = 'error' if status >= 500 else 'warning' if status >= 400 else 'info'
                log_event(
                    req_level,
                    'http.request',
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=duration_ms,
                )
        reset_request_id(token)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    level = 'warning' if int(exc.status_code) < 500 else 'error'
    log_event(
        level,
        'http.http_exception',
        method=request.method,
        path=request.url.path,
        status_code=exc.status_code,
        detail=str(exc.detail),
    )
    response = JSONResponse(status_code=exc.status_code, content={'detail': exc.detail})
    rid = request.headers.get('x-request-id')
    if rid:
        response.headers['X-Request-ID'] = rid
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Validation errors echo the input back; the SMS body must not reach the logs.
    errors = [{'loc': e.get('loc'), 'msg': e.get('msg'), 'type': e.get('type')} for e in exc.errors()]
    log_event(
        'warning',
        'http.validation_error',
        method=request.method,
        path=request.url.path,
        errors=errors,
    )
    response = JSONResponse(status_code=422, content={'detail': errors})
    rid = request.headers.get('x-request-id')
    if rid:
        response.headers['X-Request-ID'] = rid
    return response


@app.on_event("startup")
def on_startup() -> None:
    init_db()


class SmsRequest(BaseModel):
    text: str = Field(min_length=1, max_length=2000)
    sender: Optional[str] = Field(default=None, max_length=120)
    default_currency: Optional[str] = None


class BatchMessage(BaseModel):
    text: str = Field(min_length=1, max_length=2000)
    sender: Optional[str] = Field(default=None, max_length=120)


class BatchRequest(BaseModel):
    messages: List[BatchMessage] = Field(max_length=500)
    default_currency: Optional[str] = None


class TransactionEdits(BaseModel):
    amount: Optional[float] = None
    currency: Optional[str] = None
    merchant: Optional[str] = Field(default=None, max_length=80)
    category: Optional[str] = None


class ManualTransactionRequest(TransactionEdits):
    amount: float
    merchant: str = Field(min_length=1, max_length=80)
    category: str
    approved_at: Optional[datetime] = None


class BudgetRequest(BaseModel):
    category: str
    monthly_limit: float
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)


def resolve_default_currency(value: Optional[str]) -> str:
    if value is None or not value.strip():
        return DEFAULT_CURRENCY
    code = value.strip().upper()
    if not is_currency_code(code):
        raise HTTPException(status_code=422, detail=f"Unsupported currency: {value}")
    return code


def parse_result(text: str, sender: Optional[str], default_currency: str) -> Dict[str, object]:
    status, parsed = analyze_sms(text, sender, default_currency)
    if status != STATUS_PARSED:
        return {"status": status}
    return {
        "status": status,
        "transaction": parsed.as_dict(),
        "category": map_category(parsed.merchant, parsed.raw_text),
    }


def validate_transaction_edits(payload: TransactionEdits) -> Dict[str, object]:
    edits = payload.model_dump(exclude_none=True)
    if "amount" in edits and not edits["amount"] > 0:
        raise HTTPException(status_code=422, detail="Amount must be positive.")
    if "currency" in edits:
        code = str(edits["currency"]).strip().upper()
        if not is_currency_code(code):
            raise HTTPException(status_code=422, detail=f"Unsupported currency: {edits['currency']}")
        edits["currency"] = code
    if "category" in edits and not is_category(edits["category"]):
        raise HTTPException(status_code=422, detail=f"Unknown category: {edits['category']}")
    if "merchant" in edits:
        merchant = str(edits["merchant"]).strip()
        if not merchant:
            raise HTTPException(status_code=422, detail="Merchant cannot be empty.")
        edits["merchant"] = merchant
    return edits


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/api/currencies")
def get_currencies():
    return {"default": DEFAULT_CURRENCY, "currencies": [currency_as_dict(c) for c in CURRENCIES]}


@app.get("/api/categories")
def get_categories():
    return {"categories": list(ALL_CATEGORIES)}


@app.post("/api/sms/classify")
def classify_sms(payload: SmsRequest):
    return {"financial": is_financial_sms(payload.text)}


@app.post("/api/sms/parse")
def parse_sms_endpoint(payload: SmsRequest):
    default_currency = resolve_default_currency(payload.default_currency)
    return parse_result(payload.text, payload.sender, default_currency)


@app.post("/api/sms/parse-batch")
def parse_sms_batch(payload: BatchRequest):
    """
    Parse an inbox dump without persisting anything. Repeated bodies inside the
    batch are reported as duplicates of the first occurrence.
    """
    default_currency = resolve_default_currency(payload.default_currency)
    seen = frozenset()
    results = []
    for message in payload.messages:
        result = parse_result(message.text, message.sender, default_currency)
        if result["status"] == STATUS_PARSED:
            digest = result["transaction"]["content_hash"]
            if is_processed(digest, seen):
                result = {"status": STATUS_DUPLICATE, "content_hash": digest}
            else:
                seen = mark_processed(digest, seen)
        results.append(result)
    return {"results": results, "count": len(results)}


@app.post("/api/sms/ingest")
def ingest_sms(payload: SmsRequest, db: Session = Depends(get_db)):
    default_currency = resolve_default_currency(payload.default_currency)
    status, parsed = analyze_sms(payload.text, payload.sender, default_currency)
    if status != STATUS_PARSED:
        log_event('info', f'sms.{status}', sender=payload.sender or '')
        return {"status": status}

    if parsed.direction == "credit" and not INGEST_CREDIT_SMS:
        log_event('info', 'sms.ignored_credit', sender=payload.sender or '', content_hash=parsed.content_hash)
        return {"status": STATUS_IGNORED_CREDIT}

    category = map_category(parsed.merchant, parsed.raw_text)
    row = add_pending(db, parsed, category, payload.sender or "")
    if row is None:
        log_event('info', 'sms.duplicate', sender=payload.sender or '', content_hash=parsed.content_hash)
        return {"status": STATUS_DUPLICATE, "content_hash": parsed.content_hash}

    log_event(
        'info',
        'sms.pending_created',
        pending_id=row.id,
        content_hash=row.content_hash,
        currency=row.currency,
        category=row.category,
    )
    return {"status": STATUS_PENDING, "pending": pending_as_dict(row)}


@app.get("/api/pending")
def get_pending_transactions(db: Session = Depends(get_db)):
    rows = list_pending(db)
    return {"pending": [pending_as_dict(r) for r in rows], "count": len(rows)}


@app.post("/api/pending/{pending_id}/approve")
def approve_pending_transaction(
    pending_id: str,
    payload: Optional[TransactionEdits] = None,
    db: Session = Depends(get_db),
):
    pending = get_pending(db, pending_id)
    if pending is None:
        raise HTTPException(status_code=404, detail="Pending transaction not found.")
    edits = validate_transaction_edits(payload or TransactionEdits())
    tx = approve_pending(db, pending, edits)
    log_event('info', 'pending.approved', pending_id=pending_id, edited=sorted(edits))
    return {"transaction": transaction_as_dict(tx)}


@app.delete("/api/pending/{pending_id}")
def dismiss_pending_transaction(pending_id: str, db: Session = Depends(get_db)):
    pending = get_pending(db, pending_id)
    if pending is None:
        raise HTTPException(status_code=404, detail="Pending transaction not found.")
    dismiss_pending(db, pending)
    log_event('info', 'pending.dismissed', pending_id=pending_id)
    return {"ok": True}


@app.get("/api/transactions")
def get_transactions(
    month: Optional[int] = None,
    year: Optional[int] = None,
    direction: Optional[str] = None,
    db: Session = Depends(get_db),
):
    if month is not None and not 1 <= month <= 12:
        raise HTTPException(status_code=422, detail="Month must be between 1 and 12.")
    if direction is not None and direction not in {"debit", "credit"}:
        raise HTTPException(status_code=422, detail="Direction must be 'debit' or 'credit'.")
    rows = list_transactions(db, month, year, direction)
    return {"transactions": [transaction_as_dict(r) for r in rows], "count": len(rows)}


@app.delete("/api/transactions/{transaction_id}")
def delete_approved_transaction(transaction_id: str, db: Session = Depends(get_db)):
    if not delete_transaction(db, transaction_id):
        raise HTTPException(status_code=404, detail="Transaction not found.")
    log_event('info', 'transaction.deleted', transaction_id=transaction_id)
    return {"ok": True}


@app.post("/api/transactions")
def add_manual(payload: ManualTransactionRequest, db: Session = Depends(get_db)):
    edits = validate_transaction_edits(payload)
    tx = add_manual_transaction(
        db,
        amount=edits["amount"],
        currency=edits.get("currency", DEFAULT_CURRENCY),
        merchant=edits["merchant"],
        category=edits["category"],
        when=payload.approved_at,
    )
    log_event('info', 'transaction.manual_created', transaction_id=tx.id, currency=tx.currency, category=tx.category)
    return {"transaction": transaction_as_dict(tx)}


@app.patch("/api/transactions/{transaction_id}")
def edit_transaction(transaction_id: str, payload: TransactionEdits, db: Session = Depends(get_db)):
    tx = get_transaction(db, transaction_id)
    if tx is None:
        raise HTTPException(status_code=404, detail="Transaction not found.")
    edits = validate_transaction_edits(payload)
    tx = update_transaction(db, tx, edits)
    log_event('info', 'transaction.updated', transaction_id=transaction_id, edited=sorted(edits))
    return {"transaction": transaction_as_dict(tx)}


@app.get("/api/budgets")
def get_budgets(month: int, year: int, db: Session = Depends(get_db)):
    if not 1 <= month <= 12:
        raise HTTPException(status_code=422, detail="Month must be between 1 and 12.")
    rows = list_budgets(db, month, year)
    return {"budgets": [budget_as_dict(b) for b in rows], "count": len(rows)}


@app.post("/api/budgets")
def put_budget(payload: BudgetRequest, db: Session = Depends(get_db)):
    if not is_category(payload.category):
        raise HTTPException(status_code=422, detail=f"Unknown category: {payload.category}")
    if not payload.monthly_limit > 0:
        raise HTTPException(status_code=422, detail="Monthly limit must be positive.")
    budget = save_budget(db, payload.category, payload.monthly_limit, payload.month, payload.year)
    log_event('info', 'budget.saved', budget_id=budget.id, category=budget.category, month=budget.month, year=budget.year)
    return {"budget": budget_as_dict(budget)}


@app.delete("/api/budgets/{budget_id}")
def remove_budget(budget_id: str, db: Session = Depends(get_db)):
    if not delete_budget(db, budget_id):
        raise HTTPException(status_code=404, detail="Budget not found.")
    log_event('info', 'budget.deleted', budget_id=budget_id)
    return {"ok": True}


@app.get("/api/budgets/summary")
def get_budget_summary(month: int, year: int, db: Session = Depends(get_db)):
    if not 1 <= month <= 12:
        raise HTTPException(status_code=422, detail="Month must be between 1 and 12.")
    summaries = budget_summaries(db, month, year)
    return {"summaries": summaries, "count": len(summaries)}

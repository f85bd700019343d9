"""
Storage side of SMS ingestion: the durable processed-hash set, the pending
review queue, approved transactions and monthly category budgets.
"""

import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .dedup import is_processed
from .models import Budget, PendingTransaction, ProcessedHash, Transaction
from .sms_parser import ParsedTransaction

# Serializes the check-then-insert on processed hashes inside this process;
# the unique constraint covers concurrent writers from other processes.
_DEDUP_LOCK = threading.Lock()


def is_hash_processed(db: Session, content_hash: str) -> bool:
    seen = set(db.scalars(select(ProcessedHash.content_hash).where(ProcessedHash.content_hash == content_hash)))
    return is_processed(content_hash, seen)


def add_pending(
    db: Session,
    parsed: ParsedTransaction,
    category: str,
    sender: str = "",
    now: Optional[datetime] = None,
) -> Optional[PendingTransaction]:
    """
    Claim the message hash and queue the transaction for review.
    Returns None when the same message body was already processed.
    """
    now = now or datetime.now(timezone.utc)
    with _DEDUP_LOCK:
        if is_hash_processed(db, parsed.content_hash):
            return None
        row = PendingTransaction(
            id=str(uuid.uuid4()),
            content_hash=parsed.content_hash,
            amount=parsed.amount,
            currency=parsed.currency,
            merchant=parsed.merchant,
            category=category,
            direction=parsed.direction,
            raw_text=parsed.raw_text,
            sender=(sender or "")[:120],
            received_at=now,
            month=now.month,
            year=now.year,
        )
        db.add(ProcessedHash(content_hash=parsed.content_hash, created_at=now))
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return None
        db.refresh(row)
        return row


def list_pending(db: Session) -> List[PendingTransaction]:
    stmt = select(PendingTransaction).order_by(PendingTransaction.received_at.desc())
    return list(db.scalars(stmt).all())


def get_pending(db: Session, pending_id: str) -> Optional[PendingTransaction]:
    return db.get(PendingTransaction, pending_id)


def approve_pending(
    db: Session,
    pending: PendingTransaction,
    edits: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Transaction:
    edits = {k: v for k, v in (edits or {}).items() if v is not None}
    tx = Transaction(
        id=pending.id,
        content_hash=pending.content_hash,
        amount=edits.get("amount", pending.amount),
        currency=edits.get("currency", pending.currency),
        merchant=edits.get("merchant", pending.merchant),
        category=edits.get("category", pending.category),
        direction=pending.direction,
        raw_text=pending.raw_text,
        sender=pending.sender,
        approved_at=now or datetime.now(timezone.utc),
        month=pending.month,
        year=pending.year,
    )
    db.add(tx)
    db.delete(pending)
    db.commit()
    db.refresh(tx)
    return tx


def dismiss_pending(db: Session, pending: PendingTransaction) -> None:
    # The hash stays claimed so a redelivered copy does not come back.
    db.delete(pending)
    db.commit()


def list_transactions(
    db: Session,
    month: Optional[int] = None,
    year: Optional[int] = None,
    direction: Optional[str] = None,
) -> List[Transaction]:
    stmt = select(Transaction)
    if month is not None:
        stmt = stmt.where(Transaction.month == month)
    if year is not None:
        stmt = stmt.where(Transaction.year == year)
    if direction is not None:
        stmt = stmt.where(Transaction.direction == direction)
    stmt = stmt.order_by(Transaction.approved_at.desc())
    return list(db.scalars(stmt).all())


def delete_transaction(db: Session, transaction_id: str) -> bool:
    tx = db.get(Transaction, transaction_id)
    if tx is None:
        return False
    db.delete(tx)
    db.commit()
    return True


MANUAL_RAW_TEXT = "Manual entry"


def get_transaction(db: Session, transaction_id: str) -> Optional[Transaction]:
    return db.get(Transaction, transaction_id)


def update_transaction(db: Session, tx: Transaction, edits: Dict[str, Any]) -> Transaction:
    for field in ("amount", "currency", "merchant", "category"):
        if edits.get(field) is not None:
            setattr(tx, field, edits[field])
    db.commit()
    db.refresh(tx)
    return tx


def add_manual_transaction(
    db: Session,
    amount: float,
    currency: str,
    merchant: str,
    category: str,
    when: Optional[datetime] = None,
) -> Transaction:
    """
    Record an expense typed in by the user. There is no SMS behind it, so the
    content hash is a per-row placeholder and never enters the processed set.
    """
    when = when or datetime.now(timezone.utc)
    tx_id = str(uuid.uuid4())
    tx = Transaction(
        id=tx_id,
        content_hash=f"manual_{tx_id}",
        amount=amount,
        currency=currency,
        merchant=merchant,
        category=category,
        direction="debit",
        raw_text=MANUAL_RAW_TEXT,
        sender="",
        approved_at=when,
        month=when.month,
        year=when.year,
    )
    db.add(tx)
    db.commit()
    db.refresh(tx)
    return tx


def list_budgets(db: Session, month: int, year: int) -> List[Budget]:
    stmt = select(Budget).where(Budget.month == month, Budget.year == year).order_by(Budget.category)
    return list(db.scalars(stmt).all())


def get_budget(db: Session, budget_id: str) -> Optional[Budget]:
    return db.get(Budget, budget_id)


def save_budget(db: Session, category: str, monthly_limit: float, month: int, year: int) -> Budget:
    """One budget per category and month; saving again replaces the limit."""
    stmt = select(Budget).where(Budget.category == category, Budget.month == month, Budget.year == year)
    budget = db.scalars(stmt).first()
    if budget is None:
        budget = Budget(id=str(uuid.uuid4()), category=category, month=month, year=year, monthly_limit=monthly_limit)
        db.add(budget)
    else:
        budget.monthly_limit = monthly_limit
        budget.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(budget)
    return budget


def delete_budget(db: Session, budget_id: str) -> bool:
    budget = db.get(Budget, budget_id)
    if budget is None:
        return False
    db.delete(budget)
    db.commit()
    return True


def budget_summaries(db: Session, month: int, year: int) -> List[Dict[str, Any]]:
    """
    Spending against each budget of the month. Only approved debits count;
    amounts are summed as stored, without currency conversion.
    """
    budgets = list_budgets(db, month, year)
    spent_by_category: Dict[str, float] = {}
    for tx in list_transactions(db, month, year, "debit"):
        spent_by_category[tx.category] = spent_by_category.get(tx.category, 0.0) + tx.amount

    summaries = []
    for budget in budgets:
        spent = spent_by_category.get(budget.category, 0.0)
        summaries.append({
            "budget": budget_as_dict(budget),
            "spent": spent,
            "remaining": max(0.0, budget.monthly_limit - spent),
            "percent": min(1.0, spent / budget.monthly_limit),
            "is_over_budget": spent > budget.monthly_limit,
        })
    return summaries


def pending_as_dict(row: PendingTransaction) -> Dict[str, Any]:
    return {
        "id": row.id,
        "content_hash": row.content_hash,
        "amount": row.amount,
        "currency": row.currency,
        "merchant": row.merchant,
        "category": row.category,
        "direction": row.direction,
        "raw_text": row.raw_text,
        "sender": row.sender,
        "received_at": row.received_at.isoformat(),
        "month": row.month,
        "year": row.year,
    }


def transaction_as_dict(row: Transaction) -> Dict[str, Any]:
    return {
        "id": row.id,
        "content_hash": row.content_hash,
        "amount": row.amount,
        "currency": row.currency,
        "merchant": row.merchant,
        "category": row.category,
        "direction": row.direction,
        "raw_text": row.raw_text,
        "sender": row.sender,
        "approved_at": row.approved_at.isoformat(),
        "month": row.month,
        "year": row.year,
    }


def budget_as_dict(row: Budget) -> Dict[str, Any]:
    return {
        "id": row.id,
        "category": row.category,
        "monthly_limit": row.monthly_limit,
        "month": row.month,
        "year": row.year,
    }

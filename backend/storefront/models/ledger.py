from __future__ import annotations

from sqlalchemy import text

from ..extensions import db
from ..time_utils import to_utc_z


TRANSACTION_TYPE_PURCHASE = "Purchase"
TRANSACTION_TYPE_REFUND = "Refund"
TRANSACTION_TYPE_ADJUSTMENT = "Adjustment"

TRANSACTION_TYPES = (
    TRANSACTION_TYPE_PURCHASE,
    TRANSACTION_TYPE_REFUND,
    TRANSACTION_TYPE_ADJUSTMENT,
)

TRANSACTION_STATUS_PENDING = "Pending"
TRANSACTION_STATUS_COMPLETED = "Completed"
TRANSACTION_STATUS_FAILED = "Failed"

TRANSACTION_STATUSES = (
    TRANSACTION_STATUS_PENDING,
    TRANSACTION_STATUS_COMPLETED,
    TRANSACTION_STATUS_FAILED,
)

RETURN_STATUS_PENDING = "Pending"
RETURN_STATUS_APPROVED = "Approved"
RETURN_STATUS_REJECTED = "Rejected"
RETURN_STATUS_COMPLETED = "Completed"

RETURN_STATUSES = (
    RETURN_STATUS_PENDING,
    RETURN_STATUS_APPROVED,
    RETURN_STATUS_REJECTED,
    RETURN_STATUS_COMPLETED,
)

# Non-terminal: at most one per order
RETURN_OPEN_STATUSES = (RETURN_STATUS_PENDING, RETURN_STATUS_APPROVED)

RETURN_REASONS = (
    "DefectiveProduct",
    "NotAsDescribed",
    "Damaged",
    "ChangeOfMind",
    "Other",
)

_PURCHASE_ONLY = text(f"transaction_type = '{TRANSACTION_TYPE_PURCHASE}'")
_OPEN_RETURNS_ONLY = text(
    "status IN (" + ", ".join(f"'{s}'" for s in RETURN_OPEN_STATUSES) + ")"
)


class Transaction(db.Model):
    """
    Monetary ledger row. Append-only: corrections are new Adjustment rows.

    One Purchase per order (partial unique index); refunds and adjustments
    are separate rows against the same order.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index(
            "uq_transactions_order_purchase",
            "order_id",
            unique=True,
            sqlite_where=_PURCHASE_ONLY,
            postgresql_where=_PURCHASE_ONLY,
        ),
        db.Index("ix_transactions_type_date", "transaction_type", "transaction_date"),
        db.Index("ix_transactions_user_date", "user_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=TRANSACTION_STATUS_COMPLETED)
    description = db.Column(db.String(500), nullable=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_type": self.transaction_type,
            "amount_cents": self.amount_cents,
            "transaction_date": to_utc_z(self.transaction_date),
            "status": self.status,
            "description": self.description,
            "order_id": self.order_id,
            "user_id": self.user_id,
        }


class OrderReturn(db.Model):
    """
    Return request for a whole order.

    LIFECYCLE: Pending -> Approved -> Completed, Pending -> Rejected.
    refund_transaction_id is unique: one refund row per return, which is what
    makes completion idempotent.
    """
    __tablename__ = "order_returns"
    __table_args__ = (
        db.Index(
            "uq_order_returns_open_per_order",
            "order_id",
            unique=True,
            sqlite_where=_OPEN_RETURNS_ONLY,
            postgresql_where=_OPEN_RETURNS_ONLY,
        ),
        db.Index("ix_order_returns_status_created", "status", "created_at"),
        db.CheckConstraint(
            "refund_amount_cents IS NULL OR refund_amount_cents > 0",
            name="ck_order_returns_refund_positive",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    return_reason = db.Column(db.String(50), nullable=False)
    return_description = db.Column(db.String(1000), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=RETURN_STATUS_PENDING)
    refund_amount_cents = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    admin_note = db.Column(db.String(500), nullable=True)
    decided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    refund_transaction_id = db.Column(
        db.Integer,
        db.ForeignKey("transactions.id"),
        nullable=True,
        unique=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "return_reason": self.return_reason,
            "return_description": self.return_description,
            "status": self.status,
            "refund_amount_cents": self.refund_amount_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at) if self.updated_at else None,
            "admin_note": self.admin_note,
            "decided_by_user_id": self.decided_by_user_id,
            "refund_transaction_id": self.refund_transaction_id,
        }

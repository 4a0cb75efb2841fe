# models.py
from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import CheckConstraint, Index, UniqueConstraint

db = SQLAlchemy()


def utcnow():
    # NOTE: columns are naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =========================
#   Accounts (authenticated callers)
# =========================
class Account(db.Model):
    """
    One row per account id issued by the identity provider.
    - plan: FREE | PREMIUM (ANONYMOUS never stored here)
    - bonus_balance: lifetime, non-expiring extra allowance; each use past the
      daily limit draws one unit
    - bonus_used_today: units drawn since last_reset_date
    - daily_consumed / last_reset_date: lazily reset on the first read of a new day
    - bonus_granted: signup bonus marker so grantBonus applies once
    """
    __tablename__ = "accounts"

    id = db.Column(db.String(255), primary_key=True)
    email = db.Column(db.String(255), nullable=True, index=True)

    plan = db.Column(db.String(16), nullable=False, default="FREE", index=True)
    bonus_balance = db.Column(db.Integer, nullable=False, default=0)
    bonus_granted = db.Column(db.Boolean, nullable=False, default=False)
    bonus_used_today = db.Column(db.Integer, nullable=False, default=0)

    daily_consumed = db.Column(db.Integer, nullable=False, default=0)
    last_reset_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("daily_consumed >= 0", name="ck_accounts_daily_consumed_nonneg"),
        CheckConstraint("bonus_balance >= 0", name="ck_accounts_bonus_balance_nonneg"),
        CheckConstraint("bonus_used_today >= 0", name="ck_accounts_bonus_used_today_nonneg"),
        Index("idx_accounts_created_at", "created_at"),
    )


# =========================
#   AnonymousUsage (unauthenticated, one row per ip per day)
# =========================
class AnonymousUsage(db.Model):
    __tablename__ = "anonymous_usage"

    id = db.Column(db.Integer, primary_key=True)
    ip_address = db.Column(db.String(64), nullable=False, index=True)
    usage_date = db.Column(db.Date, nullable=False, index=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("ip_address", "usage_date", name="uq_anonymous_ip_date"),
        CheckConstraint("usage_count >= 0", name="ck_anonymous_usage_count_nonneg"),
    )


# =========================
#   Usage Ledger (append-only)
# =========================
class UsageLog(db.Model):
    __tablename__ = "usage_logs"

    id = db.Column(db.BigInteger().with_variant(db.Integer, "sqlite"), primary_key=True)
    # weak back-reference: no FK, the ledger owns nothing
    caller_id = db.Column(db.String(255), nullable=False, index=True)
    caller_kind = db.Column(db.String(16), nullable=False)  # account | anonymous
    tool_type = db.Column(db.String(16), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("idx_usage_logs_caller_created", "caller_id", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "caller_id": self.caller_id,
            "caller_kind": self.caller_kind,
            "tool_type": self.tool_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

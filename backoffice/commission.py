# ═══════════════════════════════════════════════════════════════
# MLM Back-Office — Commission Engine
# Level 1: seller earns subtotal × own rate
# Level 2: direct sponsor earns subtotal × sponsor rate × 50%
# Nothing is paid beyond level 2, however deep the chain.
# ═══════════════════════════════════════════════════════════════
import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .database import User, Sale, DEFAULT_COMMISSION_RATE, COMMISSION_PENDING, COMMISSION_PAID
from .storage import Storage

logger = logging.getLogger(__name__)

CENT            = Decimal("0.01")
OVERRIDE_FACTOR = Decimal("0.5")    # sponsor override = half the sponsor's nominal rate
MAX_LEVEL       = 2


def to_money(value) -> Decimal:
    """Quantise to cents, half-up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def effective_rate(rep: Optional[User]) -> Decimal:
    """Rep's commission rate in percent; unset rates fall back to the default."""
    if rep is None or rep.commission_rate is None:
        return Decimal(DEFAULT_COMMISSION_RATE)
    return Decimal(str(rep.commission_rate))


def level_one_amount(subtotal, rate) -> Decimal:
    return to_money(Decimal(str(subtotal)) * Decimal(str(rate)) / 100)


def level_two_amount(subtotal, sponsor_rate) -> Decimal:
    return to_money(Decimal(str(subtotal)) * Decimal(str(sponsor_rate)) / 100 * OVERRIDE_FACTOR)


def plan_commissions(store: Storage, subtotal, seller: User) -> list:
    """
    Work out who is owed what on a sale, without writing anything.
    Returns a list of dicts: representative_id, amount, percentage, level.
    """
    rate = effective_rate(seller)
    plan = [{
        "representative_id": seller.id,
        "amount":            level_one_amount(subtotal, rate),
        "percentage":        to_money(rate),
        "level":             1,
    }]

    if not seller.upline_id:
        return plan

    sponsor = store.get_user(seller.upline_id)
    if sponsor is None:
        logger.warning(
            f"Sponsor {seller.upline_id} of representative {seller.id} not found — "
            f"level 2 commission skipped"
        )
        return plan

    sponsor_rate = effective_rate(sponsor)
    plan.append({
        "representative_id": sponsor.id,
        "amount":            level_two_amount(subtotal, sponsor_rate),
        "percentage":        to_money(sponsor_rate * OVERRIDE_FACTOR),
        "level":             2,
    })
    return plan


def create_commissions(store: Storage, sale: Sale, seller: User) -> list:
    """Persist the level 1 (and, if a sponsor exists, level 2) commission for a sale."""
    commissions = []
    for entry in plan_commissions(store, sale.subtotal, seller):
        commissions.append(store.create_commission(
            representative_id = entry["representative_id"],
            sale_id           = sale.id,
            amount            = entry["amount"],
            percentage        = entry["percentage"],
            level             = entry["level"],
            status            = COMMISSION_PENDING,
            paid_at           = None,
        ))
    return commissions


def get_commission_history(store: Storage, rep_id: str, limit: Optional[int] = None) -> list:
    """Commissions earned by a rep, as seller or sponsor, newest first."""
    history = store.list_commissions_by_rep(rep_id)
    return history[:limit] if limit else history


def set_commission_status(store: Storage, commission_id: str, status: str) -> dict:
    """Move a commission between pending and paid. Paying stamps paid_at."""
    if status not in (COMMISSION_PENDING, COMMISSION_PAID):
        return {"success": False, "error": f"Invalid commission status: {status}"}

    commission = store.get_commission(commission_id)
    if commission is None:
        return {"success": False, "error": "Commission not found"}

    if status == COMMISSION_PAID:
        paid_at = commission.paid_at or datetime.utcnow()
    else:
        paid_at = None
    store.update_commission(commission_id, status=status, paid_at=paid_at)

    logger.info(f"Commission {commission_id} marked {status}")
    return {"success": True, "commission": commission}

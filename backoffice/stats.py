# ═══════════════════════════════════════════════════════════════
# MLM Back-Office — Dashboard KPIs
# ═══════════════════════════════════════════════════════════════
from decimal import Decimal
from typing import Optional

from .storage import Storage, RECENT_SALES_DAYS


def get_dashboard_stats(store: Storage, representative_id: Optional[str] = None) -> dict:
    """
    Scalar KPIs for the admin dashboard, or for one rep when representative_id is given.
    Active-rep and low-stock counts are always global.
    """
    if representative_id:
        sales       = store.list_sales_by_rep(representative_id)
        commissions = store.list_commissions_by_rep(representative_id)
        customers   = store.list_customers_by_rep(representative_id)
    else:
        sales       = store.list_sales()
        commissions = store.list_commissions()
        customers   = store.list_customers()

    total_sales       = sum((Decimal(str(s.total_amount)) for s in sales), Decimal("0"))
    total_commissions = sum((Decimal(str(c.amount)) for c in commissions), Decimal("0"))

    active_reps = [r for r in store.list_representatives() if r.is_active]
    recent = [
        s for s in store.list_recent_sales(RECENT_SALES_DAYS)
        if not representative_id or s.representative_id == representative_id
    ]

    return {
        "total_sales":            float(total_sales),
        "total_commissions":      float(total_commissions),
        "active_representatives": len(active_reps),
        "active_customers":       len([c for c in customers if c.is_active]),
        "low_stock_products":     len(store.list_low_stock()),
        "recent_sales":           len(recent),
    }

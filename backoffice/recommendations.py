# ═══════════════════════════════════════════════════════════════
# MLM Back-Office — AI Recommendations
# Claude when ANTHROPIC_API_KEY is set, data-driven rules otherwise
# ═══════════════════════════════════════════════════════════════
import json
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Optional

import anthropic

from .config import ANTHROPIC_API_KEY, ANTHROPIC_MODEL
from .database import User, COMMISSION_PENDING
from .stats import get_dashboard_stats
from .storage import Storage

logger = logging.getLogger(__name__)

RECOMMENDATION_TYPES = {"product", "pricing", "sales", "lead"}
MAX_RECOMMENDATIONS  = 5


# ── Rule-based ────────────────────────────────────────────────

def _admin_rules(store: Storage) -> list:
    recs = []

    low_stock = store.list_low_stock()
    if low_stock:
        names = []
        for inv in low_stock[:3]:
            product = store.get_product(inv.product_id)
            names.append(product.name if product else inv.product_id)
        recs.append({
            "type":        "product",
            "title":       "Stock Reorder Suggestion",
            "description": f"{len(low_stock)} product(s) at or below reorder level, including {', '.join(names)}.",
            "confidence":  95,
            "action":      "Restock Now",
        })

    sales = store.list_sales()
    by_rep = defaultdict(Decimal)
    for s in sales:
        by_rep[s.representative_id] += Decimal(str(s.total_amount))
    if by_rep:
        top_id, top_total = max(by_rep.items(), key=lambda kv: kv[1])
        top = store.get_user(top_id)
        recs.append({
            "type":        "sales",
            "title":       "Top Performer",
            "description": f"{top.full_name if top else top_id} leads with ${top_total:,.2f} in sales. "
                           f"Consider pairing them with newer representatives.",
            "confidence":  88,
            "action":      "View Sales Chain",
        })

    by_product = defaultdict(int)
    for s in sales:
        by_product[s.product_id] += s.quantity
    if by_product:
        best_id, units = max(by_product.items(), key=lambda kv: kv[1])
        best = store.get_product(best_id)
        if best:
            recs.append({
                "type":        "pricing",
                "title":       "Review Pricing on Best Seller",
                "description": f"{best.name} has sold {units} unit(s). Demand may support a modest price increase.",
                "confidence":  72,
                "action":      "Review Pricing",
            })
    return recs


def _rep_rules(store: Storage, rep: User) -> list:
    recs = []

    sales = store.list_sales_by_rep(rep.id)
    by_customer = defaultdict(Decimal)
    for s in sales:
        by_customer[s.customer_id] += Decimal(str(s.total_amount))
    if by_customer:
        cust_id, total = max(by_customer.items(), key=lambda kv: kv[1])
        customer = store.get_customer(cust_id)
        if customer:
            recs.append({
                "type":        "lead",
                "title":       "High-Value Customer Follow-Up",
                "description": f"{customer.name} has bought ${total:,.2f} from you. Schedule a follow-up this week.",
                "confidence":  85,
                "action":      "Contact Customer",
            })

    quiet = [c for c in store.list_customers_by_rep(rep.id) if c.is_active and c.id not in by_customer]
    if quiet:
        recs.append({
            "type":        "lead",
            "title":       "Customers Without a Purchase",
            "description": f"{len(quiet)} of your active customers haven't bought yet, e.g. {quiet[0].name}.",
            "confidence":  78,
            "action":      "View Customers",
        })

    pending = [c for c in store.list_commissions_by_rep(rep.id) if c.status == COMMISSION_PENDING]
    if pending:
        owed = sum((Decimal(str(c.amount)) for c in pending), Decimal("0"))
        recs.append({
            "type":        "sales",
            "title":       "Pending Commissions",
            "description": f"You have {len(pending)} pending commission(s) worth ${owed:,.2f}.",
            "confidence":  90,
            "action":      "View Commissions",
        })

    if not store.list_downline(rep.id):
        recs.append({
            "type":        "sales",
            "title":       "Grow Your Downline",
            "description": "You earn an override on every sale your direct recruits make. Sponsor your first recruit.",
            "confidence":  70,
        })
    return recs


# ── Claude ────────────────────────────────────────────────────

def _parse_ai_response(raw: str) -> list:
    raw = raw.strip()
    # Strip markdown code fences if present
    if raw.startswith("```"):
        raw = raw.split("\n", 1)[1] if "\n" in raw else ""
        raw = raw.rsplit("```", 1)[0]
    items = json.loads(raw)
    if isinstance(items, dict):
        items = items.get("recommendations", [])

    recs = []
    for item in items:
        if not isinstance(item, dict) or item.get("type") not in RECOMMENDATION_TYPES:
            continue
        rec = {
            "type":        item["type"],
            "title":       str(item.get("title", "")).strip(),
            "description": str(item.get("description", "")).strip(),
            "confidence":  max(0, min(100, int(item.get("confidence", 50)))),
        }
        if item.get("action"):
            rec["action"] = str(item["action"])
        if rec["title"] and rec["description"]:
            recs.append(rec)
    return recs[:MAX_RECOMMENDATIONS]


def _ask_claude(role: str, snapshot: dict) -> list:
    prompt = f"""You advise a multi-level-marketing back office. The viewer is a {role}.
Here is a snapshot of their numbers (JSON):

{json.dumps(snapshot, default=str)}

Reply with ONLY a JSON array of up to {MAX_RECOMMENDATIONS} recommendations. Each item:
{{"type": "product"|"pricing"|"sales"|"lead", "title": str, "description": str (one or two sentences),
"confidence": integer 0-100, "action": short button label or null}}"""

    client = anthropic.Anthropic(api_key=ANTHROPIC_API_KEY)
    message = client.messages.create(
        model=ANTHROPIC_MODEL,
        max_tokens=1500,
        messages=[{"role": "user", "content": prompt}]
    )
    return _parse_ai_response(message.content[0].text)


def generate_recommendations(store: Storage, role: str, user: Optional[User] = None) -> list:
    """Recommendations for the admin dashboard, or for one representative."""
    if role == "representative" and user is not None:
        rules = _rep_rules(store, user)
        snapshot = get_dashboard_stats(store, user.id)
    else:
        rules = _admin_rules(store)
        snapshot = get_dashboard_stats(store)

    if not ANTHROPIC_API_KEY:
        return rules[:MAX_RECOMMENDATIONS]

    snapshot["rule_based_hints"] = [r["description"] for r in rules]
    try:
        recs = _ask_claude(role, snapshot)
    except anthropic.APIError as e:
        logger.error(f"AI recommendations failed, using rules: {e}")
        return rules[:MAX_RECOMMENDATIONS]
    except (ValueError, KeyError, IndexError) as e:
        logger.warning(f"AI recommendations unparseable, using rules: {e}")
        return rules[:MAX_RECOMMENDATIONS]
    return recs or rules[:MAX_RECOMMENDATIONS]

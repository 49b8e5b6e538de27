# ═══════════════════════════════════════════════════════════════
# MLM Back-Office — Sales Chain (downline tree)
# One tree per root representative, rebuilt from scratch on every call.
# ═══════════════════════════════════════════════════════════════
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Optional

from .database import User, ROLE_REPRESENTATIVE
from .storage import Storage

logger = logging.getLogger(__name__)

MAX_CHAIN_DEPTH = 100


# ── Sponsor validation ────────────────────────────────────────

def validate_sponsor(store: Storage, rep_id: Optional[str], upline_id: Optional[str]) -> Optional[str]:
    """
    Check a sponsor assignment before it is written.
    Returns an error message, or None if the assignment keeps the graph a forest.
    rep_id is None for a representative that doesn't exist yet.
    """
    if not upline_id:
        return None
    if rep_id and upline_id == rep_id:
        return "A representative cannot sponsor themselves"

    sponsor = store.get_user(upline_id)
    if sponsor is None or sponsor.role != ROLE_REPRESENTATIVE:
        return "Sponsor not found"

    if rep_id is None:
        return None

    # Walk up from the proposed sponsor; meeting rep_id means a cycle
    seen = set()
    current = sponsor
    while current is not None and current.upline_id:
        if current.upline_id == rep_id:
            logger.warning(f"Rejected sponsor {upline_id} for {rep_id}: would create a cycle")
            return "Sponsor assignment would create a cycle in the downline"
        if current.id in seen:
            break
        seen.add(current.id)
        current = store.get_user(current.upline_id)
    return None


def count_downline(store: Storage, rep_id: str) -> int:
    return len(store.list_downline(rep_id))


# ── Tree build ────────────────────────────────────────────────

def get_sales_chain(store: Storage) -> list:
    """
    Build the full downline forest.

    Roots are reps with no upline, plus reps whose upline isn't an existing
    representative. No rep appears twice. Subtrees below MAX_CHAIN_DEPTH are
    cut off, not re-rooted; reps caught in a sponsor cycle are unreachable
    from any root and are reported as extra roots.
    """
    reps    = store.list_representatives()
    rep_ids = {r.id for r in reps}

    sales_by_rep = defaultdict(Decimal)
    for sale in store.list_sales():
        sales_by_rep[sale.representative_id] += Decimal(str(sale.total_amount))

    commissions_by_rep = defaultdict(Decimal)
    for comm in store.list_commissions():
        commissions_by_rep[comm.representative_id] += Decimal(str(comm.amount))

    downline = defaultdict(list)
    roots = []
    for rep in reps:
        if rep.upline_id and rep.upline_id in rep_ids:
            downline[rep.upline_id].append(rep)
        else:
            roots.append(rep)

    visited = set()

    def skip_subtree(rep: User) -> int:
        skipped = 0
        stack = list(downline[rep.id])
        while stack:
            child = stack.pop()
            if child.id in visited:
                continue
            visited.add(child.id)
            skipped += 1
            stack.extend(downline[child.id])
        return skipped

    def build_node(rep: User, depth: int) -> dict:
        visited.add(rep.id)
        children = []
        if depth >= MAX_CHAIN_DEPTH:
            skipped = skip_subtree(rep)
            if skipped:
                logger.warning(f"Sales chain truncated at depth {depth} under {rep.id}: {skipped} rep(s) omitted")
        else:
            for child in downline[rep.id]:
                if child.id in visited:
                    logger.warning(f"Sales chain cycle at {child.id} — skipped")
                    continue
                children.append(build_node(child, depth + 1))
        return {
            "id":                rep.id,
            "name":              rep.full_name,
            "role":              rep.role,
            "total_sales":       float(sales_by_rep[rep.id]),
            "total_commissions": float(commissions_by_rep[rep.id]),
            "downline_count":    len(downline[rep.id]),
            "children":          children,
        }

    chain = [build_node(root, 0) for root in roots]

    for rep in reps:
        if rep.id not in visited:
            logger.warning(f"Representative {rep.id} is in a sponsor cycle — reported as a root")
            chain.append(build_node(rep, 0))
    return chain


def iter_chain(nodes: list):
    """Yield every node of a chain, depth first."""
    for node in nodes:
        yield node
        yield from iter_chain(node["children"])

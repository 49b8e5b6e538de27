# ═══════════════════════════════════════════════════════════════
# MLM Back-Office — Demo Data
# admin/admin123, rep1/rep123, rep2/rep123 (rep2 sponsored by rep1)
# ═══════════════════════════════════════════════════════════════
import logging
import random
from datetime import datetime, timedelta

from .commission import set_commission_status
from .database import ROLE_ADMIN, ROLE_REPRESENTATIVE, COMMISSION_PAID
from .sales import record_sale
from .security import hash_password
from .storage import Storage

logger = logging.getLogger(__name__)

DEMO_PRODUCTS = [
    {"name": "Premium Widget", "description": "High-quality widget for all your needs",
     "category": "Electronics", "base_price": "99.99", "tax_rate": "8.00", "sku": "WIDGET-001"},
    {"name": "Deluxe Gadget", "description": "Advanced gadget with multiple features",
     "category": "Electronics", "base_price": "149.99", "tax_rate": "8.00", "sku": "GADGET-001"},
    {"name": "Essential Kit", "description": "Everything you need in one package",
     "category": "Health", "base_price": "79.99", "tax_rate": "0.00", "sku": "KIT-001"},
]

DEMO_CUSTOMERS = [
    # (owner username, name, email, phone, address, discount %)
    ("rep1", "Alice Johnson", "alice@example.com", "+1234567893", "123 Main St, City, State", "5.00"),
    ("rep1", "Bob Williams",  "bob@example.com",   "+1234567894", "456 Oak Ave, City, State", "0.00"),
    ("rep2", "Carol Davis",   "carol@example.com", "+1234567895", "789 Pine St, City, State", "10.00"),
]


def seed_demo_data(store: Storage, sales: int = 10, rng: random.Random = None) -> bool:
    """Populate an empty database. Does nothing (returns False) if any user exists."""
    if store.list_users():
        return False
    rng = rng or random.Random()

    admin_pw = hash_password("admin123")
    rep_pw   = hash_password("rep123")

    store.create_user(
        username="admin", password=admin_pw, email="admin@mlm.com", full_name="Admin User",
        role=ROLE_ADMIN, phone="+1234567890", upline_id=None, commission_rate="0",
    )
    rep1 = store.create_user(
        username="rep1", password=rep_pw, email="rep1@mlm.com", full_name="John Smith",
        role=ROLE_REPRESENTATIVE, phone="+1234567891", upline_id=None, commission_rate="10.00",
    )
    rep2 = store.create_user(
        username="rep2", password=rep_pw, email="rep2@mlm.com", full_name="Sarah Johnson",
        role=ROLE_REPRESENTATIVE, phone="+1234567892", upline_id=rep1.id, commission_rate="10.00",
    )
    reps = {"rep1": rep1, "rep2": rep2}

    products = []
    for fields in DEMO_PRODUCTS:
        product = store.create_product(**fields)
        store.update_inventory(
            store.get_inventory_by_product(product.id).id,
            quantity=rng.randint(20, 119), last_restocked=datetime.utcnow(),
        )
        products.append(product)

    customers = []
    for owner, name, email, phone, address, discount in DEMO_CUSTOMERS:
        customers.append(store.create_customer(
            representative_id=reps[owner].id, name=name, email=email,
            phone=phone, address=address, discount_percentage=discount,
        ))
    store.commit()

    for _ in range(sales):
        customer = rng.choice(customers)
        product  = rng.choice(products)
        result = record_sale(
            store,
            product_id        = product.id,
            customer_id       = customer.id,
            representative_id = customer.representative_id,
            quantity          = rng.randint(1, 5),
            payment_status    = "paid",
            delivery_status   = rng.choice(["pending", "shipped", "delivered"]),
            created_at        = datetime.utcnow() - timedelta(seconds=rng.randint(0, 30 * 24 * 3600)),
        )
        if not result["success"]:
            logger.warning(f"Demo sale skipped: {result['error']}")
            continue
        for comm in result["commissions"]:
            if rng.random() > 0.3:
                set_commission_status(store, comm.id, COMMISSION_PAID)
        store.commit()

    logger.info(f"Seeded demo data: 3 users, {len(products)} products, {len(customers)} customers, {sales} sales")
    return True

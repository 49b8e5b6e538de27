# ═══════════════════════════════════════════════════════════════
# MLM Back-Office — Sale Recording
# sale + stock decrement + commissions commit or roll back together
# ═══════════════════════════════════════════════════════════════
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from .database import (
    Product, Customer, ROLE_REPRESENTATIVE, PAYMENT_STATUSES, DELIVERY_STATUSES,
)
from .commission import to_money, effective_rate, level_one_amount, create_commissions
from .storage import Storage

logger = logging.getLogger(__name__)


def price_sale(product: Product, customer: Optional[Customer], quantity: int, shipping=0) -> dict:
    """
    Derive every amount on a sale from the current product price.
    discount comes off the subtotal, tax is charged on what's left, shipping goes on top.
    """
    unit_price   = to_money(product.base_price)
    subtotal     = to_money(unit_price * quantity)
    discount_pct = Decimal(str(customer.discount_percentage or 0)) if customer else Decimal("0")
    discount     = to_money(subtotal * discount_pct / 100)
    tax_rate     = Decimal(str(product.tax_rate or 0))
    tax          = to_money((subtotal - discount) * tax_rate / 100)
    shipping     = to_money(shipping or 0)
    return {
        "unit_price":   unit_price,
        "subtotal":     subtotal,
        "discount":     discount,
        "tax":          tax,
        "shipping":     shipping,
        "total_amount": to_money(subtotal - discount + tax + shipping),
    }


def record_sale(
    store:             Storage,
    product_id:        str,
    customer_id:       str,
    representative_id: str,
    quantity:          int,
    shipping                 = 0,
    status:            str   = "completed",
    payment_status:    str   = "pending",
    delivery_status:   str   = "pending",
    created_at: Optional[datetime] = None,
) -> dict:
    """
    Record a sale and everything it implies.
    Returns {"success": True, "sale", "commissions", "inventory"} or {"success": False, "error"}.
    """
    if quantity is None or quantity < 1:
        return {"success": False, "error": "Quantity must be at least 1"}
    if payment_status not in PAYMENT_STATUSES:
        return {"success": False, "error": f"Invalid payment status: {payment_status}"}
    if delivery_status not in DELIVERY_STATUSES:
        return {"success": False, "error": f"Invalid delivery status: {delivery_status}"}

    seller = store.get_user(representative_id)
    if seller is None or seller.role != ROLE_REPRESENTATIVE:
        return {"success": False, "error": "Representative not found"}
    product = store.get_product(product_id)
    if product is None:
        return {"success": False, "error": "Product not found"}
    if not product.is_active:
        return {"success": False, "error": "Product is not available for sale"}
    customer = store.get_customer(customer_id)
    if customer is None:
        return {"success": False, "error": "Customer not found"}

    amounts = price_sale(product, customer, quantity, shipping)

    try:
        fields = dict(
            product_id        = product.id,
            customer_id       = customer.id,
            representative_id = seller.id,
            quantity          = quantity,
            commission_amount = level_one_amount(amounts["subtotal"], effective_rate(seller)),
            status            = status,
            payment_status    = payment_status,
            delivery_status   = delivery_status,
            **amounts,
        )
        if created_at is not None:
            fields["created_at"] = created_at
        sale = store.create_sale(**fields)

        inventory   = store.decrement_stock(product.id, quantity)
        commissions = create_commissions(store, sale, seller)

        store.add_to_totals(seller.id, sales=sale.total_amount)
        for comm in commissions:
            store.add_to_totals(comm.representative_id, commissions=comm.amount)

        store.commit()
    except SQLAlchemyError as e:
        store.rollback()
        logger.error(f"Sale for representative {representative_id} rolled back: {e}")
        raise

    logger.info(
        f"Sale {sale.id}: {quantity} × {product.sku} by {seller.username} — "
        f"total ${sale.total_amount}, {len(commissions)} commission(s)"
    )
    return {
        "success":     True,
        "sale":        sale,
        "commissions": commissions,
        "inventory":   inventory,
    }

# ═══════════════════════════════════════════════════════════════
# MLM Back-Office — Storage
# Narrow get/list/create/update/delete contract per entity.
# Commission, sales-chain and KPI code talk to this, never to the ORM.
# ═══════════════════════════════════════════════════════════════
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from .database import (
    User, Product, Inventory, Customer, Sale, Commission,
    ROLE_REPRESENTATIVE, DEFAULT_REORDER_LEVEL,
)

RECENT_SALES_DAYS = 30


class Storage:
    """
    Session-backed entity store.

    Writes are flushed, not committed: the caller owns the transaction and
    calls commit() / rollback() once the whole logical operation is done.
    """

    def __init__(self, db: Session):
        self.db = db

    # ── Transaction ───────────────────────────────────────────
    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

    def _add(self, obj):
        self.db.add(obj)
        self.db.flush()
        return obj

    def _update(self, obj, updates: dict):
        if obj is None:
            return None
        for key, value in updates.items():
            if hasattr(obj, key):
                setattr(obj, key, value)
        self.db.flush()
        return obj

    def _delete(self, obj) -> bool:
        if obj is None:
            return False
        self.db.delete(obj)
        self.db.flush()
        return True

    # ── Users / representatives ───────────────────────────────
    def get_user(self, user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        return self.db.get(User, user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def get_user_by_login(self, login: str) -> Optional[User]:
        return self.db.query(User).filter(
            or_(User.username == login, User.email == login)
        ).first()

    def list_users(self) -> list:
        return self.db.query(User).order_by(User.created_at).all()

    def list_representatives(self) -> list:
        return self.db.query(User).filter(
            User.role == ROLE_REPRESENTATIVE
        ).order_by(User.created_at).all()

    def list_downline(self, user_id: str) -> list:
        """Direct recruits only."""
        return self.db.query(User).filter(
            User.upline_id == user_id,
            User.role == ROLE_REPRESENTATIVE,
        ).order_by(User.created_at).all()

    def create_user(self, **fields) -> User:
        return self._add(User(**fields))

    def update_user(self, user_id: str, **updates) -> Optional[User]:
        return self._update(self.get_user(user_id), updates)

    def delete_user(self, user_id: str) -> bool:
        return self._delete(self.get_user(user_id))

    def add_to_totals(self, user_id: str, sales=0, commissions=0):
        """Bump the running totals in one UPDATE, relative to the stored values."""
        self.db.query(User).filter(User.id == user_id).update(
            {
                User.total_sales:       func.coalesce(User.total_sales, 0) + sales,
                User.total_commissions: func.coalesce(User.total_commissions, 0) + commissions,
            },
            synchronize_session=False,
        )

    # ── Products ──────────────────────────────────────────────
    def get_product(self, product_id: Optional[str]) -> Optional[Product]:
        if not product_id:
            return None
        return self.db.get(Product, product_id)

    def list_products(self) -> list:
        return self.db.query(Product).order_by(Product.created_at).all()

    def create_product(self, **fields) -> Product:
        """Every product starts with an empty inventory row."""
        product = self._add(Product(**fields))
        self.create_inventory(product_id=product.id, quantity=0)
        return product

    def update_product(self, product_id: str, **updates) -> Optional[Product]:
        return self._update(self.get_product(product_id), updates)

    def delete_product(self, product_id: str) -> bool:
        product = self.get_product(product_id)
        if product is None:
            return False
        inventory = self.get_inventory_by_product(product_id)
        if inventory:
            self.db.delete(inventory)
        return self._delete(product)

    # ── Inventory ─────────────────────────────────────────────
    def get_inventory(self, inventory_id: str) -> Optional[Inventory]:
        return self.db.get(Inventory, inventory_id)

    def get_inventory_by_product(self, product_id: str) -> Optional[Inventory]:
        return self.db.query(Inventory).filter(Inventory.product_id == product_id).first()

    def list_inventory(self) -> list:
        return self.db.query(Inventory).order_by(Inventory.updated_at).all()

    def list_low_stock(self) -> list:
        return self.db.query(Inventory).filter(
            Inventory.quantity <= Inventory.reorder_level
        ).all()

    def create_inventory(self, product_id: str, quantity: int = 0,
                         reorder_level: int = DEFAULT_REORDER_LEVEL,
                         last_restocked: Optional[datetime] = None) -> Inventory:
        return self._add(Inventory(
            product_id     = product_id,
            quantity       = quantity,
            reorder_level  = reorder_level,
            last_restocked = last_restocked,
        ))

    def update_inventory(self, inventory_id: str, **updates) -> Optional[Inventory]:
        inventory = self.get_inventory(inventory_id)
        if inventory is not None:
            updates["updated_at"] = datetime.utcnow()
        return self._update(inventory, updates)

    def decrement_stock(self, product_id: str, quantity: int) -> Optional[Inventory]:
        """
        Take `quantity` units out of stock, floored at zero.
        Done as one conditional UPDATE so concurrent sales can't go negative.
        """
        inventory = self.get_inventory_by_product(product_id)
        if inventory is None:
            return None
        self.db.query(Inventory).filter(Inventory.id == inventory.id).update(
            {
                Inventory.quantity: case(
                    (Inventory.quantity > quantity, Inventory.quantity - quantity),
                    else_=0,
                ),
                Inventory.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
        self.db.refresh(inventory)
        return inventory

    # ── Customers ─────────────────────────────────────────────
    def get_customer(self, customer_id: Optional[str]) -> Optional[Customer]:
        if not customer_id:
            return None
        return self.db.get(Customer, customer_id)

    def list_customers(self) -> list:
        return self.db.query(Customer).order_by(Customer.created_at).all()

    def list_customers_by_rep(self, rep_id: str) -> list:
        return self.db.query(Customer).filter(
            Customer.representative_id == rep_id
        ).order_by(Customer.created_at).all()

    def create_customer(self, **fields) -> Customer:
        return self._add(Customer(**fields))

    def update_customer(self, customer_id: str, **updates) -> Optional[Customer]:
        return self._update(self.get_customer(customer_id), updates)

    def delete_customer(self, customer_id: str) -> bool:
        return self._delete(self.get_customer(customer_id))

    # ── Sales ─────────────────────────────────────────────────
    def get_sale(self, sale_id: str) -> Optional[Sale]:
        return self.db.get(Sale, sale_id)

    def list_sales(self) -> list:
        return self.db.query(Sale).order_by(Sale.created_at).all()

    def list_sales_by_rep(self, rep_id: str) -> list:
        return self.db.query(Sale).filter(
            Sale.representative_id == rep_id
        ).order_by(Sale.created_at.desc()).all()

    def list_recent_sales(self, days: int = RECENT_SALES_DAYS) -> list:
        cutoff = datetime.utcnow() - timedelta(days=days)
        return self.db.query(Sale).filter(
            Sale.created_at >= cutoff
        ).order_by(Sale.created_at.desc()).all()

    def create_sale(self, **fields) -> Sale:
        return self._add(Sale(**fields))

    # ── Commissions ───────────────────────────────────────────
    def get_commission(self, commission_id: str) -> Optional[Commission]:
        return self.db.get(Commission, commission_id)

    def list_commissions(self) -> list:
        return self.db.query(Commission).order_by(Commission.created_at).all()

    def list_commissions_by_rep(self, rep_id: str) -> list:
        return self.db.query(Commission).filter(
            Commission.representative_id == rep_id
        ).order_by(Commission.created_at.desc()).all()

    def list_commissions_by_sale(self, sale_id: str) -> list:
        return self.db.query(Commission).filter(
            Commission.sale_id == sale_id
        ).order_by(Commission.level).all()

    def create_commission(self, **fields) -> Commission:
        return self._add(Commission(**fields))

    def update_commission(self, commission_id: str, **updates) -> Optional[Commission]:
        return self._update(self.get_commission(commission_id), updates)

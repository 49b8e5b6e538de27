import uuid
from sqlalchemy import create_engine, Column, Integer, String, Boolean, DateTime, Text, Numeric
from sqlalchemy.orm import sessionmaker, declarative_base
from datetime import datetime

from .config import DATABASE_URL

# Fixed-point money: cents precision, never floats
Money   = Numeric(10, 2)
Percent = Numeric(5, 2)


def _make_engine(url: str):
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, pool_size=20, max_overflow=40)


engine = _make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


# ── Roles & statuses ──────────────────────────────────────────
ROLE_ADMIN          = "admin"
ROLE_REPRESENTATIVE = "representative"

COMMISSION_PENDING = "pending"
COMMISSION_PAID    = "paid"

PAYMENT_STATUSES  = ("pending", "paid", "refunded")
DELIVERY_STATUSES = ("pending", "shipped", "delivered")

DEFAULT_COMMISSION_RATE = "10.00"
DEFAULT_REORDER_LEVEL   = 10


class User(Base):
    """Admins and representatives. Representatives form the sponsor forest via upline_id."""
    __tablename__ = "users"
    id                = Column(String, primary_key=True, default=new_id)
    username          = Column(String, unique=True, index=True, nullable=False)
    password          = Column(String, nullable=False)                 # bcrypt hash
    email             = Column(String, unique=True, index=True, nullable=False)
    full_name         = Column(String, nullable=False)
    role              = Column(String, nullable=False, default=ROLE_REPRESENTATIVE)
    phone             = Column(String, nullable=True)
    upline_id         = Column(String, index=True, nullable=True)      # sponsor; null = root
    commission_rate   = Column(Percent, default=DEFAULT_COMMISSION_RATE)
    total_sales       = Column(Money, default=0)                       # informational only
    total_commissions = Column(Money, default=0)                       # informational only
    is_active         = Column(Boolean, default=True, nullable=False)
    created_at        = Column(DateTime, default=datetime.utcnow, nullable=False)


class Product(Base):
    __tablename__ = "products"
    id          = Column(String, primary_key=True, default=new_id)
    name        = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category    = Column(String, nullable=False)
    base_price  = Column(Money, nullable=False)
    tax_rate    = Column(Percent, default=0)
    sku         = Column(String, unique=True, index=True, nullable=False)
    image_url   = Column(String, nullable=True)
    is_active   = Column(Boolean, default=True, nullable=False)
    created_at  = Column(DateTime, default=datetime.utcnow, nullable=False)


class Inventory(Base):
    __tablename__ = "inventory"
    id             = Column(String, primary_key=True, default=new_id)
    product_id     = Column(String, index=True, nullable=False)
    quantity       = Column(Integer, default=0, nullable=False)
    reorder_level  = Column(Integer, default=DEFAULT_REORDER_LEVEL, nullable=False)
    last_restocked = Column(DateTime, nullable=True)
    updated_at     = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Customer(Base):
    __tablename__ = "customers"
    id                  = Column(String, primary_key=True, default=new_id)
    representative_id   = Column(String, index=True, nullable=False)
    name                = Column(String, nullable=False)
    email               = Column(String, nullable=False)
    phone               = Column(String, nullable=True)
    address             = Column(Text, nullable=True)
    custom_pricing      = Column(Text, nullable=True)
    discount_percentage = Column(Percent, default=0)
    is_active           = Column(Boolean, default=True, nullable=False)
    created_at          = Column(DateTime, default=datetime.utcnow, nullable=False)


class Sale(Base):
    """Amounts are fixed at creation time and never re-derived."""
    __tablename__ = "sales"
    id                = Column(String, primary_key=True, default=new_id)
    product_id        = Column(String, index=True, nullable=False)
    customer_id       = Column(String, index=True, nullable=False)
    representative_id = Column(String, index=True, nullable=False)   # seller
    quantity          = Column(Integer, nullable=False)
    unit_price        = Column(Money, nullable=False)
    subtotal          = Column(Money, nullable=False)
    discount          = Column(Money, default=0, nullable=False)
    tax               = Column(Money, default=0, nullable=False)
    shipping          = Column(Money, default=0, nullable=False)
    total_amount      = Column(Money, nullable=False)
    commission_amount = Column(Money, nullable=False)                # level-1 payout
    status            = Column(String, default="completed", nullable=False)
    payment_status    = Column(String, default="pending", nullable=False)
    delivery_status   = Column(String, default="pending", nullable=False)
    created_at        = Column(DateTime, default=datetime.utcnow, index=True, nullable=False)


class Commission(Base):
    __tablename__ = "commissions"
    id                = Column(String, primary_key=True, default=new_id)
    representative_id = Column(String, index=True, nullable=False)   # earner
    sale_id           = Column(String, index=True, nullable=False)
    amount            = Column(Money, nullable=False)
    percentage        = Column(Percent, nullable=False)
    level             = Column(Integer, nullable=False)              # 1 = seller, 2 = sponsor
    status            = Column(String, default=COMMISSION_PENDING, nullable=False)
    paid_at           = Column(DateTime, nullable=True)
    created_at        = Column(DateTime, default=datetime.utcnow, nullable=False)


def init_db(bind=None):
    """Create any tables that don't exist yet."""
    Base.metadata.create_all(bind=bind or engine)

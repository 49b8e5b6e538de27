import logging
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, Request, Depends, HTTPException, BackgroundTasks, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from .config import (
    CORS_ORIGINS, LOG_FILE, LOG_LEVEL, LOGIN_RATE_LIMIT, RATE_LIMIT_ENABLED,
    SEED_DEMO_DATA, LOCKOUT_MINUTES,
)
from .database import SessionLocal, User, ROLE_ADMIN, ROLE_REPRESENTATIVE, init_db
from .storage import Storage
from .schemas import (
    LoginRequest, RepresentativeCreate, RepresentativeUpdate,
    ProductCreate, ProductUpdate, InventoryUpdate,
    CustomerCreate, CustomerUpdate, SaleCreate, CommissionUpdate,
    DashboardStats, SalesChainNode, AIRecommendation,
)
from .security import (
    hash_password, verify_password, create_access_token, decode_access_token,
    is_locked_out, record_failed_attempt, clear_failed_attempts, sanitize,
)
from .sales import record_sale
from .commission import get_commission_history, set_commission_status
from .sales_chain import get_sales_chain, validate_sponsor, count_downline
from .stats import get_dashboard_stats
from .recommendations import generate_recommendations
from .events import publisher
from .seed import seed_demo_data

logging.basicConfig(
    filename=LOG_FILE or None, level=LOG_LEVEL,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(title="MLM Back-Office")


@app.on_event("startup")
def startup_event():
    init_db()
    if SEED_DEMO_DATA:
        db = SessionLocal()
        try:
            if seed_demo_data(Storage(db)):
                logger.info("Demo data seeded")
        finally:
            db.close()


limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"]
)

bearer = HTTPBearer(auto_error=False)


# ── DB / Auth helpers ─────────────────────────────────────────
def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()


def get_store(db: Session = Depends(get_db)) -> Storage:
    return Storage(db)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    store: Storage = Depends(get_store),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=401, detail="No token provided")
    user_id = decode_access_token(credentials.credentials)
    user = store.get_user(user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


def is_admin(user): return user is not None and user.role == ROLE_ADMIN


def require_admin(request: Request, user: User = Depends(get_current_user)) -> User:
    if not is_admin(user):
        logger.warning(f"Unauthorised admin access — user {user.username}, path {request.url.path}")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


# ── Serialisers ───────────────────────────────────────────────
def to_dict(obj, exclude=()) -> Optional[dict]:
    if obj is None:
        return None
    return {c.name: getattr(obj, c.name) for c in obj.__table__.columns if c.name not in exclude}


def user_out(user) -> Optional[dict]:
    return to_dict(user, exclude=("password",))


def clean_text(data: dict, *fields) -> dict:
    for f in fields:
        if f in data and isinstance(data[f], str):
            data[f] = sanitize(data[f])
    return data


def fail(result: dict, status_code: int = 400):
    raise HTTPException(status_code=status_code, detail=result["error"])


# ═══════════════════════════════════════════════════════════════
#  AUTH
# ═══════════════════════════════════════════════════════════════

@app.post("/api/auth/login")
@limiter.limit(LOGIN_RATE_LIMIT)
def login(request: Request, body: LoginRequest, store: Storage = Depends(get_store)):
    username = sanitize(body.username)
    if is_locked_out(username):
        return JSONResponse({
            "detail": f"Account locked — too many failed attempts. Try again in {LOCKOUT_MINUTES} minutes."
        }, status_code=429)

    user = store.get_user_by_login(username)
    if not user or not verify_password(body.password, user.password):
        record_failed_attempt(username)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is inactive")

    clear_failed_attempts(username)
    logger.info(f"Login: {user.username}")
    return {"user": user_out(user), "token": create_access_token(user.id)}


@app.get("/api/auth/me")
def me(user: User = Depends(get_current_user)):
    return user_out(user)


# ═══════════════════════════════════════════════════════════════
#  REPRESENTATIVES (admin)
# ═══════════════════════════════════════════════════════════════

@app.get("/api/representatives")
def list_representatives(admin: User = Depends(require_admin), store: Storage = Depends(get_store)):
    return [user_out(r) for r in store.list_representatives()]


@app.post("/api/representatives")
def create_representative(
    body: RepresentativeCreate, background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin), store: Storage = Depends(get_store),
):
    data = clean_text(body.model_dump(), "full_name", "phone", "email")
    if store.get_user_by_username(data["username"]) or store.get_user_by_email(data["email"]):
        raise HTTPException(status_code=409, detail="Username or email already registered")

    error = validate_sponsor(store, None, data.get("upline_id"))
    if error:
        raise HTTPException(status_code=400, detail=error)

    data["password"] = hash_password(data["password"])
    rep = store.create_user(**data)
    store.commit()
    logger.info(f"Representative created: {rep.username} (sponsor {rep.upline_id})")

    payload = user_out(rep)
    background_tasks.add_task(publisher.publish, "representative_created", payload)
    return payload


@app.patch("/api/representatives/{rep_id}")
def update_representative(
    rep_id: str, body: RepresentativeUpdate, background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin), store: Storage = Depends(get_store),
):
    rep = store.get_user(rep_id)
    if not rep or rep.role != ROLE_REPRESENTATIVE:
        raise HTTPException(status_code=404, detail="Representative not found")

    updates = clean_text(body.model_dump(exclude_unset=True), "full_name", "phone", "email")
    if "upline_id" in updates:
        error = validate_sponsor(store, rep_id, updates["upline_id"])
        if error:
            raise HTTPException(status_code=400, detail=error)
    if updates.get("email") and updates["email"] != rep.email:
        if store.get_user_by_email(updates["email"]):
            raise HTTPException(status_code=409, detail="Email already registered")
    if updates.get("password"):
        updates["password"] = hash_password(updates["password"])
    else:
        updates.pop("password", None)

    store.update_user(rep_id, **updates)
    store.commit()

    payload = user_out(rep)
    background_tasks.add_task(publisher.publish, "representative_updated", payload)
    return payload


@app.delete("/api/representatives/{rep_id}")
def delete_representative(
    rep_id: str, background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin), store: Storage = Depends(get_store),
):
    rep = store.get_user(rep_id)
    if not rep or rep.role != ROLE_REPRESENTATIVE:
        raise HTTPException(status_code=404, detail="Representative not found")
    if count_downline(store, rep_id):
        raise HTTPException(status_code=409, detail="Representative still sponsors a downline — reassign it first")

    store.delete_user(rep_id)
    store.commit()
    logger.info(f"Representative deleted: {rep_id}")

    background_tasks.add_task(publisher.publish, "representative_deleted", {"id": rep_id})
    return {"success": True}


# ═══════════════════════════════════════════════════════════════
#  PRODUCTS
# ═══════════════════════════════════════════════════════════════

@app.get("/api/products")
def list_products(user: User = Depends(get_current_user), store: Storage = Depends(get_store)):
    return [to_dict(p) for p in store.list_products()]


@app.post("/api/products")
def create_product(
    body: ProductCreate, background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin), store: Storage = Depends(get_store),
):
    data = clean_text(body.model_dump(), "name", "description", "category", "sku")
    if any(p.sku == data["sku"] for p in store.list_products()):
        raise HTTPException(status_code=409, detail="SKU already exists")

    product = store.create_product(**data)
    store.commit()

    payload = to_dict(product)
    background_tasks.add_task(publisher.publish, "product_created", payload)
    return payload


@app.patch("/api/products/{product_id}")
def update_product(
    product_id: str, body: ProductUpdate, background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin), store: Storage = Depends(get_store),
):
    product = store.get_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    updates = clean_text(body.model_dump(exclude_unset=True), "name", "description", "category", "sku")
    if updates.get("sku") and any(p.sku == updates["sku"] and p.id != product_id for p in store.list_products()):
        raise HTTPException(status_code=409, detail="SKU already exists")

    store.update_product(product_id, **updates)
    store.commit()

    payload = to_dict(product)
    background_tasks.add_task(publisher.publish, "product_updated", payload)
    return payload


@app.delete("/api/products/{product_id}")
def delete_product(
    product_id: str, background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin), store: Storage = Depends(get_store),
):
    if not store.delete_product(product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    store.commit()

    background_tasks.add_task(publisher.publish, "product_deleted", {"id": product_id})
    return {"success": True}


# ═══════════════════════════════════════════════════════════════
#  INVENTORY
# ═══════════════════════════════════════════════════════════════

def inventory_out(store: Storage, inv) -> dict:
    data = to_dict(inv)
    data["product"] = to_dict(store.get_product(inv.product_id))
    return data


@app.get("/api/inventory")
def list_inventory(user: User = Depends(get_current_user), store: Storage = Depends(get_store)):
    return [inventory_out(store, inv) for inv in store.list_inventory()]


@app.get("/api/inventory/low-stock")
def list_low_stock(user: User = Depends(get_current_user), store: Storage = Depends(get_store)):
    return [inventory_out(store, inv) for inv in store.list_low_stock()]


@app.patch("/api/inventory/{inventory_id}")
def update_inventory(
    inventory_id: str, body: InventoryUpdate, background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin), store: Storage = Depends(get_store),
):
    inv = store.get_inventory(inventory_id)
    if not inv:
        raise HTTPException(status_code=404, detail="Inventory not found")

    updates = body.model_dump(exclude_unset=True, exclude_none=True)
    if updates.get("quantity") is not None and updates["quantity"] > inv.quantity:
        updates["last_restocked"] = datetime.utcnow()

    store.update_inventory(inventory_id, **updates)
    store.commit()

    payload = inventory_out(store, inv)
    background_tasks.add_task(publisher.publish, "inventory_updated", payload)
    return payload


# ═══════════════════════════════════════════════════════════════
#  CUSTOMERS
# ═══════════════════════════════════════════════════════════════

CUSTOMER_TEXT = ("name", "email", "phone", "address", "custom_pricing")


def _customer_or_404(store: Storage, customer_id: str, user: User):
    customer = store.get_customer(customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    if not is_admin(user) and customer.representative_id != user.id:
        raise HTTPException(status_code=403, detail="Not your customer")
    return customer


def _check_owner(store: Storage, rep_id: Optional[str]):
    owner = store.get_user(rep_id)
    if not owner or owner.role != ROLE_REPRESENTATIVE:
        raise HTTPException(status_code=400, detail="Representative not found")


@app.get("/api/customers")
def list_customers(user: User = Depends(get_current_user), store: Storage = Depends(get_store)):
    customers = store.list_customers() if is_admin(user) else store.list_customers_by_rep(user.id)
    reps = {r.id: r for r in store.list_representatives()}
    return [
        {**to_dict(c), "representative": user_out(reps.get(c.representative_id))}
        for c in customers
    ]


@app.get("/api/rep/customers")
def list_my_customers(user: User = Depends(get_current_user), store: Storage = Depends(get_store)):
    return [to_dict(c) for c in store.list_customers_by_rep(user.id)]


@app.post("/api/customers")
def create_customer(
    body: CustomerCreate, background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user), store: Storage = Depends(get_store),
):
    data = clean_text(body.model_dump(), *CUSTOMER_TEXT)
    if not is_admin(user):
        data["representative_id"] = user.id
    _check_owner(store, data["representative_id"])

    customer = store.create_customer(**data)
    store.commit()

    payload = to_dict(customer)
    background_tasks.add_task(publisher.publish, "customer_created", payload)
    return payload


@app.patch("/api/customers/{customer_id}")
def update_customer(
    customer_id: str, body: CustomerUpdate, background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user), store: Storage = Depends(get_store),
):
    customer = _customer_or_404(store, customer_id, user)

    updates = clean_text(body.model_dump(exclude_unset=True), *CUSTOMER_TEXT)
    if "representative_id" in updates:
        if not is_admin(user):
            updates.pop("representative_id")
        else:
            _check_owner(store, updates["representative_id"])

    store.update_customer(customer_id, **updates)
    store.commit()

    payload = to_dict(customer)
    background_tasks.add_task(publisher.publish, "customer_updated", payload)
    return payload


@app.delete("/api/customers/{customer_id}")
def delete_customer(
    customer_id: str, background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user), store: Storage = Depends(get_store),
):
    _customer_or_404(store, customer_id, user)
    store.delete_customer(customer_id)
    store.commit()

    background_tasks.add_task(publisher.publish, "customer_deleted", {"id": customer_id})
    return {"success": True}


# ═══════════════════════════════════════════════════════════════
#  SALES & COMMISSIONS
# ═══════════════════════════════════════════════════════════════

def sales_out(store: Storage, sales: list) -> list:
    products  = {p.id: p for p in store.list_products()}
    customers = {c.id: c for c in store.list_customers()}
    return [
        {
            **to_dict(s),
            "product":  to_dict(products.get(s.product_id)),
            "customer": to_dict(customers.get(s.customer_id)),
        }
        for s in sales
    ]


@app.get("/api/sales/recent")
def recent_sales(user: User = Depends(get_current_user), store: Storage = Depends(get_store)):
    sales = store.list_recent_sales()
    if not is_admin(user):
        sales = [s for s in sales if s.representative_id == user.id]
    return sales_out(store, sales)


@app.get("/api/rep/sales")
def my_sales(user: User = Depends(get_current_user), store: Storage = Depends(get_store)):
    return sales_out(store, store.list_sales_by_rep(user.id))


@app.post("/api/sales")
def create_sale(
    body: SaleCreate, background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user), store: Storage = Depends(get_store),
):
    rep_id = body.representative_id if is_admin(user) else user.id
    if not rep_id:
        raise HTTPException(status_code=400, detail="representative_id is required")
    if not is_admin(user):
        customer = store.get_customer(body.customer_id)
        if customer and customer.representative_id != user.id:
            raise HTTPException(status_code=403, detail="Not your customer")

    result = record_sale(
        store,
        product_id        = body.product_id,
        customer_id       = body.customer_id,
        representative_id = rep_id,
        quantity          = body.quantity,
        shipping          = body.shipping,
        status            = sanitize(body.status),
        payment_status    = body.payment_status,
        delivery_status   = body.delivery_status,
    )
    if not result["success"]:
        fail(result)

    sale = to_dict(result["sale"])
    commissions = [to_dict(c) for c in result["commissions"]]
    background_tasks.add_task(publisher.publish, "sale_created", sale)
    for comm in commissions:
        background_tasks.add_task(publisher.publish, "commission_created", comm)
    if result["inventory"] is not None:
        background_tasks.add_task(publisher.publish, "inventory_updated", to_dict(result["inventory"]))
    return {**sale, "commissions": commissions}


@app.get("/api/rep/commissions")
def my_commissions(user: User = Depends(get_current_user), store: Storage = Depends(get_store)):
    return [to_dict(c) for c in get_commission_history(store, user.id)]


@app.get("/api/commissions")
def list_commissions(admin: User = Depends(require_admin), store: Storage = Depends(get_store)):
    return [to_dict(c) for c in store.list_commissions()]


@app.patch("/api/commissions/{commission_id}")
def update_commission(
    commission_id: str, body: CommissionUpdate, background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin), store: Storage = Depends(get_store),
):
    if not store.get_commission(commission_id):
        raise HTTPException(status_code=404, detail="Commission not found")
    result = set_commission_status(store, commission_id, body.status)
    if not result["success"]:
        fail(result)
    store.commit()

    payload = to_dict(result["commission"])
    background_tasks.add_task(publisher.publish, "commission_updated", payload)
    return payload


# ═══════════════════════════════════════════════════════════════
#  DASHBOARDS
# ═══════════════════════════════════════════════════════════════

@app.get("/api/admin/stats", response_model=DashboardStats)
def admin_stats(admin: User = Depends(require_admin), store: Storage = Depends(get_store)):
    return get_dashboard_stats(store)


@app.get("/api/rep/stats", response_model=DashboardStats)
def rep_stats(user: User = Depends(get_current_user), store: Storage = Depends(get_store)):
    return get_dashboard_stats(store, user.id)


@app.get("/api/sales-chain", response_model=List[SalesChainNode])
def sales_chain(admin: User = Depends(require_admin), store: Storage = Depends(get_store)):
    return get_sales_chain(store)


@app.get("/api/ai/recommendations", response_model=List[AIRecommendation])
def admin_recommendations(admin: User = Depends(require_admin), store: Storage = Depends(get_store)):
    return generate_recommendations(store, "admin")


@app.get("/api/ai/recommendations/rep", response_model=List[AIRecommendation])
def rep_recommendations(user: User = Depends(get_current_user), store: Storage = Depends(get_store)):
    return generate_recommendations(store, "representative", user)


# ═══════════════════════════════════════════════════════════════
#  LIVE UPDATES
# ═══════════════════════════════════════════════════════════════

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await publisher.connect(websocket)
    try:
        while True:
            message = await websocket.receive_text()
            logger.debug(f"WebSocket received: {message}")
    except WebSocketDisconnect:
        publisher.disconnect(websocket)

import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr, Field, ValidationError, field_validator
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

import config
from auth import (
    create_access_token, ensure_customer_profile, get_current_customer, get_current_user,
    get_optional_user, hash_password, require_admin, require_db, verify_password,
)
from catalog import Catalog, CatalogCache, seed_catalog
from checkout import (
    CheckoutValidationError, EmptyCartError, OrderPersistenceError, SubmissionInProgress, validate_checkout,
)
from database import create_document, get_db, get_documents, now_utc, serialize_doc, to_object_id
from filters import FilterCriteria, SortKey, filter_products, price_bounds
from orders import InvalidTransition, attach_customers, get_order, list_orders, update_status
from schemas import Color, OrderStatus, User as UserSchema
from sessions import SessionRegistry, ShopperSession

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.sessions = SessionRegistry()
app.state.catalog = CatalogCache()


# Dependencies

def get_session(request: Request, x_session_id: Optional[str] = Header(default=None)) -> ShopperSession:
    if not x_session_id:
        raise HTTPException(status_code=400, detail="Missing X-Session-Id header")
    session = request.app.state.sessions.get(x_session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found or expired")
    return session


def get_catalog(request: Request, db: Optional[Database] = Depends(get_db)) -> Catalog:
    try:
        return request.app.state.catalog.get(db)
    except RuntimeError:
        raise HTTPException(status_code=503, detail="Catalog not available")


def invalidate_catalog(request: Request) -> None:
    request.app.state.catalog.invalidate()


# Routes
@app.get("/")
def read_root():
    return {"message": "Storefront API"}


@app.get("/test")
def health_check(db: Optional[Database] = Depends(get_db)):
    response = {
        "backend": "running",
        "database_url_set": bool(config.DATABASE_URL),
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    if db is None:
        return response
    try:
        response["collections"] = db.list_collection_names()
    except PyMongoError as e:
        logger.warning("Health check could not reach the database: %s", e)
        response["connection_status"] = "Error"
        return response
    response["database_name"] = db.name
    response["connection_status"] = "Connected"
    return response


# Auth
class RegisterInput(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LoginInput(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Dict[str, Any]


@app.post("/auth/register", response_model=TokenResponse)
def register(payload: RegisterInput, db: Database = Depends(require_db)):
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    user_model = UserSchema(email=email, password_hash=hash_password(payload.password))
    try:
        user_id = create_document(db, "user", user_model)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already registered")
    db["customer"].update_one(
        {"_id": to_object_id(user_id)},
        {"$set": {"first_name": payload.first_name, "last_name": payload.last_name, "email": email,
                  "is_admin": False, "created_at": now_utc(), "updated_at": now_utc()}},
        upsert=True,
    )
    token = create_access_token({"sub": user_id})
    return TokenResponse(access_token=token, user={"id": user_id, "email": email})


@app.post("/auth/login", response_model=TokenResponse)
def login(payload: LoginInput, db: Database = Depends(require_db)):
    user = db["user"].find_one({"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(status_code=400, detail="Invalid email or password")
    user = serialize_doc(user)
    user.pop("password_hash", None)
    ensure_customer_profile(db, user)
    token = create_access_token({"sub": user["id"]})
    return TokenResponse(access_token=token, user=user)


@app.get("/auth/me")
def me(current_user: dict = Depends(get_current_user), customer: dict = Depends(get_current_customer)):
    return {**current_user, "profile": customer}


# Products
@app.get("/api/products")
def list_products(
    q: Optional[str] = None,
    min_pct: float = Query(0, ge=0, le=100),
    max_pct: float = Query(100, ge=0, le=100),
    sizes: List[str] = Query(default=[]),
    colors: List[str] = Query(default=[]),
    sort: SortKey = "newest",
    category: Optional[str] = None,
    catalog: Catalog = Depends(get_catalog),
):
    try:
        criteria = FilterCriteria(search=q, price_range=(min_pct, max_pct), sizes=sizes, colors=colors, sort=sort)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    products = catalog.products
    items = filter_products(products, criteria)
    if category:
        items = [p for p in items if p.category == category]
    low, high = price_bounds(products)
    return {
        "items": [p.model_dump() for p in items],
        "count": len(items),
        "price_bounds": {"min": low, "max": high},
    }


@app.get("/api/products/{product_id}")
def get_product(product_id: str, catalog: Catalog = Depends(get_catalog)):
    product = catalog.get(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product.model_dump()


@app.get("/api/home")
def home(catalog: Catalog = Depends(get_catalog)):
    return {"featured": [p.model_dump() for p in catalog.featured(limit=8)]}


# Session & cart
@app.post("/api/session")
def create_session(request: Request):
    session = request.app.state.sessions.create()
    return {"session_id": session.id}


@app.get("/api/notifications")
def drain_notifications(session: ShopperSession = Depends(get_session)):
    return [n.model_dump() for n in session.notifications.drain()]


def cart_view(session: ShopperSession) -> Dict[str, Any]:
    cart = session.cart
    items = [
        {
            "product_id": line.product.id,
            "name": line.product.name,
            "image": line.product.images[0] if line.product.images else config.PLACEHOLDER_IMAGE,
            "size": line.size,
            "color": line.color.model_dump(),
            "quantity": line.quantity,
            "unit_price": line.unit_price,
            "line_total": round(line.line_total, 2),
        }
        for line in cart.lines
    ]
    return {
        "items": items,
        "item_count": cart.get_item_count(),
        "totals": session.checkout.summary().model_dump(),
        "is_submitting": session.checkout.is_submitting,
    }


class CartItemIn(BaseModel):
    product_id: str
    quantity: int = 1
    size: Optional[str] = None
    color: Optional[str] = None


class QuantityIn(BaseModel):
    quantity: int


@app.get("/api/cart")
def get_cart(session: ShopperSession = Depends(get_session)):
    return cart_view(session)


@app.post("/api/cart")
def add_to_cart(item: CartItemIn, session: ShopperSession = Depends(get_session), catalog: Catalog = Depends(get_catalog)):
    product = catalog.get(item.product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")

    # default to the first offered size and color, as the product page does
    size = item.size or (product.sizes[0] if product.sizes else "")
    if product.sizes and size not in product.sizes:
        raise HTTPException(status_code=400, detail=f"Size {size} is not available for {product.name}")

    if product.colors:
        color = next((c for c in product.colors if c.name == (item.color or product.colors[0].name)), None)
        if color is None:
            raise HTTPException(status_code=400, detail=f"Color {item.color} is not available for {product.name}")
    else:
        color = Color(name=item.color or "Default")

    session.cart.add_item(product, item.quantity, size, color)
    return cart_view(session)


@app.patch("/api/cart/{product_id}")
def update_cart_quantity(product_id: str, payload: QuantityIn, session: ShopperSession = Depends(get_session)):
    if not session.cart.update_quantity(product_id, payload.quantity):
        raise HTTPException(status_code=404, detail="Product not in cart")
    return cart_view(session)


@app.delete("/api/cart/{product_id}")
def remove_from_cart(product_id: str, session: ShopperSession = Depends(get_session)):
    if not session.cart.remove_item(product_id):
        raise HTTPException(status_code=404, detail="Product not in cart")
    return cart_view(session)


@app.delete("/api/cart")
def clear_cart(session: ShopperSession = Depends(get_session)):
    session.cart.clear()
    return cart_view(session)


# Checkout & orders
@app.get("/api/checkout/summary")
def checkout_summary(session: ShopperSession = Depends(get_session)):
    return {**session.checkout.summary().model_dump(), "is_submitting": session.checkout.is_submitting}


@app.post("/api/checkout")
def checkout(
    payload: Dict[str, Any] = Body(...),
    session: ShopperSession = Depends(get_session),
    current_user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(require_db),
):
    form, errors = validate_checkout(payload)
    if form is None:
        raise HTTPException(status_code=422, detail={"errors": [e.model_dump() for e in errors]})
    customer_id = current_user["id"] if current_user else None
    try:
        confirmation = session.checkout.submit_order(db, form, customer_id)
    except CheckoutValidationError as e:
        raise HTTPException(status_code=422, detail={"errors": [err.model_dump() for err in e.errors]})
    except EmptyCartError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SubmissionInProgress as e:
        raise HTTPException(status_code=409, detail=str(e))
    except OrderPersistenceError:
        raise HTTPException(status_code=503, detail="We couldn't place your order. Please try again.")
    return {**confirmation.model_dump(), "redirect": "/order-confirmation"}


CONFIRMATION_FIELDS = ("id", "order_number", "status", "total_amount", "payment_method", "created_at")
CONFIRMATION_ITEM_FIELDS = ("product_id", "size", "color", "quantity", "price", "product")


@app.get("/api/orders/{order_id}")
def order_confirmation(order_id: str, db: Database = Depends(require_db), catalog: Catalog = Depends(get_catalog)):
    # public by id, so no address, contact or customer details
    order = get_order(db, order_id, catalog)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    view = {k: order.get(k) for k in CONFIRMATION_FIELDS}
    view["items"] = [{k: item.get(k) for k in CONFIRMATION_ITEM_FIELDS} for item in order["items"]]
    return view


# Account
class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


@app.get("/api/account/profile")
def get_profile(customer: dict = Depends(get_current_customer)):
    return customer


@app.put("/api/account/profile")
def update_profile(data: ProfileUpdate, customer: dict = Depends(get_current_customer), db: Database = Depends(require_db)):
    update_dict = data.model_dump(exclude_unset=True)
    if not update_dict:
        raise HTTPException(status_code=400, detail="No fields to update")
    update_dict["updated_at"] = now_utc()
    db["customer"].update_one({"_id": to_object_id(customer["id"])}, {"$set": update_dict})
    return serialize_doc(db["customer"].find_one({"_id": to_object_id(customer["id"])}))


@app.get("/api/account/orders")
def account_orders(customer: dict = Depends(get_current_customer), db: Database = Depends(require_db),
                   catalog: Catalog = Depends(get_catalog)):
    return list_orders(db, customer_id=customer["id"], catalog=catalog)


# Admin: products
class ProductForm(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: float = Field(..., ge=0.01)
    stock: int = Field(0, ge=0)
    featured: bool = False
    category: Optional[str] = None
    images: List[str] = []
    colors: List[Color] = []
    sizes: List[str] = []
    tags: List[str] = []

    @field_validator("description", "category")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() or None if isinstance(v, str) else v


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0.01)
    stock: Optional[int] = Field(None, ge=0)
    featured: Optional[bool] = None
    category: Optional[str] = None
    images: Optional[List[str]] = None
    colors: Optional[List[Color]] = None
    sizes: Optional[List[str]] = None
    tags: Optional[List[str]] = None

    @field_validator("description", "category")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() or None if isinstance(v, str) else v

    # only description and category may be cleared with null
    @field_validator("name", "price", "stock", "featured", "images", "colors", "sizes", "tags", mode="before")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("may not be null")
        return v


@app.get("/api/admin/products")
def admin_list_products(admin: dict = Depends(require_admin), db: Database = Depends(require_db)):
    return [serialize_doc(d) for d in get_documents(db, "product", sort=[("created_at", -1)])]


@app.post("/api/admin/products", status_code=201)
def admin_create_product(data: ProductForm, request: Request, admin: dict = Depends(require_admin),
                         db: Database = Depends(require_db)):
    product_id = create_document(db, "product", data)
    invalidate_catalog(request)
    logger.info("Admin %s created product %s", admin["id"], product_id)
    return serialize_doc(db["product"].find_one({"_id": to_object_id(product_id)}))


@app.put("/api/admin/products/{product_id}")
def admin_update_product(product_id: str, data: ProductUpdate, request: Request,
                         admin: dict = Depends(require_admin), db: Database = Depends(require_db)):
    obj_id = to_object_id(product_id)
    if obj_id is None:
        raise HTTPException(status_code=404, detail="Product not found")
    update_dict = data.model_dump(exclude_unset=True)
    if not update_dict:
        raise HTTPException(status_code=400, detail="No fields to update")
    update_dict["updated_at"] = now_utc()
    res = db["product"].update_one({"_id": obj_id}, {"$set": update_dict})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    invalidate_catalog(request)
    return serialize_doc(db["product"].find_one({"_id": obj_id}))


@app.delete("/api/admin/products/{product_id}")
def admin_delete_product(product_id: str, request: Request, admin: dict = Depends(require_admin),
                         db: Database = Depends(require_db)):
    obj_id = to_object_id(product_id)
    if obj_id is None:
        raise HTTPException(status_code=404, detail="Product not found")
    res = db["product"].delete_one({"_id": obj_id})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    db["product_image"].delete_many({"product_id": product_id})
    db["product_variant"].delete_many({"product_id": product_id})
    invalidate_catalog(request)
    logger.info("Admin %s deleted product %s", admin["id"], product_id)
    return {"ok": True}


@app.post("/api/admin/seed")
def admin_seed(request: Request, admin: dict = Depends(require_admin), db: Database = Depends(require_db)):
    inserted = seed_catalog(db)
    if inserted:
        invalidate_catalog(request)
    return {"ok": True, "inserted": inserted}


# Admin: orders
class StatusUpdate(BaseModel):
    status: OrderStatus


@app.get("/api/admin/orders")
def admin_list_orders(admin: dict = Depends(require_admin), db: Database = Depends(require_db),
                      catalog: Catalog = Depends(get_catalog)):
    return attach_customers(db, list_orders(db, catalog=catalog))


@app.get("/api/admin/orders/{order_id}")
def admin_get_order(order_id: str, admin: dict = Depends(require_admin), db: Database = Depends(require_db),
                    catalog: Catalog = Depends(get_catalog)):
    order = get_order(db, order_id, catalog)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return attach_customers(db, [order])[0]


@app.patch("/api/admin/orders/{order_id}/status")
def admin_update_order_status(order_id: str, payload: StatusUpdate, admin: dict = Depends(require_admin),
                              db: Database = Depends(require_db), catalog: Catalog = Depends(get_catalog)):
    try:
        order = update_status(db, order_id, payload.status, catalog)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


# Admin: users
class AdminFlag(BaseModel):
    is_admin: bool


@app.get("/api/admin/users")
def admin_list_users(admin: dict = Depends(require_admin), db: Database = Depends(require_db)):
    customers = [serialize_doc(c) for c in get_documents(db, "customer", sort=[("created_at", -1)])]
    for c in customers:
        c["email"] = c.get("email") or "No email available"
    return customers


@app.patch("/api/admin/users/{user_id}/admin")
def admin_toggle_admin(user_id: str, payload: AdminFlag, admin: dict = Depends(require_admin),
                       db: Database = Depends(require_db)):
    obj_id = to_object_id(user_id)
    if obj_id is None:
        raise HTTPException(status_code=404, detail="User not found")
    res = db["customer"].update_one({"_id": obj_id}, {"$set": {"is_admin": payload.is_admin, "updated_at": now_utc()}})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("Admin %s %s admin status for %s", admin["id"], "granted" if payload.is_admin else "revoked", user_id)
    return serialize_doc(db["customer"].find_one({"_id": obj_id}))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)

import logging
import os
import sys
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

import database
from accounts import UserService, UserStore
from cart import CartService, cart_view
from catalog import ProductStore
from errors import (
    ConflictError,
    EmptyCartError,
    InsufficientStockError,
    InvalidInputError,
    NotAuthenticatedError,
    NotFoundError,
    StorageError,
    StorefrontError,
)
from orders import OrderService, OrderStore, transactions_enabled
from schemas import (
    AddToCartPayload,
    CartView,
    CheckoutPayload,
    CheckoutResult,
    LoginPayload,
    Order,
    Product,
    ProductIn,
    RegisterPayload,
    SessionStatus,
    UpdateCartPayload,
)
from sessions import SESSION_COOKIE, Session, SessionStore

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    NotFoundError: 404,
    InsufficientStockError: 400,
    EmptyCartError: 400,
    InvalidInputError: 400,
    ConflictError: 409,
    NotAuthenticatedError: 401,
    StorageError: 500,
}


def setup_logging():
    """Configure the root logger from LOG_LEVEL."""
    root = logging.getLogger()
    root.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - [%(levelname)-7s] - %(message)s"))
        root.addHandler(handler)


@dataclass
class Services:
    catalog: ProductStore
    carts: CartService
    orders: OrderService
    users: UserService

    @classmethod
    def build(cls, db, use_transactions: bool = False) -> "Services":
        catalog = ProductStore(db)
        return cls(
            catalog=catalog,
            carts=CartService(catalog),
            orders=OrderService(catalog, OrderStore(db, catalog, use_transactions=use_transactions)),
            users=UserService(UserStore(db)),
        )

# -----------------
# Dependencies
# -----------------

def get_services(request: Request) -> Services:
    services = request.app.state.services
    if services is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return services


def get_session(request: Request, response: Response) -> Session:
    sessions: SessionStore = request.app.state.sessions
    session_id = request.cookies.get(SESSION_COOKIE)
    session = sessions.get(session_id) if session_id else None
    if session is None:
        session = sessions.create()
        response.set_cookie(SESSION_COOKIE, session.id, httponly=True, samesite="lax")
    else:
        sessions.put(session)
    return session


def require_user(session: Session = Depends(get_session)) -> str:
    if not session.logged_in:
        raise NotAuthenticatedError("Please log in to view your orders.")
    return session.user_id


router = APIRouter()


@router.get("/")
def root():
    return {"name": "Storefront API", "status": "ok"}


@router.get("/test")
def test_database(request: Request):
    db = request.app.state.db
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    if db is None:
        return response
    response["database"] = "✅ Available"
    response["database_name"] = getattr(db, "name", "✅ Connected")
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["connection_status"] = "Connected"
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response

# -----------------
# Catalog
# -----------------
@router.get("/api/products", response_model=List[Product])
def list_products(search: Optional[str] = None, min_price: Optional[Decimal] = None,
                  max_price: Optional[Decimal] = None, services: Services = Depends(get_services)):
    if search:
        return services.catalog.search(search)
    if min_price is not None and max_price is not None:
        return services.catalog.by_price_range(min_price, max_price)
    return services.catalog.all()


@router.get("/api/products/{product_id}", response_model=Product)
def get_product(product_id: str, services: Services = Depends(get_services)):
    product = services.catalog.get(product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


@router.post("/api/products", response_model=Product, status_code=201)
def create_product(payload: ProductIn, services: Services = Depends(get_services)):
    return services.catalog.create(payload)


@router.put("/api/products/{product_id}", response_model=Product)
def update_product(product_id: str, payload: ProductIn, services: Services = Depends(get_services)):
    if not services.catalog.update(product_id, payload):
        raise NotFoundError("Product", product_id)
    return services.catalog.get(product_id)


@router.delete("/api/products/{product_id}", status_code=204)
def delete_product(product_id: str, services: Services = Depends(get_services)):
    if not services.catalog.delete(product_id):
        raise NotFoundError("Product", product_id)
    return Response(status_code=204)

# -----------------
# Cart
# -----------------
@router.get("/api/cart", response_model=CartView)
def get_cart(session: Session = Depends(get_session)):
    return cart_view(session.cart)


@router.post("/api/cart", response_model=CartView)
def add_to_cart(payload: AddToCartPayload, session: Session = Depends(get_session),
                services: Services = Depends(get_services)):
    services.carts.add(session.cart, payload.product_id, payload.quantity)
    return cart_view(session.cart)


@router.put("/api/cart", response_model=CartView)
def update_cart_item(payload: UpdateCartPayload, session: Session = Depends(get_session),
                     services: Services = Depends(get_services)):
    services.carts.set_quantity(session.cart, payload.product_id, payload.quantity)
    return cart_view(session.cart)


@router.delete("/api/cart/{product_id}", response_model=CartView)
def remove_cart_item(product_id: str, session: Session = Depends(get_session),
                     services: Services = Depends(get_services)):
    if not services.carts.remove(session.cart, product_id):
        raise NotFoundError("Cart item", product_id)
    return cart_view(session.cart)


@router.delete("/api/cart")
def clear_cart(session: Session = Depends(get_session), services: Services = Depends(get_services)):
    services.carts.clear(session.cart)
    return {"message": "Cart cleared successfully!"}

# -----------------
# Checkout / Orders
# -----------------
@router.post("/api/checkout", response_model=CheckoutResult)
def checkout(payload: Optional[CheckoutPayload] = None, session: Session = Depends(get_session),
             services: Services = Depends(get_services)):
    address = payload.delivery_address if payload else None
    order = services.orders.checkout(session.cart, session.user_id, address)
    return CheckoutResult(order_id=order.id, total=order.total, order=order)


@router.get("/api/user/orders", response_model=List[Order])
def list_user_orders(user_id: str = Depends(require_user), services: Services = Depends(get_services)):
    return services.orders.list_orders(user_id)


@router.get("/api/user/searchorders", response_model=List[Order])
def search_user_orders(search_term: Optional[str] = None, user_id: str = Depends(require_user),
                       services: Services = Depends(get_services)):
    return services.orders.search_orders(user_id, search_term)

# -----------------
# Accounts
# -----------------
def _login_response(session: Session, message: str):
    return {"success": True, "message": message, "user": session.user_email, "user_id": session.user_id}


@router.post("/api/user/register")
def register(payload: RegisterPayload, request: Request, session: Session = Depends(get_session),
             services: Services = Depends(get_services)):
    user = services.users.register(payload.email, payload.password, payload.first_name, payload.last_name)
    session.user_id, session.user_email = user.id, user.email
    request.app.state.sessions.put(session)
    return _login_response(session, "Registration successful")


@router.post("/api/user/login")
def login(payload: LoginPayload, request: Request, session: Session = Depends(get_session),
          services: Services = Depends(get_services)):
    user = services.users.login(payload.email, payload.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid email or password.")
    session.user_id, session.user_email = user.id, user.email
    request.app.state.sessions.put(session)
    return _login_response(session, "Login successful")


@router.post("/api/user/logout")
def logout(request: Request, response: Response):
    session_id = request.cookies.get(SESSION_COOKIE)
    if session_id:
        request.app.state.sessions.expire(session_id)
    response.delete_cookie(SESSION_COOKIE)
    return {"success": True, "message": "Logged out successfully"}


@router.get("/api/user/status", response_model=SessionStatus)
def status(request: Request):
    session_id = request.cookies.get(SESSION_COOKIE)
    session = request.app.state.sessions.get(session_id) if session_id else None
    if session is None or not session.logged_in:
        return SessionStatus(logged_in=False)
    return SessionStatus(logged_in=True, user_email=session.user_email, user_id=session.user_id)


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if status_code >= 500:
        logger.error("Request %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


def create_app(db=None, sessions: Optional[SessionStore] = None, use_transactions: Optional[bool] = None) -> FastAPI:
    """
    Build the API around `db` (defaults to the configured Mongo database).
    Services are constructed once here and shared by every request.
    """
    if db is None:
        db = database.db
    if use_transactions is None:
        use_transactions = transactions_enabled()

    app = FastAPI(title="Storefront API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StorefrontError, storefront_error_handler)

    app.state.db = db
    app.state.sessions = sessions if sessions is not None else SessionStore()
    app.state.services = None
    if db is not None:
        try:
            database.ensure_indexes(db)
        except PyMongoError as e:
            logger.warning("Could not create indexes: %s", e)
        app.state.services = Services.build(db, use_transactions=use_transactions)
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, data endpoints are disabled")

    app.include_router(router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    setup_logging()
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)

import logging
import logging.config
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from auth import (
    ROLE_USER, TOKEN_COOKIE, authenticate, current_user, current_user_email, hash_password, issue_token,
)
from cart import CartService, CartSummary, compute_total, line_count, unit_count
from catalog import ProductQuery, catalog_stats
from database import database_status
from errors import NotFoundError, StorefrontError
from owners import router as owners_router
from schemas import (
    AuthResponse, LoginRequest, Messages, ProfileUpdate, QuantityUpdate, SignupRequest, User,
)
from stores import Stores, get_stores

logging.config.dictConfig(config.LOGGING)
logger = logging.getLogger(__name__)

app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(owners_router)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "messages": Messages(error=[exc.message]).model_dump()},
    )


# Helpers

def serialize_cart(summary: CartSummary) -> dict:
    return {
        "items": [
            {"product": product.public(), "quantity": line.quantity}
            for line, product in summary.lines()
        ],
        "bill": float(summary.total),
        "lineCount": summary.line_count,
        "unitCount": summary.unit_count,
        "cartCount": summary.line_count,
        "messages": summary.messages.model_dump(),
    }


def serialize_user(user: User) -> dict:
    return user.model_dump(exclude={"password", "cart"})


def cart_service(stores: Stores = Depends(get_stores)) -> CartService:
    return CartService(stores.users, stores.catalog)


@app.get("/")
def read_root():
    return {"message": "Storefront API running"}


@app.get("/test")
def test_database():
    return database_status()


# Auth endpoints
@app.post("/users/register", response_model=AuthResponse, status_code=201)
def register(payload: SignupRequest, response: Response, stores: Stores = Depends(get_stores)):
    if stores.users.exists(payload.email):
        raise HTTPException(status_code=400, detail="You already have an account, please login.")

    user = stores.users.create(User(
        email=payload.email,
        password=hash_password(payload.password),
        fullname=payload.fullname,
    ))
    logger.info("Registered user %s", user.email)
    return issue_token(response, user, ROLE_USER)


@app.post("/users/login", response_model=AuthResponse)
def login(payload: LoginRequest, response: Response, stores: Stores = Depends(get_stores)):
    user = authenticate(stores.users, payload.email, payload.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Email or Password incorrect")
    return issue_token(response, user, ROLE_USER)


@app.get("/users/logout", dependencies=[Depends(current_user_email)])
def logout(response: Response):
    response.delete_cookie(TOKEN_COOKIE)
    return {"message": "Logged out"}


# Shop
@app.get("/shop")
def shop(
    search: Optional[str] = None,
    category: Optional[str] = None,
    priceRange: Optional[str] = None,
    minPrice: Optional[str] = None,
    maxPrice: Optional[str] = None,
    onSale: Optional[str] = None,
    sortby: Optional[str] = None,
    email: str = Depends(current_user_email),
    stores: Stores = Depends(get_stores),
    carts: CartService = Depends(cart_service),
):
    summary = carts.load(email)
    query = ProductQuery.from_params(
        search=search, category=category, priceRange=priceRange,
        minPrice=minPrice, maxPrice=maxPrice, onSale=onSale, sortby=sortby,
    )
    products = stores.catalog.find(query)
    current_filters = {
        "search": search, "category": category, "priceRange": priceRange, "minPrice": minPrice,
        "maxPrice": maxPrice, "onSale": onSale, "sortby": sortby,
    }
    return {
        "products": [p.public() for p in products],
        "stats": catalog_stats(stores.catalog.list_all()),
        "currentFilters": {k: v for k, v in current_filters.items() if v is not None},
        "totalResults": len(products),
        "cartCount": summary.line_count,
        "messages": summary.messages.model_dump(),
    }


@app.get("/products/{product_id}/image")
def product_image(product_id: str, stores: Stores = Depends(get_stores)):
    product = stores.catalog.find_by_id(product_id, with_image=True)
    if product is None or not product.image:
        raise NotFoundError("Image not found")
    return Response(content=product.image, media_type=product.image_type or "application/octet-stream")


# Cart
@app.get("/cart")
def get_cart(email: str = Depends(current_user_email), carts: CartService = Depends(cart_service)):
    return serialize_cart(carts.load(email))


@app.post("/cart/items/{product_id}")
def add_to_cart(product_id: str, email: str = Depends(current_user_email), carts: CartService = Depends(cart_service)):
    return serialize_cart(carts.add(email, product_id))


@app.put("/cart/items/{product_id}")
def update_cart_item(
    product_id: str,
    payload: QuantityUpdate,
    email: str = Depends(current_user_email),
    carts: CartService = Depends(cart_service),
):
    return serialize_cart(carts.set_quantity(email, product_id, payload.quantity))


@app.delete("/cart/items/{product_id}")
def remove_from_cart(product_id: str, email: str = Depends(current_user_email), carts: CartService = Depends(cart_service)):
    return serialize_cart(carts.remove(email, product_id))


@app.delete("/cart")
def clear_cart(email: str = Depends(current_user_email), carts: CartService = Depends(cart_service)):
    return serialize_cart(carts.clear(email))


# Account
@app.get("/account")
def account(email: str = Depends(current_user_email), carts: CartService = Depends(cart_service)):
    summary = carts.load(email)
    user = summary.user
    order_stats = {
        "totalOrders": len(user.orders),
        "totalSpent": round(sum(order.totalAmount for order in user.orders), 2),
        "cartItems": line_count(user.cart),
        "cartUnits": unit_count(user.cart),
        "cartValue": float(compute_total(user.cart, summary.products)),
    }
    return {
        "user": serialize_user(user),
        "cartCount": summary.line_count,
        "orderStats": order_stats,
        "messages": summary.messages.model_dump(),
    }


@app.put("/account")
def update_profile(payload: ProfileUpdate, user: User = Depends(current_user), stores: Stores = Depends(get_stores)):
    user.fullname = payload.fullname or user.fullname
    user.contact = payload.contact or user.contact
    stores.users.save(user)
    return {
        "user": serialize_user(user),
        "messages": Messages(success=["Profile updated successfully"]).model_dump(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)

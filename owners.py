"""
Owner routes: owner accounts and the product management panel.
"""

import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile

import config
from auth import ROLE_OWNER, authenticate, current_owner, hash_password, issue_token
from database import canonical_id
from errors import NotFoundError, ValidationError
from schemas import AuthResponse, LoginRequest, Messages, Owner, OwnerSignupRequest, Product, ProductUpdate
from stores import Stores, get_stores

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/owners", tags=["owners"])


def _parse_float(value: Optional[str], name: str, default: Optional[float] = None) -> float:
    if value is None or not value.strip():
        if default is None:
            raise ValidationError(f"{name} is required")
        return default
    try:
        number = float(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number")
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be a number")
    return number


@router.post("/create", status_code=201)
def bootstrap_owner(payload: OwnerSignupRequest, response: Response, stores: Stores = Depends(get_stores)):
    """Create the first owner. Only available in development, and only once."""
    if not config.DEVELOPMENT:
        raise HTTPException(status_code=404, detail="Not Found")
    if stores.owners.count() > 0:
        raise HTTPException(status_code=403, detail="You don't have permission to create a new owner.")
    owner = stores.owners.create(Owner(
        email=payload.email,
        password=hash_password(payload.password),
        fullname=payload.fullname,
        gstin=payload.gstin,
    ))
    logger.info("Bootstrapped owner %s", owner.email)
    return issue_token(response, owner, ROLE_OWNER)


@router.post("/signup", response_model=AuthResponse, status_code=201)
def owner_signup(payload: OwnerSignupRequest, response: Response, stores: Stores = Depends(get_stores)):
    if stores.owners.exists(payload.email):
        raise HTTPException(status_code=400, detail="Owner account already exists, please login.")
    owner = stores.owners.create(Owner(
        email=payload.email,
        password=hash_password(payload.password),
        fullname=payload.fullname,
        gstin=payload.gstin,
    ))
    return issue_token(response, owner, ROLE_OWNER)


@router.post("/login", response_model=AuthResponse)
def owner_login(payload: LoginRequest, response: Response, stores: Stores = Depends(get_stores)):
    owner = authenticate(stores.owners, payload.email, payload.password)
    if owner is None:
        raise HTTPException(status_code=401, detail="Email or Password incorrect")
    return issue_token(response, owner, ROLE_OWNER)


@router.get("/admin")
def admin_dashboard(owner: Owner = Depends(current_owner), stores: Stores = Depends(get_stores)):
    products = stores.catalog.list_all()
    users = stores.users.list_all()
    orders = [order for user in users for order in user.orders]
    return {
        "products": [p.public() for p in products],
        "totalProducts": len(products),
        "totalOrders": len(orders),
        "totalRevenue": round(sum(order.totalAmount for order in orders), 2),
        "totalCustomers": len(users),
    }


@router.post("/products", status_code=201)
def create_product(
    name: str = Form(...),
    price: str = Form(...),
    discount: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    quantity: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    bgcolor: Optional[str] = Form(None),
    panelcolor: Optional[str] = Form(None),
    textcolor: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    owner: Owner = Depends(current_owner),
    stores: Stores = Depends(get_stores),
):
    if image is None or not image.filename:
        raise ValidationError("Please upload a product image")

    price_value = _parse_float(price, "Price")
    discount_value = _parse_float(discount, "Discount", default=0)
    if price_value < 0:
        raise ValidationError("Price must not be negative")
    if not 0 <= discount_value <= 100:
        raise ValidationError("Discount must be between 0 and 100")
    try:
        stock = max(int(quantity), 0) if quantity and quantity.strip() else 0
    except ValueError:
        raise ValidationError("Quantity must be a whole number")

    product = stores.catalog.create(Product(
        name=name,
        price=price_value,
        discount=discount_value,
        category=category or "general",
        quantity=stock,
        description=description or "",
        bgcolor=bgcolor,
        panelcolor=panelcolor,
        textcolor=textcolor,
        image=image.file.read(),
        image_type=image.content_type,
    ))
    owner.products.append(product.id)
    stores.owners.save(owner)
    logger.info("Owner %s created product %s", owner.email, product.id)
    return {
        "product": product.public(),
        "messages": Messages(success=[f'Product "{name}" created successfully!']).model_dump(),
    }


@router.get("/products/{product_id}")
def get_product(product_id: str, owner: Owner = Depends(current_owner), stores: Stores = Depends(get_stores)):
    product = stores.catalog.find_by_id(product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product.public()


@router.put("/products/{product_id}")
def update_product(
    product_id: str,
    payload: ProductUpdate,
    owner: Owner = Depends(current_owner),
    stores: Stores = Depends(get_stores),
):
    fields = payload.model_dump(exclude_none=True)
    # blank colours keep the current value
    for colour in ("bgcolor", "panelcolor", "textcolor"):
        if fields.get(colour) == "":
            del fields[colour]
    if not fields:
        raise ValidationError("Nothing to update")

    product = stores.catalog.update(product_id, fields)
    if product is None:
        raise NotFoundError("Product not found")
    return {
        "product": product.public(),
        "messages": Messages(success=[f'Product "{product.name}" updated successfully!']).model_dump(),
    }


@router.delete("/products/{product_id}")
def delete_product(product_id: str, owner: Owner = Depends(current_owner), stores: Stores = Depends(get_stores)):
    product_id = canonical_id(product_id)
    if not stores.catalog.delete(product_id):
        raise NotFoundError("Product not found")
    if product_id in owner.products:
        owner.products.remove(product_id)
        stores.owners.save(owner)
    # carts still referencing the product are purged on their next load
    return {"success": True, "messages": Messages(success=["Product deleted successfully"]).model_dump()}

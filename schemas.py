"""
Database Schemas for the Storefront

Each Pydantic model represents a collection in MongoDB. The collection name is the
lowercase of the class name (e.g., User -> "user"). Documents keep their Mongo
`_id`; the models expose it as the string `id`.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional

from bson import ObjectId
from pydantic import BaseModel, EmailStr, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CartLine(BaseModel):
    """
    One entry of a user's embedded cart array.
    `product` may be None for corrupt stored lines; the cart operator purges those.
    """
    product: Optional[str] = Field(None, description="Referenced product _id as string")
    quantity: int = Field(1, description="Units of the product, at least 1")

    @field_validator("product", mode="before")
    @classmethod
    def _stringify_reference(cls, value):
        if isinstance(value, ObjectId):
            return str(value)
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("quantity", mode="before")
    @classmethod
    def _default_quantity(cls, value):
        # stored lines without a usable quantity count as a single unit
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 1:
            return 1
        return int(value)


class Order(BaseModel):
    """
    Order snapshot embedded in the user record.
    Written by checkout, which lives outside this service.
    """
    items: List[dict] = Field(default_factory=list)
    totalAmount: float = Field(0, ge=0, description="Order total")
    status: str = Field("placed", description="Order status")
    created_at: datetime = Field(default_factory=utcnow)


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    id: Optional[str] = None
    email: EmailStr = Field(..., description="Email address, unique")
    password: str = Field(..., description="bcrypt password hash")
    fullname: str = Field(..., description="Full name")
    contact: Optional[str] = Field(None, description="Phone number")
    picture: Optional[str] = Field(None, description="Avatar URL")
    cart: List[CartLine] = Field(default_factory=list)
    orders: List[Order] = Field(default_factory=list)


class Owner(BaseModel):
    """
    Owners collection schema
    Collection name: "owner"
    """
    id: Optional[str] = None
    email: EmailStr = Field(..., description="Email address, unique")
    password: str = Field(..., description="bcrypt password hash")
    fullname: str = Field(..., description="Full name")
    gstin: Optional[str] = Field(None, description="Tax registration number")
    picture: Optional[str] = None
    products: List[str] = Field(default_factory=list)


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    id: Optional[str] = None
    name: str = Field(..., min_length=1, description="Product name")
    price: float = Field(..., ge=0, description="Price before discount")
    discount: float = Field(0, ge=0, le=100, description="Discount percent, 0 for none")
    category: str = Field("general", description="Product category")
    quantity: int = Field(0, ge=0, description="Units in stock")
    description: str = ""
    bgcolor: Optional[str] = None
    panelcolor: Optional[str] = None
    textcolor: Optional[str] = None
    image: Optional[bytes] = Field(None, description="Raw image payload")
    image_type: Optional[str] = Field(None, description="MIME type of the image")
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def sale_price(self) -> float:
        return round(self.price * (1 - self.discount / 100), 2)

    def public(self) -> dict:
        """Client view: no raw image bytes, a URL instead."""
        data = self.model_dump(exclude={"image"})
        data["sale_price"] = self.sale_price
        data["image_url"] = f"/products/{self.id}/image" if self.image_type else None
        return data


# Request / response bodies

class SignupRequest(BaseModel):
    fullname: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class OwnerSignupRequest(SignupRequest):
    gstin: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    id: str
    fullname: str
    email: EmailStr
    token: str


class Messages(BaseModel):
    """Per-request user-visible notices."""
    success: List[str] = Field(default_factory=list)
    error: List[str] = Field(default_factory=list)


class QuantityUpdate(BaseModel):
    # parsed by the cart operator so fractional input gets a readable message
    quantity: Any


class ProfileUpdate(BaseModel):
    fullname: Optional[str] = None
    contact: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = Field(None, ge=0, le=100)
    bgcolor: Optional[str] = None
    panelcolor: Optional[str] = None
    textcolor: Optional[str] = None

"""
Database Schemas

MongoDB collection schemas for the storefront, defined as Pydantic models.
Each persisted model maps to a collection named after it in snake case:
- Product -> "product"
- ProductImage -> "product_image"
- ProductVariant -> "product_variant"
- Order -> "order", OrderItem -> "order_item"
- Customer -> "customer" (shares its id with the "user" login record)
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

OrderStatus = Literal["pending", "processing", "shipped", "completed", "cancelled"]
PaymentMethod = Literal["cod", "credit_card"]


class User(BaseModel):
    email: EmailStr = Field(..., description="Login email, stored lowercased")
    password_hash: str = Field(..., description="BCrypt hashed password")


class Customer(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    is_admin: bool = Field(False, description="Grants access to the admin back-office")


class Color(BaseModel):
    name: str
    hex: str = "#000000"


class Product(BaseModel):
    id: str
    name: str
    description: str = ""
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    category: Optional[str] = None
    featured: bool = False
    images: List[str] = Field(default_factory=list)
    colors: List[Color] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    @field_validator("sizes")
    @classmethod
    def unique_sizes(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))

    @field_validator("colors")
    @classmethod
    def unique_color_names(cls, v: List[Color]) -> List[Color]:
        seen = {}
        for color in v:
            seen.setdefault(color.name, color)
        return list(seen.values())


class ProductImage(BaseModel):
    product_id: str
    url: str
    position: int = 0


class ProductVariant(BaseModel):
    product_id: str
    size: str
    color: str
    color_hex: Optional[str] = None
    stock: int = Field(0, ge=0)


class Order(BaseModel):
    customer_id: Optional[str] = None
    order_number: str
    status: OrderStatus = "pending"
    total_amount: float = Field(..., ge=0)
    shipping_address: str
    shipping_address_line2: Optional[str] = None
    shipping_city: str
    shipping_state: str
    shipping_postal_code: str
    shipping_country: str
    payment_method: PaymentMethod
    contact_email: EmailStr


class OrderItem(BaseModel):
    order_id: str
    product_id: str
    variant_id: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at purchase time")

"""
Database Schemas

Storefront models.
Product and Order correspond to the "products" and "orders" MongoDB
collections; the cart models describe the client-held cart cookie and its
reconciled view.
"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import List, Optional

CATEGORIES = ["Ring", "Necklace", "Earring", "Bracelet"]

COUNTRIES = [
    "United Kingdom",
    "United States",
    "Canada",
    "Australia",
    "France",
    "Germany",
    "Italy",
    "Spain",
    "Japan",
]


class Review(BaseModel):
    name: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)


class Product(BaseModel):
    name: str = Field(..., description="Product name")
    description: str = Field("", description="Product description")
    price: float = Field(..., ge=0, description="Price in GBP")
    quantity: int = Field(0, ge=0, description="Units in stock")
    category: str = Field("Ring", description="Category, e.g. 'Ring', 'Necklace'")
    images: List[str] = Field(default_factory=list, description="Public image URLs, first is the cover")
    reviews: List[Review] = Field(default_factory=list)
    featured: bool = Field(False, description="Shown on the home page")


# ----- Cart -----

class CartEntry(BaseModel):
    """One line of the client-held cart. Display fields are denormalized copies."""
    model_config = ConfigDict(extra="ignore")

    id: str
    quantity: int = Field(..., ge=1)
    name: Optional[str] = None
    price: Optional[float] = None
    image: Optional[str] = None


class ReconciledCartItem(BaseModel):
    id: str
    name: str
    description: str = ""
    price: float
    quantity: int = Field(..., ge=1, description="Quantity in the cart")
    quantity_available: int = Field(0, ge=0, description="Live stock")
    category: Optional[str] = None
    images: List[str] = Field(default_factory=list)


class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class UpdateQuantityRequest(BaseModel):
    quantity: int = Field(..., ge=1)


# ----- Checkout / Orders -----

class CheckoutForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = Field("United Kingdom")
    phone: str = Field(..., min_length=1)

    @field_validator("country")
    @classmethod
    def _known_country(cls, v: str) -> str:
        if v not in COUNTRIES:
            raise ValueError("We do not ship to this country")
        return v


class OrderItem(BaseModel):
    product_id: str
    name: str
    price: float = Field(..., ge=0, description="Unit price at submission time")
    quantity: int = Field(..., ge=1)


class Order(BaseModel):
    customer_email: str
    customer_name: str
    customer_address: str
    customer_phone: str
    items: List[OrderItem]
    total_amount: float = Field(..., ge=0, description="Total in GBP including shipping")
    status: str = Field("pending", description="Order status")
    stripe_session_id: Optional[str] = None
    payment_intent: Optional[str] = None
    payment_status: Optional[str] = None
    shipping_details: Optional[str] = None


class SessionLineItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    images: List[str] = Field(default_factory=list)


class PaymentSessionRequest(BaseModel):
    order_id: str
    items: List[SessionLineItem] = Field(..., min_length=1)
    customer_email: EmailStr
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class PaymentSessionResponse(BaseModel):
    id: str
    url: str

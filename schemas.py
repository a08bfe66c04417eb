"""
Database Schemas

Pydantic models for the storefront's MongoDB collections. Collection names are
the lowercase snake_case of the class name:
- Product -> "product"
- Order -> "order"
- Customer -> "customer"
- Review -> "review"
- StoreSettings -> "store_settings"

Every record carries its own string `id` alongside Mongo's `_id`.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Literal

PRODUCT_SIZES = ["XS", "S", "M", "L", "XL", "2XL", "XXL"]

ORDER_STATUSES = ["Pending", "Processing", "Shipped", "Delivered", "Cancelled"]
OrderStatus = Literal["Pending", "Processing", "Shipped", "Delivered", "Cancelled"]


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    id: str = Field(..., description="Product id")
    title: str = Field(..., description="Product title")
    price: float = Field(..., ge=0, description="Price in dollars")
    inventory: int = Field(0, ge=0, description="Total units across all sizes")
    size_inventory: Dict[str, int] = Field(default_factory=dict, description="Units per size")
    sizes: List[str] = Field(default_factory=lambda: list(PRODUCT_SIZES))
    image: Optional[str] = Field(None, description="Primary image URL")
    images: List[str] = Field(default_factory=list)
    description: Optional[str] = ""
    product_type: Optional[str] = "Bikini"
    collection: Optional[str] = ""
    category: Optional[str] = "Other"
    status: Literal["Active", "Inactive", "Draft"] = "Active"
    item_number: Optional[str] = ""
    color_codes: List[str] = Field(default_factory=list)
    unit_cost: Optional[float] = Field(None, ge=0)
    is_deleted: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        # Spreadsheet/POS exports use labels like "In Stock" or "draft copy"
        raw = str(v or "Active").strip()
        if raw in ("Active", "Inactive", "Draft"):
            return raw
        lowered = raw.lower()
        if "inactive" in lowered:
            return "Inactive"
        if any(word in lowered for word in ("active", "stock", "order")):
            return "Active"
        if "draft" in lowered:
            return "Draft"
        return "Inactive"

    @field_validator("size_inventory")
    @classmethod
    def no_negative_sizes(cls, v: Dict[str, int]) -> Dict[str, int]:
        for size, count in v.items():
            if count < 0:
                raise ValueError(f"inventory for size {size} cannot be negative")
        return v


class OrderItem(BaseModel):
    product_id: str
    title: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    image: Optional[str] = ""
    size: Optional[str] = ""


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    id: str
    customer_name: str
    customer_email: str
    date: str = Field(..., description="YYYY-MM-DD")
    items: List[OrderItem] = Field(default_factory=list)
    total: float = Field(..., ge=0)
    shipping_cost: Optional[float] = None
    item_cost: Optional[float] = None
    tax_amount: Optional[float] = None
    status: OrderStatus = "Pending"
    tracking_number: str = "Pending"
    shipping_address: Optional[Dict] = None
    square_order_id: Optional[str] = None


class CheckoutItem(BaseModel):
    """A cart line as submitted by the storefront at checkout"""
    product_id: str
    variant_id: Optional[str] = None
    title: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    image: Optional[str] = ""
    size: Optional[str] = ""


class OrderDetails(BaseModel):
    id: Optional[str] = None
    customer_name: str
    customer_email: str
    items: List[CheckoutItem] = Field(default_factory=list)
    shipping_cost: float = Field(0.0, ge=0)
    item_cost: Optional[float] = Field(None, ge=0)
    tax_amount: float = Field(0.0, ge=0)
    total: Optional[float] = Field(None, ge=0)


class Customer(BaseModel):
    """
    Customers collection schema
    Collection name: "customer"
    """
    id: str
    name: str
    email: str
    total_spent: float = Field(0.0, ge=0)
    order_count: int = Field(0, ge=0)
    join_date: str


class AdminComment(BaseModel):
    text: str = Field(..., min_length=1)
    author_name: str
    author_role: str
    created_at: Optional[str] = None


class Review(BaseModel):
    """
    Reviews collection schema
    Collection name: "review"
    """
    id: str
    product_id: str
    user_id: str
    user_name: str
    user_avatar: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    comment: str
    likes: List[str] = Field(default_factory=list)
    admin_comment: Optional[AdminComment] = None


class StoreSettings(BaseModel):
    """
    Singleton store configuration
    Collection name: "store_settings"
    """
    store_name: str = "NINA ARMEND"
    currency: str = "USD"
    tax_rate: float = Field(7.5, ge=0)
    shipping_rate: Optional[float] = Field(None, ge=0)
    low_stock_threshold: int = Field(10, ge=0)
    pos_provider: Literal["none", "square"] = "none"
    square_api_key: str = ""
    square_application_id: str = ""
    square_location_id: str = ""
    auto_sync: bool = True
    seo_title: str = ""
    seo_description: str = ""
    instagram_url: str = ""
    facebook_url: str = ""
    tiktok_url: str = ""
    contact_email: str = ""
    contact_phone: str = ""
    is_maintenance_mode: bool = False


class CartItem(BaseModel):
    product_id: str
    size: str
    quantity: int = Field(1, ge=1, le=10)


class WishlistEntry(BaseModel):
    user_id: str
    product_id: str


class ChatMessage(BaseModel):
    user_id: str
    role: Literal["user", "assistant"]
    content: str

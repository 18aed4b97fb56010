"""Pydantic models for commerce backend entities."""
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class _Entity(BaseModel):
    # Backends return many more fields than we model; keep them around.
    model_config = ConfigDict(extra="allow", populate_by_name=True)


def _nested_id(data: Any, key: str, nested: str) -> Any:
    """Fill ``key`` from ``data[nested]["id"]`` when only the nested object was sent."""
    if isinstance(data, dict) and not data.get(key) and isinstance(data.get(nested), dict):
        data = {**data, key: data[nested].get("id")}
    return data


class Address(_Entity):
    """Shipping, billing, or saved address-book entry."""
    id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    address_1: Optional[str] = None
    address_2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None
    country_code: Optional[str] = None
    phone: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_payload(self) -> dict:
        """Request body shape: no saved-address id, no unset fields."""
        return self.model_dump(exclude={"id"}, exclude_none=True)


class LineItem(_Entity):
    id: str
    variant_id: Optional[str] = None
    product_id: Optional[str] = None
    title: str = ""
    thumbnail: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    unit_price: float = 0
    total: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_refs(cls, data: Any) -> Any:
        data = _nested_id(data, "variant_id", "variant")
        return _nested_id(data, "product_id", "product")

    @property
    def line_total(self) -> float:
        if self.total is not None:
            return self.total
        return self.unit_price * self.quantity


class PaymentSession(_Entity):
    id: Optional[str] = None
    provider_id: Optional[str] = None
    status: str = "pending"
    amount: Optional[float] = None
    currency_code: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


class PaymentCollection(_Entity):
    id: str
    status: Optional[str] = Field(default=None, validation_alias=AliasChoices("status", "payment_status"))
    amount: Optional[float] = None
    currency_code: Optional[str] = None
    payment_sessions: list[PaymentSession] = Field(
        default_factory=list,
        validation_alias=AliasChoices("payment_sessions", "paymentSessions"),
    )

    @property
    def primary_session(self) -> Optional[PaymentSession]:
        return self.payment_sessions[0] if self.payment_sessions else None


@dataclass
class CartTotals:
    subtotal: float = 0
    tax: float = 0
    shipping: float = 0
    total: float = 0

    def to_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "shipping": self.shipping,
            "total": self.total,
        }


class Cart(_Entity):
    id: str
    region_id: Optional[str] = None
    customer_id: Optional[str] = None
    email: Optional[str] = None
    currency_code: Optional[str] = None
    items: list[LineItem] = Field(default_factory=list)
    shipping_address: Optional[Address] = None
    billing_address: Optional[Address] = None
    shipping_methods: list[dict[str, Any]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("shipping_methods", "shippingMethods"),
    )
    payment_collection: Optional[PaymentCollection] = Field(
        default=None,
        validation_alias=AliasChoices("payment_collection", "paymentCollection"),
    )
    payment_status: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("payment_status", "paymentStatus"),
    )
    subtotal: Optional[float] = None
    tax_total: Optional[float] = None
    shipping_total: Optional[float] = None
    total: Optional[float] = None
    completed_at: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_region(cls, data: Any) -> Any:
        return _nested_id(data, "region_id", "region")

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def totals(self) -> CartTotals:
        """Backend totals where given; total is always subtotal + tax + shipping otherwise."""
        subtotal = self.subtotal if self.subtotal is not None else sum(i.line_total for i in self.items)
        tax = self.tax_total or 0
        shipping = self.shipping_total or 0
        total = self.total if self.total is not None else subtotal + tax + shipping
        return CartTotals(subtotal=subtotal, tax=tax, shipping=shipping, total=total)


class ShippingOption(_Entity):
    """A backend-declared delivery method, possibly re-priced by a live rate quote."""
    id: str
    name: str = ""
    amount: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    type: Optional[dict[str, Any]] = None

    @model_validator(mode="before")
    @classmethod
    def _calculated_amount(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("amount") is None:
            calculated = data.get("calculated_price") or {}
            if isinstance(calculated, dict) and calculated.get("calculated_amount") is not None:
                data = {**data, "amount": calculated["calculated_amount"]}
        if isinstance(data, dict) and data.get("metadata") is None:
            data = {**data, "metadata": {}}
        return data

    @property
    def type_code(self) -> str:
        code = self.metadata.get("shipping_type") or (self.type or {}).get("code") or ""
        return str(code).strip().lower()


class RateQuote(_Entity):
    """A carrier's live price and transit estimate for one option type."""
    type: str
    amount: Optional[float] = None
    label: Optional[str] = None
    eta: Optional[int | str] = None
    eta_days: Optional[int] = None
    courier: Optional[str] = Field(default=None, validation_alias=AliasChoices("courier", "courier_name"))


class Order(_Entity):
    """Terminal artifact of a completed cart. Immutable."""
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: str
    display_id: Optional[int | str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    email: Optional[str] = None
    currency_code: Optional[str] = None
    items: list[LineItem] = Field(default_factory=list)
    shipping_address: Optional[Address] = None
    billing_address: Optional[Address] = None
    subtotal: Optional[float] = None
    tax_total: Optional[float] = None
    shipping_total: Optional[float] = None
    total: Optional[float] = None
    created_at: Optional[str] = None


class Customer(_Entity):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    addresses: list[Address] = Field(default_factory=list)


@dataclass
class OnlinePayment:
    """What the online payment widget needs; the cart is not completed yet."""
    cart_id: str
    payment_collection_id: str
    session: dict[str, Any] = field(default_factory=dict)

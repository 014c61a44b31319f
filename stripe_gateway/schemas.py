from typing import Dict, List, Literal, Optional

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    HttpUrl,
    TypeAdapter,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


_HTTP_URL = TypeAdapter(HttpUrl)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CorrelationKeys(CamelModel):
    org_id: Optional[str] = None
    run_id: Optional[str] = None
    brand_id: Optional[str] = None
    app_id: Optional[str] = None
    campaign_id: Optional[str] = None


# --- Payments ---

class LineItem(CamelModel):
    price_id: str
    quantity: int = Field(gt=0)


class Discount(CamelModel):
    coupon: Optional[str] = None
    promotion_code: Optional[str] = None


class CheckoutSessionRequest(CorrelationKeys):
    line_items: List[LineItem] = Field(min_length=1)
    success_url: str
    cancel_url: str
    customer_id: Optional[str] = None
    customer_email: Optional[EmailStr] = None
    mode: Literal["payment", "subscription"] = "payment"
    metadata: Optional[Dict[str, str]] = None
    discounts: Optional[List[Discount]] = None

    @field_validator("success_url", "cancel_url")
    @classmethod
    def check_url(cls, value: str) -> str:
        # Validated only; Stripe needs the exact string back ({CHECKOUT_SESSION_ID} templates)
        try:
            _HTTP_URL.validate_python(value)
        except ValueError:
            raise ValueError("must be a valid http(s) URL")
        return value

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "orgId": "org_123",
                    "lineItems": [{"priceId": "price_123", "quantity": 1}],
                    "successUrl": "https://example.com/success",
                    "cancelUrl": "https://example.com/cancel",
                }
            ]
        },
    )


class PaymentIntentRequest(CorrelationKeys):
    amount_in_cents: int = Field(gt=0)
    currency: str = "usd"
    customer_id: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class StatsRequest(CamelModel):
    run_ids: Optional[List[str]] = None
    clerk_org_id: Optional[str] = None
    brand_id: Optional[str] = None
    app_id: Optional[str] = None
    campaign_id: Optional[str] = None


# --- Products / prices ---

class ProductCreate(CamelModel):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    description: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class ProductUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    active: Optional[bool] = None
    metadata: Optional[Dict[str, str]] = None


class Recurring(CamelModel):
    interval: Literal["day", "week", "month", "year"]
    interval_count: int = Field(default=1, gt=0)


class PriceCreate(CamelModel):
    product_id: str = Field(min_length=1)
    unit_amount_in_cents: int = Field(gt=0)
    currency: str = "usd"
    recurring: Optional[Recurring] = None
    metadata: Optional[Dict[str, str]] = None


class PriceUpdate(CamelModel):
    active: Optional[bool] = None
    nickname: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


# --- Coupons ---

class CouponCreate(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    percent_off: Optional[float] = Field(default=None, ge=1, le=100)
    amount_off_in_cents: Optional[int] = Field(default=None, gt=0)
    currency: Optional[str] = None
    duration: Literal["once", "repeating", "forever"] = "once"
    duration_in_months: Optional[int] = Field(default=None, gt=0)
    max_redemptions: Optional[int] = Field(default=None, gt=0)
    redeem_by: Optional[AwareDatetime] = None
    metadata: Optional[Dict[str, str]] = None

    @model_validator(mode="after")
    def check_discount(self):
        if self.percent_off is None and self.amount_off_in_cents is None:
            raise ValueError("Either percentOff or amountOffInCents must be provided")
        if self.amount_off_in_cents is not None and not self.currency:
            raise ValueError("currency is required when amountOffInCents is provided")
        return self


# --- Customers ---

class CustomerCreate(CamelModel):
    email: Optional[EmailStr] = None
    name: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class CustomerUpdate(CustomerCreate):
    pass

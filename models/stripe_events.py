"""
Schemas for the Stripe webhook events the reconciler acts on.

Events are a tagged union discriminated on ``type``. Only the fields the
reconciler reads are declared; everything else in the payload is ignored.
"""

from datetime import date, datetime, timezone
from typing import Annotated, Any, Dict, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
CHECKOUT_COMPLETED = "checkout.session.completed"
INVOICE_PAID = "invoice.payment_succeeded"
INVOICE_FAILED = "invoice.payment_failed"


class StripeModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ExpandableRef(StripeModel):
    """An expanded object where Stripe would normally send a bare ID."""
    id: str
    email: Optional[str] = None


def _ref_id(value: Union[str, ExpandableRef, None]) -> Optional[str]:
    if isinstance(value, ExpandableRef):
        return value.id
    return value


def _to_date(timestamp: Optional[int]) -> Optional[date]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).date()


class Price(StripeModel):
    id: str


class SubscriptionItem(StripeModel):
    price: Optional[Price] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class SubscriptionItemList(StripeModel):
    data: List[SubscriptionItem] = Field(default_factory=list)


class Subscription(StripeModel):
    id: str
    customer: Union[str, ExpandableRef, None] = None
    status: Optional[str] = None
    items: SubscriptionItemList = Field(default_factory=SubscriptionItemList)
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def customer_id(self) -> Optional[str]:
        return _ref_id(self.customer)

    @property
    def first_item(self) -> Optional[SubscriptionItem]:
        return self.items.data[0] if self.items.data else None

    @property
    def price_id(self) -> Optional[str]:
        item = self.first_item
        return item.price.id if item and item.price else None

    @property
    def period_start(self) -> Optional[date]:
        # Newer API versions only report the period on the subscription items
        ts = self.current_period_start
        if ts is None and self.first_item:
            ts = self.first_item.current_period_start
        return _to_date(ts)

    @property
    def period_end(self) -> Optional[date]:
        ts = self.current_period_end
        if ts is None and self.first_item:
            ts = self.first_item.current_period_end
        return _to_date(ts)


class CustomerDetails(StripeModel):
    email: Optional[str] = None


class CheckoutSessionObject(StripeModel):
    id: str
    mode: Optional[str] = None
    payment_status: Optional[str] = None
    customer: Union[str, ExpandableRef, None] = None
    customer_email: Optional[str] = None
    customer_details: Optional[CustomerDetails] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def customer_id(self) -> Optional[str]:
        return _ref_id(self.customer)

    @property
    def email(self) -> Optional[str]:
        if self.customer_email:
            return self.customer_email
        if self.customer_details and self.customer_details.email:
            return self.customer_details.email
        return None


class Invoice(StripeModel):
    id: Optional[str] = None
    customer: Union[str, ExpandableRef, None] = None
    customer_email: Optional[str] = None

    @property
    def customer_id(self) -> Optional[str]:
        return _ref_id(self.customer)


ObjectT = TypeVar("ObjectT")


class EventData(StripeModel, Generic[ObjectT]):
    object: ObjectT


class BaseEvent(StripeModel):
    id: str
    created: Optional[int] = None
    livemode: bool = False


class SubscriptionUpsertEvent(BaseEvent):
    type: Literal["customer.subscription.created", "customer.subscription.updated"]
    data: EventData[Subscription]


class SubscriptionDeletedEvent(BaseEvent):
    type: Literal["customer.subscription.deleted"]
    data: EventData[Subscription]


class CheckoutCompletedEvent(BaseEvent):
    type: Literal["checkout.session.completed"]
    data: EventData[CheckoutSessionObject]


class InvoiceEvent(BaseEvent):
    type: Literal["invoice.payment_succeeded", "invoice.payment_failed"]
    data: EventData[Invoice]


class UnhandledEvent(BaseEvent):
    """Any event type the reconciler does not act on."""
    type: str


HandledEvent = Annotated[
    Union[SubscriptionUpsertEvent, SubscriptionDeletedEvent, CheckoutCompletedEvent, InvoiceEvent],
    Field(discriminator="type"),
]
StripeEvent = Union[
    SubscriptionUpsertEvent, SubscriptionDeletedEvent, CheckoutCompletedEvent, InvoiceEvent, UnhandledEvent
]

HANDLED_EVENT_TYPES = frozenset({
    SUBSCRIPTION_CREATED,
    SUBSCRIPTION_UPDATED,
    SUBSCRIPTION_DELETED,
    CHECKOUT_COMPLETED,
    INVOICE_PAID,
    INVOICE_FAILED,
})

_handled_adapter = TypeAdapter(HandledEvent)


def parse_event(payload: Any) -> StripeEvent:
    """
    Validate a decoded webhook body.

    Raises:
        pydantic.ValidationError: If the envelope, or the object of a handled
            event type, does not match its schema
    """
    if isinstance(payload, dict) and payload.get("type") in HANDLED_EVENT_TYPES:
        return _handled_adapter.validate_python(payload)
    return UnhandledEvent.model_validate(payload)

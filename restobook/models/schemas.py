import re
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


NAME_RE = re.compile(r"(?!\s)(?!.*\s{3,})[^\W\d_](?:[^\W\d_]|\s)*(?<!\s)")
PHONE_RE = re.compile(r"\d{10,11}")
EMAIL_RE = re.compile(r"[\w.-]+@[\w.-]+\.\w{2,}")


class BookingStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    COOKING = "Cooking"
    READY = "Ready"
    COMPLETED = "Completed"
    CANCELED = "Canceled"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value) -> "BookingStatus":
        """Maps a wire value to a status; anything unrecognised is UNKNOWN."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return cls.UNKNOWN
        normalized = value.strip().lower()
        if normalized == "cancelled":
            normalized = "canceled"
        for status in cls:
            if status.value.lower() == normalized:
                return status
        return cls.UNKNOWN


ACTIVE_STATUSES = frozenset({
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.COOKING,
    BookingStatus.READY,
})

CLOSED_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELED})


class PaymentStatus(str, Enum):
    DEPOSITED = "Deposited"
    SUCCESS = "Success"

    @classmethod
    def parse(cls, value) -> "PaymentStatus":
        if isinstance(value, str) and value.strip().lower() == "success":
            return cls.SUCCESS
        return cls.DEPOSITED


class OrderType(str, Enum):
    DINE_IN = "dine-in"
    DELIVERY = "delivery"


class OrderMode(str, Enum):
    PRE_ORDER = "pre-order"
    AT_RESTAURANT = "order-at-restaurant"


class Role(str, Enum):
    CUSTOMER = "customer"
    FRONT_DESK = "front-desk"
    KITCHEN = "kitchen"


class PaymentMethod(str, Enum):
    VNPAY = "vnpay"


class GuestContact(BaseModel):
    name: str
    email: str
    phone: str
    address: Optional[str] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        if not NAME_RE.fullmatch(v):
            raise ValueError("Invalid name")
        return v

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: str) -> str:
        if not PHONE_RE.fullmatch(v):
            raise ValueError("Invalid phone number")
        return v

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        if not EMAIL_RE.fullmatch(v):
            raise ValueError("Invalid email address")
        return v


class DishLine(BaseModel):
    dish_id: str
    name: str
    unit_price: int = Field(ge=0)
    # Zero-quantity lines are dropped before saving
    quantity: int = Field(ge=0)


class BookingDetails(BaseModel):
    """Capture-stage form: who, when, and how the order is fulfilled."""
    contact: GuestContact
    order_type: OrderType = OrderType.DINE_IN
    booking_date: date
    start_time: time
    table_id: Optional[str] = None

    @model_validator(mode="after")
    def check_fulfilment(self):
        if self.order_type == OrderType.DELIVERY:
            if self.table_id:
                raise ValueError("Delivery bookings cannot reserve a table")
            if not self.contact.address:
                raise ValueError("Delivery bookings require an address")
        return self


class Booking(BaseModel):
    booking_id: str
    user_id: Optional[str] = None
    contact: GuestContact
    order_type: OrderType = OrderType.DINE_IN
    order_mode: Optional[OrderMode] = None
    booking_date: date
    start_time: time
    end_time: time
    table_id: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    dish_lines: List[DishLine] = []
    note: str = ""
    voucher_code: Optional[str] = None
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        return BookingStatus.parse(v)

    @model_validator(mode="after")
    def check_table(self):
        if self.order_type == OrderType.DELIVERY and self.table_id:
            raise ValueError("Delivery bookings never carry a table")
        return self

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_STATUSES

    def window(self):
        """Occupied interval as datetimes; an end before the start rolls past midnight."""
        start = datetime.combine(self.booking_date, self.start_time)
        end = datetime.combine(self.booking_date, self.end_time)
        if end <= start:
            end += timedelta(days=1)
        return start, end


class Table(BaseModel):
    table_id: str
    table_number: str
    capacity: int = Field(ge=1, le=20)
    is_available: bool = True


class Voucher(BaseModel):
    voucher_id: str
    code: str
    discount_percent: int = Field(ge=0, le=100)
    expires_at: datetime
    is_used: bool = False
    bound_user_id: Optional[str] = None


class Bill(BaseModel):
    subtotal: int = 0
    prepaid_deposit: int = 0
    voucher_discount: int = 0
    shipping_fee: int = 0
    total: int = 0
    amount_due_now: int = 0
    remaining_balance: int = 0


class PaymentOrder(BaseModel):
    order_id: str
    booking_id: str
    user_id: Optional[str] = None
    amount: int
    voucher_id: Optional[str] = None
    status: PaymentStatus = PaymentStatus.DEPOSITED
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        return PaymentStatus.parse(v)


class Rank(BaseModel):
    rank_name: str
    min_spending: int
    benefits: Optional[str] = None


class CustomerAccount(BaseModel):
    user_id: str
    total_spending: int = 0
    rank: Optional[Rank] = None


class SessionContext(BaseModel):
    """Who is driving the wizard: the session token key and the resolved user."""
    session_id: str
    user_id: Optional[str] = None


class WizardState(BaseModel):
    booking_id: str
    stage: str
    status: BookingStatus


class BookingReview(BaseModel):
    booking: Booking
    bill: Bill
    voucher_error: Optional[str] = None


class ConfirmResult(BaseModel):
    booking_id: str
    status: BookingStatus
    order_id: Optional[str] = None
    payment_url: Optional[str] = None


class FinalizeResult(BaseModel):
    order_id: str
    booking_id: str
    status: PaymentStatus
    already_settled: bool = False
    # Discount was given on a voucher another payment had already consumed
    voucher_rejected: bool = False

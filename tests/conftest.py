from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest

from restobook.models.schemas import (
    Booking,
    BookingDetails,
    BookingStatus,
    CustomerAccount,
    GuestContact,
    OrderMode,
    PaymentOrder,
    PaymentStatus,
    Table,
    Voucher,
)
from restobook.services.billing import Pricing
from restobook.services.booking import BookingService
from restobook.services.payment import PaymentGateway
from restobook.services.redis_client import RedisClient
from restobook.services.tables import TableAllocator


class MockRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, key):
        self.ttls.pop(key, None)
        return 1 if self.data.pop(key, None) is not None else 0


class MockStore:
    """Same methods as SheetsClient; mutating calls are recorded in ``calls``"""

    def __init__(self):
        self.tables = {}
        self.bookings = {}
        self.vouchers = {}
        self.payments = {}
        self.spending = {}
        self.carts = {}
        self.ranks = []
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name,) + args)

    def calls_named(self, name):
        return [c for c in self.calls if c[0] == name]

    # Tables

    def list_tables(self):
        return list(self.tables.values())

    def get_table(self, table_id):
        return self.tables.get(table_id)

    def create_table(self, table_number, capacity):
        table = Table(table_id=f"T{len(self.tables) + 1:03d}", table_number=table_number, capacity=capacity)
        self.tables[table.table_id] = table
        self._record("create_table", table_number, capacity)
        return table

    # Bookings

    def list_bookings(self, booking_date=None):
        return [
            b for b in self.bookings.values()
            if booking_date is None or b.booking_date == booking_date
        ]

    def get_booking(self, booking_id):
        return self.bookings.get(booking_id)

    def create_booking(self, details: BookingDetails, user_id, end_time):
        booking_id = f"B{len(self.bookings) + 1:04d}"
        self.bookings[booking_id] = Booking(
            booking_id=booking_id,
            user_id=user_id,
            contact=details.contact,
            order_type=details.order_type,
            booking_date=details.booking_date,
            start_time=details.start_time,
            end_time=end_time,
            table_id=details.table_id,
            created_at=datetime.now(),
        )
        self._record("create_booking", booking_id)
        return booking_id

    def _update(self, booking_id, name, **fields):
        self._record(name, booking_id, fields)
        booking = self.bookings.get(booking_id)
        if booking is None:
            return False
        self.bookings[booking_id] = booking.model_copy(update=fields)
        return True

    def update_booking_dishes(self, booking_id, dish_lines, order_mode):
        return self._update(booking_id, "update_booking_dishes",
                            dish_lines=list(dish_lines), order_mode=OrderMode(order_mode))

    def update_booking_note(self, booking_id, note):
        return self._update(booking_id, "update_booking_note", note=note)

    def update_booking_status(self, booking_id, status):
        return self._update(booking_id, "update_booking_status", status=BookingStatus(status))

    def update_booking_details(self, booking_id, booking_date, start_time, end_time):
        return self._update(booking_id, "update_booking_details",
                            booking_date=booking_date, start_time=start_time, end_time=end_time)

    def update_booking_voucher(self, booking_id, code):
        return self._update(booking_id, "update_booking_voucher", voucher_code=code)

    def reassign_table(self, booking_id, table_id):
        return self._update(booking_id, "reassign_table", table_id=table_id)

    # Vouchers

    def lookup_voucher(self, code):
        for voucher in self.vouchers.values():
            if voucher.code == code:
                return voucher
        return None

    def mark_voucher_used(self, voucher_id):
        self._record("mark_voucher_used", voucher_id)
        voucher = self.vouchers.get(voucher_id)
        if voucher is None or voucher.is_used:
            return False
        self.vouchers[voucher_id] = voucher.model_copy(update={"is_used": True})
        return True

    # Payment orders

    def create_payment_order(self, booking_id, user_id, amount, voucher_id=None):
        order_id = f"O{len(self.payments) + 1:04d}"
        self.payments[order_id] = PaymentOrder(
            order_id=order_id,
            booking_id=booking_id,
            user_id=user_id,
            amount=amount,
            voucher_id=voucher_id,
            created_at=datetime.now(),
        )
        self._record("create_payment_order", booking_id, amount)
        return order_id

    def get_payment_order(self, order_id):
        return self.payments.get(order_id)

    def list_payment_orders(self, booking_id):
        return [o for o in self.payments.values() if o.booking_id == booking_id]

    def list_payment_orders_for_voucher(self, voucher_id):
        return [o for o in self.payments.values() if o.voucher_id == voucher_id]

    def update_payment_status(self, order_id, status):
        self._record("update_payment_status", order_id, status)
        order = self.payments.get(order_id)
        if order is None:
            return False
        self.payments[order_id] = order.model_copy(update={"status": PaymentStatus(status)})
        return True

    # Customers

    def clear_cart(self, user_id):
        self._record("clear_cart", user_id)
        self.carts.pop(user_id, None)

    def get_ranks(self):
        return sorted(self.ranks, key=lambda r: r.min_spending)

    def get_customer(self, user_id):
        if user_id not in self.spending:
            return None
        return CustomerAccount(user_id=user_id, total_spending=self.spending[user_id])

    def add_spending(self, user_id, amount):
        self._record("add_spending", user_id, amount)
        self.spending[user_id] = self.spending.get(user_id, 0) + amount
        return self.spending[user_id]


@pytest.fixture
def store():
    store = MockStore()
    for table_id, number, capacity in [
        ("T001", "A10", 4),
        ("T002", "A2", 4),
        ("T003", "B1", 2),
        ("T004", "VIP1", 8),
    ]:
        store.tables[table_id] = Table(table_id=table_id, table_number=number, capacity=capacity)
    return store


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def sessions(mock_redis):
    return RedisClient(client=mock_redis)


@pytest.fixture
def gateway():
    return PaymentGateway(
        base_url="https://pay.example.test/vpcpay.html",
        tmn_code="TESTCODE",
        hash_secret="test-secret",
        return_url="http://localhost:8000/payment/return",
    )


@pytest.fixture
def pricing():
    return Pricing(deposit_rate=Decimal("0.30"), free_shipping_threshold=800_000,
                   shipping_fee=25_000)


@pytest.fixture
def allocator(store):
    return TableAllocator(store, duration_minutes=120)


@pytest.fixture
def service(store, sessions, allocator, gateway, pricing):
    return BookingService(store=store, sessions=sessions, allocator=allocator,
                          gateway=gateway, pricing=pricing)


@pytest.fixture
def booking_day():
    return date.today() + timedelta(days=3)


@pytest.fixture
def contact():
    return GuestContact(name="Nguyen Van An", email="an@example.com", phone="0912345678")


@pytest.fixture
def make_booking(store, booking_day, contact):
    """Insert a booking directly into the store."""
    def _make(booking_id, table_id="T001", start=time(18, 0), end=time(20, 0),
              status=BookingStatus.CONFIRMED, day=None, **extra):
        data = dict(
            booking_id=booking_id,
            contact=contact,
            booking_date=day or booking_day,
            start_time=start,
            end_time=end,
            table_id=table_id,
            status=status,
            created_at=datetime.now(),
        )
        data.update(extra)
        booking = Booking(**data)
        store.bookings[booking_id] = booking
        return booking
    return _make


@pytest.fixture
def make_voucher(store):
    def _make(voucher_id="V001", code="SAVE10", discount_percent=10, days=30,
              is_used=False, bound_user_id=None):
        voucher = Voucher(
            voucher_id=voucher_id,
            code=code,
            discount_percent=discount_percent,
            expires_at=datetime.now() + timedelta(days=days),
            is_used=is_used,
            bound_user_id=bound_user_id,
        )
        store.vouchers[voucher_id] = voucher
        return voucher
    return _make

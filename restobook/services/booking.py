import logging
from datetime import date, time
from typing import Iterable, List, Optional

from restobook.exceptions import (
    ConflictError,
    NotFoundError,
    PaymentProviderError,
    ValidationError,
    VoucherInvalid,
)
from restobook.models.schemas import (
    ACTIVE_STATUSES,
    Booking,
    BookingDetails,
    BookingReview,
    BookingStatus,
    ConfirmResult,
    CustomerAccount,
    DishLine,
    FinalizeResult,
    OrderMode,
    OrderType,
    PaymentMethod,
    PaymentStatus,
    Rank,
    Role,
    SessionContext,
    Voucher,
    WizardState,
)
from restobook.services.billing import Pricing, compute_bill, validate_voucher
from restobook.services.payment import SUCCESS_CODE
from restobook.services.status import ensure_payment_transition, ensure_transition
from restobook.services.tables import TableAllocator, end_time_for

logger = logging.getLogger(__name__)

CUSTOMER_EDITABLE = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

STAGE_DISHES = "dishes"
STAGE_NOTE = "note"
STAGE_REVIEW = "review"
STAGE_PAYMENT = "payment"


def merge_dish_lines(lines: Iterable[DishLine]) -> List[DishLine]:
    """Collapses repeated dishes into one line each and drops zero quantities."""
    merged = {}
    for line in lines:
        if line.dish_id in merged:
            existing = merged[line.dish_id]
            merged[line.dish_id] = existing.model_copy(update={'quantity': existing.quantity + line.quantity})
        else:
            merged[line.dish_id] = line
    return [line for line in merged.values() if line.quantity > 0]


def adjust_quantity(lines: List[DishLine], dish_id: str, delta: int,
                    name: str = None, unit_price: int = None) -> List[DishLine]:
    """New line list with ``dish_id`` moved by ``delta``; a line reaching zero is removed."""
    result = []
    found = False
    for line in lines:
        if line.dish_id != dish_id:
            result.append(line)
            continue
        found = True
        quantity = line.quantity + delta
        if quantity > 0:
            result.append(line.model_copy(update={'quantity': quantity}))
    if not found and delta > 0:
        if name is None or unit_price is None:
            raise ValidationError(f"Dish {dish_id} needs a name and price to be added", field="dish_lines")
        result.append(DishLine(dish_id=dish_id, name=name, unit_price=unit_price, quantity=delta))
    return result


def rank_for(spending: int, ranks: Iterable[Rank]) -> Optional[Rank]:
    reached = [rank for rank in ranks if rank.min_spending <= spending]
    return max(reached, key=lambda r: r.min_spending) if reached else None


class BookingService:
    def __init__(self, store=None, sessions=None, allocator=None, gateway=None, pricing=None):
        if store is None:
            from restobook.services.sheets import sheets_client
            store = sheets_client
        if sessions is None:
            from restobook.services.redis_client import redis_client
            sessions = redis_client
        if gateway is None:
            from restobook.services.payment import payment_gateway
            gateway = payment_gateway
        self.store = store
        self.sessions = sessions
        self.allocator = allocator or TableAllocator(store)
        self.gateway = gateway
        self.pricing = pricing or Pricing.from_settings()

    # Helpers

    def _get(self, booking_id: str) -> Booking:
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    def _owned(self, ctx: SessionContext, booking_id: str) -> Booking:
        booking = self._get(booking_id)
        if booking.user_id and booking.user_id != ctx.user_id:
            # Do not reveal other customers' bookings
            raise NotFoundError("Booking", booking_id)
        return booking

    def _editable(self, ctx: SessionContext, booking_id: str) -> Booking:
        booking = self._owned(ctx, booking_id)
        if booking.status not in CUSTOMER_EDITABLE:
            raise ConflictError(
                f"Booking {booking_id} is {booking.status.value} and can no longer be edited",
                current_status=booking.status.value,
            )
        return booking

    def _remember(self, ctx: SessionContext, booking_id: str, stage: str):
        self.sessions.set_active_booking(ctx.session_id, booking_id, stage)

    def _write_status(self, booking: Booking, target: BookingStatus, role: Role) -> BookingStatus:
        target = ensure_transition(booking.status, target, role)
        if not self.store.update_booking_status(booking.booking_id, target):
            raise NotFoundError("Booking", booking.booking_id)
        logger.info(f"Booking {booking.booking_id}: {booking.status.value} -> {target.value} ({role.value})")
        return target

    def _voucher_for(self, booking: Booking, user_id: Optional[str]) -> Optional[Voucher]:
        """The previewed voucher if it still applies; raises VoucherInvalid otherwise."""
        if not booking.voucher_code:
            return None
        voucher = self.store.lookup_voucher(booking.voucher_code)
        return validate_voucher(voucher, user_id, code=booking.voucher_code)

    def _ensure_voucher_free(self, voucher: Voucher, booking_id: str):
        # A single-use voucher may sit on only one open payment order
        for order in self.store.list_payment_orders_for_voucher(voucher.voucher_id):
            if order.booking_id == booking_id:
                continue
            if order.status == PaymentStatus.SUCCESS:
                raise VoucherInvalid("used", voucher.code)
            other = self.store.get_booking(order.booking_id)
            if other is not None and not other.is_closed:
                raise VoucherInvalid("reserved", voucher.code)

    @staticmethod
    def _check_date(booking_date: date):
        if booking_date < date.today():
            raise ValidationError("Booking date cannot be in the past", field="booking_date")

    # Stage 1: capture

    def capture(self, ctx: SessionContext, details: BookingDetails) -> str:
        self._check_date(details.booking_date)
        if details.table_id:
            self.allocator.check_table(details.table_id, details.booking_date, details.start_time)

        end_time = end_time_for(details.start_time, self.allocator.duration_minutes)
        booking_id = self.store.create_booking(details, ctx.user_id, end_time)
        self._remember(ctx, booking_id, STAGE_DISHES)
        logger.info(f"Booking {booking_id} created for {details.booking_date} {details.start_time}")
        return booking_id

    def resume(self, ctx: SessionContext) -> WizardState:
        state = self.sessions.get_active_booking(ctx.session_id)
        if not state:
            raise NotFoundError("Active booking", ctx.session_id)
        booking = self.store.get_booking(state["booking_id"])
        if booking is None or booking.is_closed:
            self.sessions.clear_active_booking(ctx.session_id)
            raise NotFoundError("Booking", state["booking_id"])
        return WizardState(booking_id=booking.booking_id, stage=state["stage"], status=booking.status)

    # Stage 2: dishes

    def select_dishes(self, ctx: SessionContext, booking_id: str, order_mode: OrderMode,
                      dish_lines: Iterable[DishLine] = ()) -> Booking:
        booking = self._editable(ctx, booking_id)
        mode = OrderMode(order_mode)
        if mode == OrderMode.AT_RESTAURANT:
            if booking.order_type == OrderType.DELIVERY:
                raise ValidationError("Delivery orders must pre-order dishes", field="order_mode")
            lines = []
        else:
            lines = merge_dish_lines(dish_lines)
            if not lines:
                raise ValidationError("Select at least one dish to pre-order", field="dish_lines")

        if not self.store.update_booking_dishes(booking_id, lines, mode):
            raise NotFoundError("Booking", booking_id)
        self._remember(ctx, booking_id, STAGE_NOTE)
        return booking.model_copy(update={'dish_lines': lines, 'order_mode': mode})

    # Stage 3: note

    def add_note(self, ctx: SessionContext, booking_id: str, note: Optional[str]) -> Booking:
        booking = self._editable(ctx, booking_id)
        note = (note or "").strip()
        if note:
            if not self.store.update_booking_note(booking_id, note):
                raise NotFoundError("Booking", booking_id)
            booking = booking.model_copy(update={'note': note})
        self._remember(ctx, booking_id, STAGE_REVIEW)
        return booking

    # Stage 4: review

    def review(self, ctx: SessionContext, booking_id: str) -> BookingReview:
        booking = self._owned(ctx, booking_id)
        voucher_error = None
        try:
            voucher = self._voucher_for(booking, ctx.user_id)
        except VoucherInvalid as e:
            voucher, voucher_error = None, e.reason
        bill = compute_bill(booking.dish_lines, booking.order_type, voucher, self.pricing)
        if not booking.is_closed:
            self._remember(ctx, booking_id, STAGE_REVIEW)
        return BookingReview(booking=booking, bill=bill, voucher_error=voucher_error)

    def edit_details(self, ctx: SessionContext, booking_id: str,
                     booking_date: date, start_time: time) -> Booking:
        booking = self._editable(ctx, booking_id)
        self._check_date(booking_date)
        if booking.table_id:
            self.allocator.check_table(booking.table_id, booking_date, start_time, exclude_booking_id=booking_id)
        end_time = end_time_for(start_time, self.allocator.duration_minutes)
        if not self.store.update_booking_details(booking_id, booking_date, start_time, end_time):
            raise NotFoundError("Booking", booking_id)
        return booking.model_copy(update={
            'booking_date': booking_date,
            'start_time': start_time,
            'end_time': end_time,
        })

    def change_table(self, ctx: SessionContext, booking_id: str, table_id: str):
        self._editable(ctx, booking_id)
        return self.allocator.assign_table(booking_id, table_id)

    def edit_dishes(self, ctx: SessionContext, booking_id: str, dish_lines: Iterable[DishLine]) -> Booking:
        booking = self._editable(ctx, booking_id)
        return self._replace_dishes(booking, dish_lines)

    def adjust_dish(self, ctx: SessionContext, booking_id: str, dish_id: str, delta: int,
                    name: str = None, unit_price: int = None) -> Booking:
        booking = self._editable(ctx, booking_id)
        lines = adjust_quantity(booking.dish_lines, dish_id, delta, name=name, unit_price=unit_price)
        return self._replace_dishes(booking, lines)

    def _replace_dishes(self, booking: Booking, dish_lines: Iterable[DishLine]) -> Booking:
        lines = merge_dish_lines(dish_lines)
        if lines:
            mode = OrderMode.PRE_ORDER
        elif booking.order_type == OrderType.DELIVERY:
            raise ValidationError("Delivery orders need at least one dish", field="dish_lines")
        else:
            mode = OrderMode.AT_RESTAURANT
        if not self.store.update_booking_dishes(booking.booking_id, lines, mode):
            raise NotFoundError("Booking", booking.booking_id)
        return booking.model_copy(update={'dish_lines': lines, 'order_mode': mode})

    def apply_voucher(self, ctx: SessionContext, booking_id: str, code: str) -> BookingReview:
        """Previews a voucher on the booking; it is only consumed once payment succeeds."""
        booking = self._editable(ctx, booking_id)
        code = (code or "").strip()
        if not code:
            raise ValidationError("Enter a voucher code", field="voucher_code")
        voucher = validate_voucher(self.store.lookup_voucher(code), ctx.user_id, code=code)
        self._ensure_voucher_free(voucher, booking_id)
        self.store.update_booking_voucher(booking_id, code)
        return self.review(ctx, booking_id)

    def remove_voucher(self, ctx: SessionContext, booking_id: str) -> BookingReview:
        self._editable(ctx, booking_id)
        self.store.update_booking_voucher(booking_id, None)
        return self.review(ctx, booking_id)

    def confirm(self, ctx: SessionContext, booking_id: str,
                payment_method: Optional[PaymentMethod] = None) -> ConfirmResult:
        booking = self._owned(ctx, booking_id)

        if not booking.dish_lines:
            if booking.order_type == OrderType.DELIVERY:
                raise ValidationError("Delivery orders need at least one dish", field="dish_lines")
            status = self._write_status(booking, BookingStatus.CONFIRMED, Role.CUSTOMER)
            self.sessions.clear_active_booking(ctx.session_id)
            return ConfirmResult(booking_id=booking_id, status=status)

        if payment_method is None:
            raise ValidationError("Select a payment method before confirming", field="payment_method")
        PaymentMethod(payment_method)

        # A Confirmed booking whose payment failed may pay again
        retry = booking.status == BookingStatus.CONFIRMED
        if retry:
            paid = [o for o in self.store.list_payment_orders(booking_id) if o.status == PaymentStatus.SUCCESS]
            if paid:
                raise ConflictError(f"Booking {booking_id} is already paid", current_status=booking.status.value)
        else:
            ensure_transition(booking.status, BookingStatus.CONFIRMED, Role.CUSTOMER)

        try:
            voucher = self._voucher_for(booking, ctx.user_id)
        except VoucherInvalid as e:
            logger.warning(f"Dropping voucher {booking.voucher_code} from booking {booking_id}: {e.reason}")
            self.store.update_booking_voucher(booking_id, None)
            voucher = None
        if voucher is not None:
            self._ensure_voucher_free(voucher, booking_id)
        bill = compute_bill(booking.dish_lines, booking.order_type, voucher, self.pricing)

        order_id = self.store.create_payment_order(
            booking_id,
            booking.user_id or ctx.user_id,
            bill.amount_due_now,
            voucher.voucher_id if voucher and bill.voucher_discount else None,
        )
        status = booking.status if retry else self._write_status(booking, BookingStatus.CONFIRMED, Role.CUSTOMER)

        if bill.amount_due_now == 0:
            # Nothing to collect online
            self.finalize_payment(order_id, SUCCESS_CODE, ctx)
            return ConfirmResult(booking_id=booking_id, status=status, order_id=order_id)

        order = self.store.get_payment_order(order_id)
        if order is None:
            raise NotFoundError("Payment order", order_id)
        payment_url = self.gateway.create_payment_redirect(order)
        self._remember(ctx, booking_id, STAGE_PAYMENT)
        logger.info(f"Booking {booking_id} sent to payment as order {order_id} ({bill.amount_due_now})")
        return ConfirmResult(booking_id=booking_id, status=status, order_id=order_id, payment_url=payment_url)

    def cancel(self, ctx: SessionContext, booking_id: str) -> BookingStatus:
        booking = self._owned(ctx, booking_id)
        status = self._write_status(booking, BookingStatus.CANCELED, Role.CUSTOMER)
        self.sessions.clear_active_booking(ctx.session_id)
        return status

    # Stage 5: payment callback

    def finalize_payment(self, transaction_ref: str, response_code: str,
                         ctx: Optional[SessionContext] = None) -> FinalizeResult:
        """Settles a payment order after the gateway redirect; replays are no-ops."""
        order = self.store.get_payment_order(transaction_ref)
        if order is None:
            raise NotFoundError("Payment order", transaction_ref)

        if order.status == PaymentStatus.SUCCESS:
            logger.info(f"Payment {transaction_ref} already settled, ignoring replay")
            return FinalizeResult(
                order_id=order.order_id,
                booking_id=order.booking_id,
                status=order.status,
                already_settled=True,
            )

        if response_code != SUCCESS_CODE:
            logger.warning(f"Payment {transaction_ref} for booking {order.booking_id} failed with {response_code}")
            raise PaymentProviderError(response_code, booking_id=order.booking_id)

        status = ensure_payment_transition(order.status, PaymentStatus.SUCCESS)
        self.store.update_payment_status(order.order_id, status)

        if order.user_id:
            self.store.clear_cart(order.user_id)
            total = self.store.add_spending(order.user_id, order.amount)
            logger.info(f"Customer {order.user_id} spending now {total}")
        voucher_rejected = False
        if order.voucher_id and not self.store.mark_voucher_used(order.voucher_id):
            voucher_rejected = True
            logger.warning(f"Payment {transaction_ref} used voucher {order.voucher_id} that was already consumed")

        if ctx is not None:
            self.sessions.clear_active_booking(ctx.session_id)
        logger.info(f"Payment {transaction_ref} settled for booking {order.booking_id}")
        return FinalizeResult(
            order_id=order.order_id,
            booking_id=order.booking_id,
            status=status,
            voucher_rejected=voucher_rejected,
        )

    # Staff

    def get_booking(self, booking_id: str) -> Booking:
        return self._get(booking_id)

    def list_bookings(self, role: Role, booking_date: Optional[date] = None, status=None) -> List[Booking]:
        """Fulfilment listing; the kitchen only ever sees active bookings."""
        statuses = None
        if status is not None:
            parsed = BookingStatus.parse(status)
            if parsed == BookingStatus.UNKNOWN:
                raise ValidationError(f"Unknown status {status}", field="status")
            statuses = {parsed}
        if Role(role) == Role.KITCHEN:
            statuses = (statuses or ACTIVE_STATUSES) & ACTIVE_STATUSES
        bookings = [
            b for b in self.store.list_bookings(booking_date)
            if statuses is None or b.status in statuses
        ]
        return sorted(bookings, key=lambda b: (b.booking_date, b.start_time, b.booking_id))

    def booking_history(self, user_id: str) -> List[Booking]:
        bookings = [b for b in self.store.list_bookings() if b.user_id == user_id]
        return sorted(bookings, key=lambda b: (b.booking_date, b.start_time), reverse=True)

    def change_status(self, booking_id: str, target, role: Role, expected=None) -> Booking:
        """Status write for staff views; a stale ``expected`` status is a conflict."""
        booking = self._get(booking_id)
        if expected is not None and BookingStatus.parse(expected) != booking.status:
            raise ConflictError(
                f"Booking {booking_id} is now {booking.status.value}",
                current_status=booking.status.value,
            )
        status = self._write_status(booking, BookingStatus.parse(target), Role(role))
        return booking.model_copy(update={'status': status})

    def staff_update_dishes(self, booking_id: str, dish_lines: Iterable[DishLine]) -> Booking:
        booking = self._get(booking_id)
        if booking.is_closed:
            raise ConflictError(
                f"Booking {booking_id} is {booking.status.value}",
                current_status=booking.status.value,
            )
        return self._replace_dishes(booking, dish_lines)

    def staff_assign_table(self, booking_id: str, table_id: str):
        return self.allocator.assign_table(booking_id, table_id)

    def customer_account(self, user_id: str) -> CustomerAccount:
        account = self.store.get_customer(user_id) or CustomerAccount(user_id=user_id)
        account.rank = rank_for(account.total_spending, self.store.get_ranks())
        return account


booking_service = BookingService()

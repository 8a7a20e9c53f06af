from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from restobook.config import settings
from restobook.exceptions import VoucherInvalid
from restobook.models.schemas import Bill, DishLine, OrderType, Voucher


@dataclass(frozen=True)
class Pricing:
    deposit_rate: Decimal
    free_shipping_threshold: int
    shipping_fee: int

    @classmethod
    def from_settings(cls, config=None) -> "Pricing":
        config = config or settings
        return cls(
            deposit_rate=Decimal(str(config.DEPOSIT_RATE)),
            free_shipping_threshold=config.FREE_SHIPPING_THRESHOLD,
            shipping_fee=config.SHIPPING_FEE,
        )


def _round(amount: Decimal) -> int:
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def subtotal_of(dish_lines: Iterable[DishLine]) -> int:
    return sum(line.unit_price * line.quantity for line in dish_lines)


def shipping_fee_for(subtotal: int, pricing: Pricing) -> int:
    if subtotal == 0 or subtotal >= pricing.free_shipping_threshold:
        return 0
    return pricing.shipping_fee


def compute_bill(
    dish_lines: Iterable[DishLine],
    order_type: OrderType,
    voucher: Optional[Voucher] = None,
    pricing: Optional[Pricing] = None,
) -> Bill:
    """Pure; ``voucher`` must already have passed ``validate_voucher``."""
    pricing = pricing or Pricing.from_settings()
    lines = list(dish_lines)
    if not lines:
        return Bill()

    subtotal = subtotal_of(lines)
    discount = 0
    if voucher is not None:
        discount = _round(Decimal(subtotal) * voucher.discount_percent / 100)

    if OrderType(order_type) == OrderType.DELIVERY:
        shipping = shipping_fee_for(subtotal, pricing)
        total = subtotal - discount + shipping
        return Bill(
            subtotal=subtotal,
            voucher_discount=discount,
            shipping_fee=shipping,
            total=total,
            amount_due_now=total,
        )

    payable = subtotal - discount
    # The deposit never exceeds what is left to pay after the voucher
    deposit = min(_round(Decimal(subtotal) * pricing.deposit_rate), payable)
    return Bill(
        subtotal=subtotal,
        prepaid_deposit=deposit,
        voucher_discount=discount,
        total=subtotal,
        amount_due_now=deposit,
        remaining_balance=payable - deposit,
    )


def validate_voucher(
    voucher: Optional[Voucher],
    user_id: Optional[str],
    now: Optional[datetime] = None,
    code: Optional[str] = None,
) -> Voucher:
    """Raises VoucherInvalid unless the voucher can be applied by ``user_id`` at ``now``."""
    if voucher is None:
        raise VoucherInvalid("not_found", code)
    expires_at = voucher.expires_at
    now = now or datetime.now(expires_at.tzinfo)
    if expires_at < now:
        raise VoucherInvalid("expired", voucher.code)
    if voucher.is_used:
        raise VoucherInvalid("used", voucher.code)
    if voucher.bound_user_id and voucher.bound_user_id != user_id:
        raise VoucherInvalid("wrong_owner", voucher.code)
    return voucher

from datetime import date, time
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from restobook.api.deps import get_booking_service, get_context
from restobook.models.schemas import (
    Booking,
    BookingDetails,
    BookingReview,
    ConfirmResult,
    CustomerAccount,
    DishLine,
    OrderMode,
    PaymentMethod,
    SessionContext,
    Table,
    WizardState,
)
from restobook.exceptions import ValidationError

router = APIRouter(prefix="/bookings", tags=["bookings"])


class DishesPayload(BaseModel):
    order_mode: OrderMode
    dish_lines: List[DishLine] = []


class NotePayload(BaseModel):
    note: Optional[str] = None


class DetailsPayload(BaseModel):
    booking_date: date
    start_time: time


class TablePayload(BaseModel):
    table_id: str


class VoucherPayload(BaseModel):
    code: str


class DishAdjustPayload(BaseModel):
    delta: int
    name: Optional[str] = None
    unit_price: Optional[int] = None


class ConfirmPayload(BaseModel):
    payment_method: Optional[PaymentMethod] = None


@router.post("", status_code=201)
async def capture(details: BookingDetails,
                  ctx: SessionContext = Depends(get_context),
                  service=Depends(get_booking_service)):
    booking_id = service.capture(ctx, details)
    return {"booking_id": booking_id}


@router.get("/active", response_model=WizardState)
async def resume(ctx: SessionContext = Depends(get_context),
                 service=Depends(get_booking_service)):
    return service.resume(ctx)


@router.get("/history", response_model=List[Booking])
async def history(ctx: SessionContext = Depends(get_context),
                  service=Depends(get_booking_service)):
    if not ctx.user_id:
        raise ValidationError("Sign in to see your bookings", field="user_id")
    return service.booking_history(ctx.user_id)


@router.get("/account", response_model=CustomerAccount)
async def account(ctx: SessionContext = Depends(get_context),
                  service=Depends(get_booking_service)):
    if not ctx.user_id:
        raise ValidationError("Sign in to see your spending", field="user_id")
    return service.customer_account(ctx.user_id)


@router.put("/{booking_id}/dishes", response_model=Booking)
async def select_dishes(booking_id: str, payload: DishesPayload,
                        ctx: SessionContext = Depends(get_context),
                        service=Depends(get_booking_service)):
    return service.select_dishes(ctx, booking_id, payload.order_mode, payload.dish_lines)


@router.post("/{booking_id}/dishes/{dish_id}", response_model=Booking)
async def adjust_dish(booking_id: str, dish_id: str, payload: DishAdjustPayload,
                      ctx: SessionContext = Depends(get_context),
                      service=Depends(get_booking_service)):
    return service.adjust_dish(ctx, booking_id, dish_id, payload.delta,
                               name=payload.name, unit_price=payload.unit_price)


@router.put("/{booking_id}/note", response_model=Booking)
async def add_note(booking_id: str, payload: NotePayload,
                   ctx: SessionContext = Depends(get_context),
                   service=Depends(get_booking_service)):
    return service.add_note(ctx, booking_id, payload.note)


@router.get("/{booking_id}/review", response_model=BookingReview)
async def review(booking_id: str,
                 ctx: SessionContext = Depends(get_context),
                 service=Depends(get_booking_service)):
    return service.review(ctx, booking_id)


@router.patch("/{booking_id}", response_model=Booking)
async def edit_details(booking_id: str, payload: DetailsPayload,
                       ctx: SessionContext = Depends(get_context),
                       service=Depends(get_booking_service)):
    return service.edit_details(ctx, booking_id, payload.booking_date, payload.start_time)


@router.put("/{booking_id}/review/dishes", response_model=Booking)
async def edit_dishes(booking_id: str, dish_lines: List[DishLine],
                      ctx: SessionContext = Depends(get_context),
                      service=Depends(get_booking_service)):
    return service.edit_dishes(ctx, booking_id, dish_lines)


@router.put("/{booking_id}/table", response_model=Table)
async def change_table(booking_id: str, payload: TablePayload,
                       ctx: SessionContext = Depends(get_context),
                       service=Depends(get_booking_service)):
    return service.change_table(ctx, booking_id, payload.table_id)


@router.post("/{booking_id}/voucher", response_model=BookingReview)
async def apply_voucher(booking_id: str, payload: VoucherPayload,
                        ctx: SessionContext = Depends(get_context),
                        service=Depends(get_booking_service)):
    return service.apply_voucher(ctx, booking_id, payload.code)


@router.delete("/{booking_id}/voucher", response_model=BookingReview)
async def remove_voucher(booking_id: str,
                         ctx: SessionContext = Depends(get_context),
                         service=Depends(get_booking_service)):
    return service.remove_voucher(ctx, booking_id)


@router.post("/{booking_id}/confirm", response_model=ConfirmResult)
async def confirm(booking_id: str, payload: ConfirmPayload,
                  ctx: SessionContext = Depends(get_context),
                  service=Depends(get_booking_service)):
    return service.confirm(ctx, booking_id, payload.payment_method)


@router.post("/{booking_id}/cancel")
async def cancel(booking_id: str,
                 ctx: SessionContext = Depends(get_context),
                 service=Depends(get_booking_service)):
    status = service.cancel(ctx, booking_id)
    return {"booking_id": booking_id, "status": status}

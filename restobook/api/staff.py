from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from restobook.api.deps import get_booking_service, get_staff_role
from restobook.models.schemas import Booking, DishLine, Role, Table
from restobook.services.status import valid_next_statuses

router = APIRouter(prefix="/staff/bookings", tags=["staff"])


class StatusPayload(BaseModel):
    status: str
    # Status the caller last saw; a stale value is rejected
    expected: Optional[str] = None


class TablePayload(BaseModel):
    table_id: str


@router.get("", response_model=List[Booking])
async def list_bookings(booking_date: Optional[date] = None, status: Optional[str] = None,
                        role: Role = Depends(get_staff_role),
                        service=Depends(get_booking_service)):
    return service.list_bookings(role, booking_date=booking_date, status=status)


@router.get("/{booking_id}/transitions")
async def transitions(booking_id: str,
                      role: Role = Depends(get_staff_role),
                      service=Depends(get_booking_service)):
    booking = service.get_booking(booking_id)
    allowed = sorted(s.value for s in valid_next_statuses(booking.status, role))
    return {"booking_id": booking_id, "status": booking.status, "allowed": allowed}


@router.put("/{booking_id}/status", response_model=Booking)
async def change_status(booking_id: str, payload: StatusPayload,
                        role: Role = Depends(get_staff_role),
                        service=Depends(get_booking_service)):
    return service.change_status(booking_id, payload.status, role, expected=payload.expected)


@router.put("/{booking_id}/dishes", response_model=Booking)
async def update_dishes(booking_id: str, dish_lines: List[DishLine],
                        role: Role = Depends(get_staff_role),
                        service=Depends(get_booking_service)):
    return service.staff_update_dishes(booking_id, dish_lines)


@router.put("/{booking_id}/table", response_model=Table)
async def assign_table(booking_id: str, payload: TablePayload,
                       role: Role = Depends(get_staff_role),
                       service=Depends(get_booking_service)):
    return service.staff_assign_table(booking_id, payload.table_id)

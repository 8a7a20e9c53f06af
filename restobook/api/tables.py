from datetime import date, time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from restobook.api.deps import get_booking_service, get_role
from restobook.models.schemas import Role, Table

router = APIRouter(prefix="/tables", tags=["tables"])


class TableCreate(BaseModel):
    table_number: str
    capacity: int


@router.get("/available", response_model=List[Table])
async def available_tables(booking_date: date, start_time: time,
                           exclude_booking_id: Optional[str] = None,
                           service=Depends(get_booking_service)):
    return service.allocator.list_available(booking_date, start_time, exclude_booking_id)


@router.post("", response_model=Table, status_code=201)
async def create_table(payload: TableCreate,
                       role: Role = Depends(get_role),
                       service=Depends(get_booking_service)):
    if role != Role.FRONT_DESK:
        raise HTTPException(status_code=403, detail="Front desk only")
    return service.allocator.create_table(payload.table_number, payload.capacity)

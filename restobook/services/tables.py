import logging
import re
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from restobook.config import settings
from restobook.exceptions import ConflictError, NotFoundError, ValidationError
from restobook.models.schemas import ACTIVE_STATUSES, Booking, OrderType, Table

logger = logging.getLogger(__name__)

TABLE_NUMBER_RE = re.compile(r"(?=.*[A-Za-z])(?=.*\d)\S{1,10}")
TABLE_SORT_RE = re.compile(r"^(.*?)(\d+)$")


def table_sort_key(table: Table) -> Tuple[int, str, int]:
    """Capacity first, then letter prefix, then numeric suffix (A2 before A10)."""
    match = TABLE_SORT_RE.match(table.table_number)
    if match:
        return table.capacity, match.group(1).upper(), int(match.group(2))
    return table.capacity, table.table_number.upper(), -1


def validate_table_number(value: str) -> str:
    if not value or not TABLE_NUMBER_RE.fullmatch(value):
        raise ValidationError(
            "Table number must be 1-10 characters with at least one letter and one digit and no spaces",
            field="table_number",
        )
    return value


def end_time_for(start_time: time, duration_minutes: int = None) -> time:
    minutes = duration_minutes or settings.BOOKING_DURATION_MINUTES
    return (datetime.combine(date.min, start_time) + timedelta(minutes=minutes)).time()


def overlaps(a: Tuple[datetime, datetime], b: Tuple[datetime, datetime]) -> bool:
    return a[0] < b[1] and b[0] < a[1]


class TableAllocator:
    def __init__(self, store=None, duration_minutes: int = None):
        if store is None:
            from restobook.services.sheets import sheets_client
            store = sheets_client
        self.store = store
        self.duration_minutes = duration_minutes or settings.BOOKING_DURATION_MINUTES

    def _window(self, booking_date: date, start_time: time) -> Tuple[datetime, datetime]:
        start = datetime.combine(booking_date, start_time)
        return start, start + timedelta(minutes=self.duration_minutes)

    def _blocked_table_ids(self, window: Tuple[datetime, datetime],
                           exclude_booking_id: Optional[str] = None) -> set:
        booking_date = window[0].date()
        blocked = set()
        # A window starting late in the evening can reach bookings on the next day
        candidates = (
            self.store.list_bookings(booking_date)
            + self.store.list_bookings(booking_date + timedelta(days=1))
            + self.store.list_bookings(booking_date - timedelta(days=1))
        )
        for booking in candidates:
            if not booking.table_id or booking.booking_id == exclude_booking_id:
                continue
            if booking.status not in ACTIVE_STATUSES:
                continue
            if overlaps(window, booking.window()):
                blocked.add(booking.table_id)
        return blocked

    def list_available(self, booking_date: date, start_time: time,
                       exclude_booking_id: Optional[str] = None) -> List[Table]:
        """Every table, annotated with availability for the window starting at ``start_time``"""
        blocked = self._blocked_table_ids(self._window(booking_date, start_time), exclude_booking_id)
        tables = [
            table.model_copy(update={'is_available': table.table_id not in blocked})
            for table in self.store.list_tables()
        ]
        return sorted(tables, key=table_sort_key)

    def check_table(self, table_id: str, booking_date: date, start_time: time,
                    exclude_booking_id: Optional[str] = None) -> Table:
        """Raises unless ``table_id`` is free for the window; used before a booking exists."""
        table = self.store.get_table(table_id)
        if table is None:
            raise NotFoundError("Table", table_id)
        if table_id in self._blocked_table_ids(self._window(booking_date, start_time), exclude_booking_id):
            raise ConflictError(f"Table {table.table_number} is no longer available")
        return table

    def validate_assignment(self, booking_id: str, table_id: str,
                            booking: Optional[Booking] = None) -> Table:
        """Re-reads current bookings, so a table taken since listing is caught here."""
        booking = booking or self.store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        if booking.order_type == OrderType.DELIVERY:
            raise ConflictError("Delivery bookings cannot hold a table", current_status=booking.status.value)
        if booking.is_closed:
            raise ConflictError(
                f"Booking {booking_id} is {booking.status.value}; its table can no longer change",
                current_status=booking.status.value,
            )

        table = self.store.get_table(table_id)
        if table is None:
            raise NotFoundError("Table", table_id)
        if booking.table_id == table_id:
            return table

        blocked = self._blocked_table_ids(booking.window(), exclude_booking_id=booking_id)
        if table_id in blocked:
            logger.warning(f"Table {table_id} taken while booking {booking_id} was choosing it")
            raise ConflictError(f"Table {table.table_number} is no longer available")
        return table

    def assign_table(self, booking_id: str, table_id: str) -> Table:
        table = self.validate_assignment(booking_id, table_id)
        if not self.store.reassign_table(booking_id, table_id):
            raise NotFoundError("Booking", booking_id)
        logger.info(f"Booking {booking_id} assigned to table {table.table_number}")
        return table

    def create_table(self, table_number: str, capacity: int) -> Table:
        validate_table_number(table_number)
        if not 1 <= capacity <= 20:
            raise ValidationError("Capacity must be between 1 and 20", field="capacity")
        existing = {t.table_number.lower() for t in self.store.list_tables()}
        if table_number.lower() in existing:
            raise ConflictError(f"Table {table_number} already exists")
        table = self.store.create_table(table_number, capacity)
        logger.info(f"Created table {table.table_number} ({table.capacity} seats)")
        return table

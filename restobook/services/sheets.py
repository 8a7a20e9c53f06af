import json
import logging
from datetime import date, datetime, time
from typing import Dict, List, Optional, Tuple

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from restobook.config import settings
from restobook.models.schemas import (
    Booking,
    BookingDetails,
    BookingStatus,
    CustomerAccount,
    DishLine,
    GuestContact,
    OrderMode,
    PaymentOrder,
    PaymentStatus,
    Rank,
    Table,
    Voucher,
)

logger = logging.getLogger(__name__)

# Column layout of the bookings sheet (A..Q)
BOOKING_COLUMNS = [
    'booking_id', 'user_id', 'name', 'email', 'phone', 'address',
    'order_type', 'order_mode', 'booking_date', 'start_time', 'end_time',
    'table_id', 'status', 'dish_lines', 'note', 'voucher_code', 'created_at',
]
BOOKING_COL = {name: chr(ord('A') + i) for i, name in enumerate(BOOKING_COLUMNS)}

TIME_FORMAT = '%H:%M'
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M'


def _pad(row: List, width: int) -> List:
    # Sheets API trims trailing empty cells
    return list(row) + [''] * (width - len(row))


def _next_id(rows: List[List], prefix: str, digits: int = 4) -> str:
    last_num = 0
    for row in rows:
        if row and row[0].startswith(prefix):
            try:
                num = int(row[0][len(prefix):])
            except ValueError:
                continue
            last_num = max(last_num, num)
    return f"{prefix}{last_num + 1:0{digits}d}"


class SheetsClient:
    """Google Sheets storage for bookings, tables, vouchers and payment orders."""

    def __init__(self, spreadsheet_id: str = None, credentials_file: str = None):
        self.spreadsheet_id = spreadsheet_id or settings.GOOGLE_SHEETS_ID
        self.credentials_file = credentials_file or settings.GOOGLE_CREDENTIALS_JSON
        self._service = None

    @property
    def service(self):
        if self._service is None:
            credentials = service_account.Credentials.from_service_account_file(
                self.credentials_file,
                scopes=['https://www.googleapis.com/auth/spreadsheets']
            )
            self._service = build('sheets', 'v4', credentials=credentials)
        return self._service

    def _execute(self, request, what: str):
        try:
            return request.execute()
        except HttpError:
            logger.exception(f"Sheets request failed: {what}")
            raise

    def _read_range(self, range_name: str) -> List[List]:
        result = self._execute(
            self.service.spreadsheets().values().get(
                spreadsheetId=self.spreadsheet_id,
                range=range_name
            ),
            f"read {range_name}",
        )
        return result.get('values', [])

    def _append_range(self, range_name: str, values: List[List]):
        self._execute(
            self.service.spreadsheets().values().append(
                spreadsheetId=self.spreadsheet_id,
                range=range_name,
                valueInputOption='RAW',
                insertDataOption='INSERT_ROWS',
                body={'values': values}
            ),
            f"append {range_name}",
        )

    def _update_range(self, range_name: str, values: List[List]):
        self._execute(
            self.service.spreadsheets().values().update(
                spreadsheetId=self.spreadsheet_id,
                range=range_name,
                valueInputOption='RAW',
                body={'values': values}
            ),
            f"update {range_name}",
        )

    def _clear_range(self, range_name: str):
        self._execute(
            self.service.spreadsheets().values().clear(
                spreadsheetId=self.spreadsheet_id,
                range=range_name,
                body={}
            ),
            f"clear {range_name}",
        )

    def _find_row(self, range_name: str, key: str, width: int) -> Tuple[Optional[int], Optional[List]]:
        """Row number (1-based, header on row 1) and padded values of the row keyed by ``key``."""
        rows = self._read_range(range_name)
        for idx, row in enumerate(rows, start=2):
            if row and row[0] == key:
                return idx, _pad(row, width)
        return None, None

    # Tables

    @staticmethod
    def _row_to_table(row: List) -> Table:
        return Table(table_id=row[0], table_number=row[1], capacity=int(row[2]))

    def list_tables(self) -> List[Table]:
        rows = self._read_range('tables!A2:C')
        return [self._row_to_table(row) for row in rows if len(row) >= 3]

    def get_table(self, table_id: str) -> Optional[Table]:
        _, row = self._find_row('tables!A2:C', table_id, 3)
        return self._row_to_table(row) if row else None

    def create_table(self, table_number: str, capacity: int) -> Table:
        rows = self._read_range('tables!A2:A')
        table = Table(
            table_id=_next_id(rows, 'T', digits=3),
            table_number=table_number,
            capacity=capacity,
        )
        self._append_range('tables!A:C', [[table.table_id, table.table_number, table.capacity]])
        return table

    # Bookings

    @staticmethod
    def _row_to_booking(row: List) -> Booking:
        row = _pad(row, len(BOOKING_COLUMNS))
        data = dict(zip(BOOKING_COLUMNS, row))
        return Booking(
            booking_id=data['booking_id'],
            user_id=data['user_id'] or None,
            contact=GuestContact(
                name=data['name'],
                email=data['email'],
                phone=data['phone'],
                address=data['address'] or None,
            ),
            order_type=data['order_type'] or 'dine-in',
            order_mode=data['order_mode'] or None,
            booking_date=date.fromisoformat(data['booking_date']),
            start_time=datetime.strptime(data['start_time'], TIME_FORMAT).time(),
            end_time=datetime.strptime(data['end_time'], TIME_FORMAT).time(),
            table_id=data['table_id'] or None,
            status=data['status'],
            dish_lines=[DishLine(**line) for line in json.loads(data['dish_lines'] or '[]')],
            note=data['note'],
            voucher_code=data['voucher_code'] or None,
            created_at=datetime.strptime(data['created_at'], TIMESTAMP_FORMAT),
        )

    def list_bookings(self, booking_date: date = None) -> List[Booking]:
        """Bookings on a date, or all bookings"""
        rows = self._read_range('bookings!A2:Q')
        bookings = []
        for row in rows:
            if len(row) < 13:
                continue
            if booking_date is None or row[8] == booking_date.isoformat():
                bookings.append(self._row_to_booking(row))
        return bookings

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        _, row = self._find_row('bookings!A2:Q', booking_id, len(BOOKING_COLUMNS))
        return self._row_to_booking(row) if row else None

    def create_booking(self, details: BookingDetails, user_id: Optional[str], end_time: time) -> str:
        """Appends a Pending booking with no dishes and returns its id"""
        rows = self._read_range('bookings!A2:A')
        booking_id = _next_id(rows, 'B')
        created_at = datetime.now().strftime(TIMESTAMP_FORMAT)
        contact = details.contact

        row = [[
            booking_id,
            user_id or '',
            contact.name,
            contact.email,
            contact.phone,
            contact.address or '',
            details.order_type.value,
            '',
            details.booking_date.isoformat(),
            details.start_time.strftime(TIME_FORMAT),
            end_time.strftime(TIME_FORMAT),
            details.table_id or '',
            BookingStatus.PENDING.value,
            '[]',
            '',
            '',
            created_at,
        ]]
        self._append_range('bookings!A:Q', row)
        return booking_id

    def _update_booking_cells(self, booking_id: str, updates: Dict[str, object]) -> bool:
        idx, _ = self._find_row('bookings!A2:A', booking_id, 1)
        if idx is None:
            return False
        for column, value in updates.items():
            col = BOOKING_COL[column]
            self._update_range(f'bookings!{col}{idx}', [[value]])
        return True

    def update_booking_dishes(self, booking_id: str, dish_lines: List[DishLine], order_mode: OrderMode) -> bool:
        return self._update_booking_cells(booking_id, {
            'order_mode': OrderMode(order_mode).value,
            'dish_lines': json.dumps([line.model_dump() for line in dish_lines]),
        })

    def update_booking_note(self, booking_id: str, note: str) -> bool:
        return self._update_booking_cells(booking_id, {'note': note})

    def update_booking_status(self, booking_id: str, status: BookingStatus) -> bool:
        return self._update_booking_cells(booking_id, {'status': BookingStatus(status).value})

    def update_booking_details(self, booking_id: str, booking_date: date, start_time: time, end_time: time) -> bool:
        return self._update_booking_cells(booking_id, {
            'booking_date': booking_date.isoformat(),
            'start_time': start_time.strftime(TIME_FORMAT),
            'end_time': end_time.strftime(TIME_FORMAT),
        })

    def update_booking_voucher(self, booking_id: str, code: Optional[str]) -> bool:
        return self._update_booking_cells(booking_id, {'voucher_code': code or ''})

    def reassign_table(self, booking_id: str, table_id: str) -> bool:
        return self._update_booking_cells(booking_id, {'table_id': table_id})

    # Vouchers

    @staticmethod
    def _row_to_voucher(row: List) -> Voucher:
        row = _pad(row, 6)
        return Voucher(
            voucher_id=row[0],
            code=row[1],
            discount_percent=int(row[2]),
            expires_at=datetime.fromisoformat(row[3]),
            is_used=row[4].upper() == 'TRUE',
            bound_user_id=row[5] or None,
        )

    def lookup_voucher(self, code: str) -> Optional[Voucher]:
        rows = self._read_range('vouchers!A2:F')
        for row in rows:
            if len(row) >= 5 and row[1] == code:
                return self._row_to_voucher(row)
        return None

    def mark_voucher_used(self, voucher_id: str) -> bool:
        """False when the voucher is missing or was already used"""
        idx, row = self._find_row('vouchers!A2:F', voucher_id, 6)
        if idx is None or row[4].upper() == 'TRUE':
            return False
        self._update_range(f'vouchers!E{idx}', [['TRUE']])
        return True

    # Payment orders

    @staticmethod
    def _row_to_payment(row: List) -> PaymentOrder:
        row = _pad(row, 7)
        return PaymentOrder(
            order_id=row[0],
            booking_id=row[1],
            user_id=row[2] or None,
            amount=int(row[3]),
            voucher_id=row[4] or None,
            status=row[5],
            created_at=datetime.strptime(row[6], TIMESTAMP_FORMAT),
        )

    def create_payment_order(self, booking_id: str, user_id: Optional[str], amount: int,
                             voucher_id: Optional[str] = None) -> str:
        rows = self._read_range('payments!A2:A')
        order_id = _next_id(rows, 'O')
        created_at = datetime.now().strftime(TIMESTAMP_FORMAT)
        self._append_range('payments!A:G', [[
            order_id,
            booking_id,
            user_id or '',
            amount,
            voucher_id or '',
            PaymentStatus.DEPOSITED.value,
            created_at,
        ]])
        return order_id

    def get_payment_order(self, order_id: str) -> Optional[PaymentOrder]:
        _, row = self._find_row('payments!A2:G', order_id, 7)
        return self._row_to_payment(row) if row else None

    def list_payment_orders(self, booking_id: str) -> List[PaymentOrder]:
        rows = self._read_range('payments!A2:G')
        return [self._row_to_payment(row) for row in rows if len(row) >= 7 and row[1] == booking_id]

    def list_payment_orders_for_voucher(self, voucher_id: str) -> List[PaymentOrder]:
        rows = self._read_range('payments!A2:G')
        return [self._row_to_payment(row) for row in rows if len(row) >= 7 and row[4] == voucher_id]

    def update_payment_status(self, order_id: str, status: PaymentStatus) -> bool:
        idx, _ = self._find_row('payments!A2:A', order_id, 1)
        if idx is None:
            return False
        self._update_range(f'payments!F{idx}', [[PaymentStatus(status).value]])
        return True

    # Customers

    def clear_cart(self, user_id: str):
        rows = self._read_range('carts!A2:C')
        for idx, row in enumerate(rows, start=2):
            if row and row[0] == user_id:
                self._clear_range(f'carts!A{idx}:C{idx}')

    def get_ranks(self) -> List[Rank]:
        rows = self._read_range('ranks!A2:C')
        ranks = [
            Rank(rank_name=row[0], min_spending=int(row[1]), benefits=row[2] if len(row) > 2 else None)
            for row in rows if len(row) >= 2
        ]
        return sorted(ranks, key=lambda r: r.min_spending)

    def get_customer(self, user_id: str) -> Optional[CustomerAccount]:
        _, row = self._find_row('customers!A2:B', user_id, 2)
        if row is None:
            return None
        return CustomerAccount(user_id=row[0], total_spending=int(row[1] or 0))

    def add_spending(self, user_id: str, amount: int) -> int:
        """Adds ``amount`` to the customer's cumulative spending, returns the new total"""
        idx, row = self._find_row('customers!A2:B', user_id, 2)
        if idx is None:
            self._append_range('customers!A:B', [[user_id, amount]])
            return amount
        total = int(row[1] or 0) + amount
        self._update_range(f'customers!B{idx}', [[total]])
        return total


sheets_client = SheetsClient()

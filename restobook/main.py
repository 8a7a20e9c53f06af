from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from restobook.api import payment, staff, tables, wizard
from restobook.config import settings
from restobook.exceptions import BookingError
import logging
import sys

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, stream=sys.stdout, force=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Booking engine starting, sheet {settings.GOOGLE_SHEETS_ID or '<unset>'}")
    if not settings.PAYMENT_HASH_SECRET:
        logger.warning("PAYMENT_HASH_SECRET is not set, payment callbacks will be rejected")
    yield
    logger.info("Booking engine stopped")


app = FastAPI(title="restobook", lifespan=lifespan, debug=settings.DEBUG)
app.include_router(wizard.router)
app.include_router(tables.router)
app.include_router(staff.router)
app.include_router(payment.router)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 409:
        logger.warning(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/")
async def root():
    return {"status": "ok", "service": "restobook"}


@app.get("/health")
async def health():
    return {"status": "healthy"}

from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_TTL: int = 3600

    # Google Sheets
    GOOGLE_SHEETS_ID: str = ""
    GOOGLE_CREDENTIALS_JSON: str = "credentials.json"

    # Billing
    DEPOSIT_RATE: Decimal = Decimal("0.30")
    FREE_SHIPPING_THRESHOLD: int = 800_000
    SHIPPING_FEE: int = 25_000

    # Reservations
    BOOKING_DURATION_MINUTES: int = 120

    # Payment gateway
    PAYMENT_URL: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    PAYMENT_TMN_CODE: str = ""
    PAYMENT_HASH_SECRET: str = ""
    PAYMENT_RETURN_URL: str = "http://localhost:8000/payment/return"

    # App
    DEBUG: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DB_URL: str
    SQL_ECHO: bool = False
    DB_STEP_TIMEOUT_SECONDS: float = 10.0

    INVOICE_PREFIX: str = "NM"
    INVOICE_NUMBER_WIDTH: int = 4
    INVOICE_ALLOCATION_ATTEMPTS: int = 3

    # 100 points -> Rs 500 at Rs 5/point, 1 point earned per Rs 100 paid
    LOYALTY_BLOCK_SIZE: int = 100
    LOYALTY_POINT_VALUE: Decimal = Decimal("5")
    LOYALTY_EARN_DIVISOR: int = 100
    LOYALTY_OVER_TOTAL_POLICY: str = "reject"

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()

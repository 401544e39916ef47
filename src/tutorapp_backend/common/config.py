'''
Holds all the configurations
'''
import datetime
from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """
    Manages application configuration using environment variables.
    """
    # Application Metadata
    APP_NAME: str = "TutorApp Backend"
    APP_VERSION: str = "0.1.0"
    APP_DESCRIPTION: str = "Lesson lifecycle and earnings-approval API for the TutorApp marketplace."
    TEST_MODE: bool = False

    # Database URL
    DATABASE_URL_PROD: str
    DATABASE_URL_TEST: str
    @property
    def database_url(self) -> str:
        """
        Dynamically returns the correct database URL based on the test_mode flag.
        """
        if self.TEST_MODE:
            return self.DATABASE_URL_TEST
        return self.DATABASE_URL_PROD

    # JWT Settings
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # CORS
    BACKEND_CORS_ORIGINS: list[str] = []

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_INTERVAL_MINUTES: int = 5

    # Lesson policy
    LATE_CANCELLATION_HOURS: int = 24
    MAX_LESSONS_PER_BUNDLE: int = 52

    # Earnings
    EARNINGS_EPOCH: datetime.date = datetime.date(2024, 1, 1)  # a Monday
    EARNINGS_PERIOD_DAYS: int = 14
    ENHANCED_EARNINGS_PERIODS: int = 6
    DEFAULT_IN_PERSON_BONUS: Decimal = Decimal("5.00")
    DEFAULT_INVOICE_MARKUP: Decimal = Decimal("15.00")

    # Notifications
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None
    NOTIFICATION_MAX_ATTEMPTS: int = 3
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0

    class Config:
        env_file = ".env" # automatically loads the .env

# Create a single, importable instance of the settings
settings = Settings()

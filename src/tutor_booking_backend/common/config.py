'''
Holds all the configurations
'''
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """
    Manages application configuration using environment variables.
    """
    # Application Metadata
    APP_NAME: str = "Tutor Booking Backend"
    APP_VERSION: str = "0.1.0"
    APP_DESCRIPTION: str = "Scheduling and credit-reservation engine for one-on-one tutoring sessions."
    TEST_MODE: bool = False
    LOG_LEVEL: str = "INFO"

    # Database URL
    DATABASE_URL_PROD: str = "postgresql+asyncpg://localhost:5432/tutor_booking"
    DATABASE_URL_TEST: str = "sqlite+aiosqlite:///:memory:"
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
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15

    BACKEND_CORS_ORIGINS: list[str] = []

    # Scheduling defaults (used when the pricing collaborator left a value unset)
    DEFAULT_BASE_INTERVAL_MINUTES: int = 20
    DEFAULT_CREDIT_FACTOR: int = 1
    DEFAULT_MIN_NOTICE_MINUTES: int = 60
    MAX_CONTRACT_DAYS: int = 366

    # Other settings
    FIRST_DAY_OF_WEEK: int = 6  # 6 is Sunday, so weeks end on Saturday

    model_config = SettingsConfigDict(env_file=".env") # automatically loads the .env

# Create a single, importable instance of the settings
settings = Settings()

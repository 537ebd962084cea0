from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Haulage Dispatch API"
    # Comma-separated origins for CORS. If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str

    DATABASE_URL: str
    DB_POOL_TIMEOUT: int = 10  # seconds to wait for a pooled connection

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Routing / geocoding (Google Distance Matrix + Geocoding)
    GOOGLE_MAPS_API_KEY: str = ""
    MAPS_BASE_URL: str = "https://maps.googleapis.com/maps/api"
    MAPS_TIMEOUT_SECONDS: float = 8.0

    # Razorpay (orders + refunds over REST, HMAC verification of checkout callback)
    RAZORPAY_HOST: str = "api.razorpay.com"
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_TIMEOUT_SECONDS: float = 15.0
    RAZORPAY_SANDBOX: bool = False  # If True, skip real gateway calls and return synthetic ids
    CURRENCY: str = "INR"

    # Dispatch
    DISPATCH_RADIUS_KM: float = 3.0
    DISPATCH_TIMEOUT_SECONDS: int = 120
    OUTSTATION_THRESHOLD_KM: float = 30.0

    # Live tracking relay (Celery -> Redis pub/sub)
    RELAY_ENABLED: bool = True


settings = Settings()

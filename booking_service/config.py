from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./bookings.db"

    # Marketplace listing API. When unset, homestays and guides are
    # looked up in the booking database itself.
    RESOURCE_SERVICE_URL: str | None = None
    RESOURCE_SERVICE_TIMEOUT: float = 5.0

    BOOKING_NUMBER_PREFIX: str = "BK"
    BOOKING_NUMBER_MAX_ATTEMPTS: int = 3

    DEFAULT_PAGE_LIMIT: int = 10
    MAX_PAGE_LIMIT: int = 100

    # --- Outbox / Kafka ---
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:9092"
    KAFKA_BOOKING_TOPIC: str = "booking_events"
    OUTBOX_POLLER_ENABLED: bool = True
    OUTBOX_POLL_INTERVAL_SECONDS: int = 5

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()

"""Settings for the shipment event pipeline."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    database_url: str = Field("", validation_alias="DATABASE_URL")
    database_host: str = Field("localhost", validation_alias="DATABASE_HOST")
    database_port: int = Field(27017, validation_alias="DATABASE_PORT")
    database_user: str = Field("", validation_alias="DATABASE_USER")
    database_password: str = Field("", validation_alias="DATABASE_PASSWORD")
    database_name: str = Field("shipment_tracking", validation_alias="DATABASE_NAME")
    database_connection_timeout_ms: int = Field(5000, validation_alias="DATABASE_CONNECTION_TIMEOUT_MS")

    event_queue_collection: str = Field("event_queue", validation_alias="EVENT_QUEUE_COLLECTION")
    audit_collection: str = Field("audit_history", validation_alias="AUDIT_COLLECTION")
    orders_collection: str = Field("orders", validation_alias="ORDERS_COLLECTION")
    shipments_collection: str = Field("shipments", validation_alias="SHIPMENTS_COLLECTION")
    purchase_orders_collection: str = Field("purchase_orders", validation_alias="PURCHASE_ORDERS_COLLECTION")
    customer_threads_collection: str = Field("customer_threads", validation_alias="CUSTOMER_THREADS_COLLECTION")

    repository_backend: str = Field("mongo", validation_alias="REPOSITORY_BACKEND")
    notification_backend: str = Field("knock", validation_alias="NOTIFICATION_BACKEND")

    initial_backoff_seconds: float = Field(1.0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, validation_alias="MAX_BACKOFF_SECONDS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")
    max_connection_attempts: int = Field(10, validation_alias="MAX_CONNECTION_ATTEMPTS")

    dispatch_batch_size: int = Field(25, validation_alias="DISPATCH_BATCH_SIZE")
    # How long a dispatcher owns a claimed event before another claim may take it.
    visibility_timeout_ms: int = Field(60_000, validation_alias="VISIBILITY_TIMEOUT_MS")
    # Failed deliveries allowed per event. Reaching it dead-letters the event.
    event_max_attempts: int = Field(5, validation_alias="EVENT_MAX_ATTEMPTS")
    retry_delay_seconds: float = Field(30.0, validation_alias="RETRY_DELAY_SECONDS")
    max_retry_delay_seconds: float = Field(900.0, validation_alias="MAX_RETRY_DELAY_SECONDS")

    knock_api_key: str = Field("", validation_alias="KNOCK_API_KEY")
    knock_base_url: str = Field("https://api.knock.app/v1", validation_alias="KNOCK_BASE_URL")
    notification_connect_timeout_seconds: float = Field(5.0, validation_alias="NOTIFICATION_CONNECT_TIMEOUT_SECONDS")
    notification_read_timeout_seconds: float = Field(15.0, validation_alias="NOTIFICATION_READ_TIMEOUT_SECONDS")
    customer_notification_workflow: str = Field(
        "customer-tracking-update",
        validation_alias="CUSTOMER_NOTIFICATION_WORKFLOW",
    )
    internal_notification_workflow: str = Field(
        "shipment-internal-alert",
        validation_alias="INTERNAL_NOTIFICATION_WORKFLOW",
    )
    internal_recipient_ids: list[str] = Field(default_factory=list, validation_alias="INTERNAL_RECIPIENT_IDS")

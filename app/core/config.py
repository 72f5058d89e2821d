from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        validate_assignment=True,
    )

    app_env: str = "dev"
    database_url: str

    telegram_bot_token: str
    telegram_target_chat_id: str  # Group/channel that receives finished submissions
    telegram_admin_chat_id: str | None = None  # Error reports; falls back to target chat
    telegram_webhook_secret: str | None = None  # Matches setWebhook secret_token when set
    telegram_api_base_url: str = "https://api.telegram.org"
    telegram_dry_run: bool = True  # Set to False in production to enable real sending

    # Delivery: "inline" sends right after the user confirms,
    # "worker" queues as pending_send for the sweep job
    delivery_mode: str = "inline"
    worker_batch_limit: int = 5
    worker_max_attempts: int = 5  # Rate-limit reschedules before giving up
    worker_api_key: str | None = None  # Optional - if not set, worker trigger is unprotected (dev mode)

    # Photo batches (sendMediaGroup accepts at most 10 items)
    photo_chunk_size: int = 10
    photo_chunk_delay_min_ms: int = 200
    photo_chunk_delay_max_ms: int = 400

    # Dialogue limits
    min_photos: int = 1
    achievement_text_max_length: int = 700

    copy_locale: str = "ru_RU"

    @property
    def admin_chat_id(self) -> str:
        return self.telegram_admin_chat_id or self.telegram_target_chat_id


# Settings will load from environment variables or .env file
# Required fields will raise ValidationError if missing (fail-fast)
settings = Settings()

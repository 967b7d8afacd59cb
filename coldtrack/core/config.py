from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # REST backend
    api_url: str = Field(default="http://localhost:8000/api")
    api_timeout_seconds: float = Field(default=30.0)
    api_max_retries: int = Field(default=0)
    api_retry_backoff_seconds: float = Field(default=1.0)
    identity_token: str = Field(default="")

    # MQTT live feed
    mqtt_broker_host: str = Field(default="localhost")
    mqtt_broker_port: int = Field(default=1883)
    mqtt_username: str = Field(default="")
    mqtt_password: str = Field(default="")
    feed_path_template: str = Field(default="/status/{feed_path}/live")

    # Realtime view
    history_size: int = Field(default=20)
    display_timezone: str = Field(default="America/Santiago")

    # Selection persistence
    selection_store: str = Field(default="file")
    selection_store_path: str = Field(default=".coldtrack/selection.json")
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Reports
    report_output_dir: str = Field(default="reports")

    # App
    app_env: str = Field(default="development")
    app_url: str = Field(default="http://localhost:5173")
    log_level: str = Field(default="INFO")


# Singleton instance
settings = Settings()

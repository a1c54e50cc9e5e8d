from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Mushroom Chamber API"
    timezone: str = "Asia/Kuala_Lumpur"

    # Storage
    sqlite_path: str = Field(default="chamber.db")
    default_device_id: str = "esp32-main"

    # Logging ("" disables the rotating file)
    log_file: str = "chamber.log"
    log_level: str = "INFO"

    # Broadcast fanout
    subscriber_buffer_size: int = 100   # pending messages before a slow client is dropped
    subscriber_send_timeout_seconds: float = 5.0

    # Actuator commands
    device_lock_timeout_seconds: float = 5.0

    # System status: device is "online" if it reported within this window
    online_threshold_seconds: int = 300

    # Retention (0 disables the background purge)
    retention_days: int = 30
    retention_interval_seconds: int = 3600

    # Sensor mode: "sim" generates readings in-process, "device" waits for the ESP32
    sensor_mode: str = "sim"
    sample_seconds: int = 5

    # Query limits
    history_default_limit: int = 50
    readings_max_limit: int = 5000


settings = Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""  # anon key; row-level security stays in force

    # Persisted auth session and profile-setup progress
    session_file: str = ".ordertrack/session.json"
    setup_file: str = ".ordertrack/setup.json"

    # Order reference images (client-side guards, not a security boundary)
    order_images_bucket: str = "order-images"
    max_images_per_order: int = 5
    max_image_bytes: int = 5 * 1024 * 1024

    # Remote calls
    request_timeout_seconds: float = 30.0
    gate_loading_timeout_seconds: float = 10.0

    # Profile settle poll after sign-up / repair
    profile_poll_attempts: int = 5
    profile_poll_initial_delay: float = 0.2
    profile_poll_max_delay: float = 2.0

    password_reset_redirect_url: Optional[str] = None

    # App
    app_name: str = "ordertrack"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"
    auth_rate_limit: str = "10/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()

from pydantic import field_validator
from pydantic_settings import BaseSettings

_DEFAULT_JWT_SECRET = "dev-only-secret-change-me-before-deploying-anywhere"


class Settings(BaseSettings):
    app_url: str = "http://localhost:3000"  # dashboard origin, also the CORS fallback
    environment: str = "development"
    log_level: str = "info"
    supabase_url: str = "http://localhost:54321"
    supabase_service_key: str = ""
    jwt_secret: str = _DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expire_hours: int = 24
    remember_me_expire_days: int = 30
    # In-memory limiter housekeeping
    throttle_sweep_interval_seconds: int = 300  # 5 minutes
    login_guard_sweep_interval_seconds: int = 600  # 10 minutes
    login_max_attempts: int = 5
    login_lockout_seconds: int = 900  # 15 minutes
    login_attempt_window_seconds: int = 900

    @field_validator("jwt_secret")
    @classmethod
    def jwt_secret_strength(cls, v: str, info) -> str:
        if len(v) < 32:
            raise ValueError("jwt_secret must be at least 32 characters")
        env = info.data.get("environment", "development")
        if env != "development" and v == _DEFAULT_JWT_SECRET:
            raise ValueError("jwt_secret must be changed from the default outside development")
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    model_config = {"env_file": ".env"}


settings = Settings()

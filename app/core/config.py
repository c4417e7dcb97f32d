from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import PostgresDsn, RedisDsn, computed_field
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True, extra="ignore")

    ENV: str = "production"

    # Security: no default credentials - set them in .env
    POSTGRES_USER: str = "dinedate"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "dinedate"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432

    # Overrides the DSN built from POSTGRES_* (e.g. sqlite+aiosqlite for local runs)
    DATABASE_URL_OVERRIDE: Optional[str] = None

    @computed_field
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return str(PostgresDsn.build(
            scheme="postgresql+asyncpg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_HOST,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        ))

    REDIS_URL: RedisDsn = "redis://localhost:6379/0"

    # Admin endpoints (manual sweep trigger)
    ADMIN_TOKEN: Optional[str] = None

    # Settlement worker
    SETTLEMENT_INTERVAL_MINUTES: int = 60
    SETTLEMENT_BATCH_LIMIT: int = 500
    AUTO_COMPLETE_AFTER_HOURS: int = 4   # grace after date_time before auto-complete
    AUTO_REJECT_AFTER_HOURS: int = 4     # grace after match window closes before expiry
    SCHEDULER_ENABLED: bool = True

    # Referral rewards (VND)
    REFERRER_REWARD: int = 50_000
    REFERRED_REWARD: int = 30_000

    # Active order caps per plan tier
    ACTIVE_ORDER_CAP_FREE: int = 1
    ACTIVE_ORDER_CAP_VIP: int = 3
    ACTIVE_ORDER_CAP_SVIP: int = 10

settings = Settings()

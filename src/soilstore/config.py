import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Load the appropriate .env file on module import
env = os.environ.get("SOILSTORE_ENV", "development").lower()
env_file = f".env.{env}"
if os.path.exists(env_file):
    load_dotenv(env_file)
else:
    # Fall back to the default .env file
    load_dotenv()


@dataclass
class Config:
    environment: str
    database_url: str
    pool_min_size: int
    pool_max_size: int
    connect_timeout: float
    retry_max_attempts: int
    retry_base_delay_ms: int
    retry_max_delay_ms: int
    max_page_size: int
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            environment=env,
            database_url=os.environ.get(
                "DATABASE_URL", "postgresql://localhost:5432/soilstore"
            ),
            pool_min_size=int(os.environ.get("DB_POOL_MIN_SIZE", "1")),
            pool_max_size=int(os.environ.get("DB_POOL_MAX_SIZE", "5")),
            connect_timeout=float(os.environ.get("DB_CONNECT_TIMEOUT", "10")),
            retry_max_attempts=int(os.environ.get("RETRY_MAX_ATTEMPTS", "3")),
            retry_base_delay_ms=int(os.environ.get("RETRY_BASE_DELAY_MS", "1000")),
            retry_max_delay_ms=int(os.environ.get("RETRY_MAX_DELAY_MS", "10000")),
            max_page_size=int(os.environ.get("MAX_PAGE_SIZE", "100")),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


config = Config.from_env()

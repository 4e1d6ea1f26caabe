"""
SkyWings configuration
Loads environment variables (optionally from a .env file) into a Settings object
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() == 'true'


class Settings(BaseModel):
    database_url: str = 'sqlite+aiosqlite:///./skywings.db'
    redis_url: str = 'redis://localhost:6379/0'

    # Per-flight locking: "local" (asyncio, single process) or "redis"
    flight_lock_backend: str = 'local'
    flight_lock_timeout_seconds: float = 10.0
    flight_lock_blocking_timeout_seconds: float = 5.0
    seat_allocation_max_attempts: int = 5

    default_seat_columns: int = 6

    # Payments - sandbox bypass is only for staging (PAYMENTS_DRY_RUN=true)
    payment_gateway_secret: str = ''
    payments_dry_run: bool = False
    sandbox_payment_prefix: str = 'pay_'

    cors_origins: List[str] = ['*']
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current process environment"""
        return cls(
            database_url=os.getenv('DATABASE_URL', 'sqlite+aiosqlite:///./skywings.db'),
            redis_url=os.getenv('REDIS_URL', 'redis://localhost:6379/0'),
            flight_lock_backend=os.getenv('FLIGHT_LOCK_BACKEND', 'local').lower(),
            flight_lock_timeout_seconds=float(os.getenv('FLIGHT_LOCK_TIMEOUT_SECONDS', 10)),
            flight_lock_blocking_timeout_seconds=float(os.getenv('FLIGHT_LOCK_BLOCKING_TIMEOUT_SECONDS', 5)),
            seat_allocation_max_attempts=int(os.getenv('SEAT_ALLOCATION_MAX_ATTEMPTS', 5)),
            default_seat_columns=int(os.getenv('DEFAULT_SEAT_COLUMNS', 6)),
            payment_gateway_secret=os.getenv('PAYMENT_GATEWAY_SECRET', ''),
            payments_dry_run=_env_bool('PAYMENTS_DRY_RUN'),
            sandbox_payment_prefix=os.getenv('SANDBOX_PAYMENT_PREFIX', 'pay_'),
            cors_origins=os.getenv('CORS_ORIGINS', '*').split(','),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        )


settings = Settings.from_env()

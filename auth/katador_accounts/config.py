from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ROLES = ("katador", "modelo", "admin", "agencia", "kps", "modelo_kps")
ACCOUNT_STATUSES = ("activo", "suspendido", "baneado")

_DEV_SECRET = "CHANGE_ME"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %s", name, raw, default)
        return default


def _ledger_url_from_env() -> str:
    url = os.getenv("LEDGER_DB_URL")
    if url:
        return url
    host = os.getenv("MYSQLHOST")
    if not host:
        return "sqlite:///katador_ledger.db"
    user = quote_plus(os.getenv("MYSQLUSER", "root"))
    password = quote_plus(os.getenv("MYSQLPASSWORD", ""))
    port = os.getenv("MYSQLPORT", "3306")
    database = os.getenv("MYSQLDATABASE", "railway")
    return f"mysql+pymysql://{user}:{password}@{host}:{port}/{database}"


@dataclass
class Settings:
    secret_key: str = _DEV_SECRET
    algorithm: str = "HS256"
    access_expire_minutes: int = 60 * 24
    credentials_url: str = "sqlite:///katador_identity.db"
    ledger_url: str = "sqlite:///katador_ledger.db"
    pool_size: int = 10
    db_timeout: int = 60
    port: int = 5000
    cors_origins: List[str] = field(default_factory=list)
    rate_limit_window: int = 15 * 60
    rate_limit_max: int = 100
    # Provisioning defaults
    default_plan: str = "Gratis"
    trial_days: int = 30
    initial_credits: Dict[str, int] = field(default_factory=lambda: {"katador": 10, "modelo": 10})
    # Password policy
    pwd_min_len: int = 6
    pwd_max_len: int = 256

    def initial_credits_for(self, role: str) -> int:
        return int(self.initial_credits.get(role, 0))

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Build settings from the process environment.

        A ``.env`` file (or ``env_file``) is loaded first; variables already
        present in the environment take precedence over it.
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()
        secret = os.getenv("JWT_SECRET") or _DEV_SECRET
        if secret == _DEV_SECRET:
            logger.warning("JWT_SECRET is not set; using an insecure development secret")
        origins = os.getenv("CORS_ORIGINS", "http://localhost:3000")
        return cls(
            secret_key=secret,
            algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            access_expire_minutes=_int_env("JWT_EXPIRES_MINUTES", 60 * 24),
            credentials_url=os.getenv("CREDENTIALS_DB_URL", "sqlite:///katador_identity.db"),
            ledger_url=_ledger_url_from_env(),
            pool_size=_int_env("DB_POOL_SIZE", 10),
            db_timeout=_int_env("DB_TIMEOUT", 60),
            port=_int_env("PORT", 5000),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            rate_limit_window=_int_env("RATE_LIMIT_WINDOW", 15 * 60),
            rate_limit_max=_int_env("RATE_LIMIT_MAX", 100),
            default_plan=os.getenv("DEFAULT_PLAN", "Gratis"),
            trial_days=_int_env("TRIAL_DAYS", 30),
            initial_credits={
                "katador": _int_env("INITIAL_CREDITS_KATADOR", 10),
                "modelo": _int_env("INITIAL_CREDITS_MODELO", 10),
            },
            pwd_min_len=_int_env("PASSWORD_MIN_LENGTH", 6),
        )

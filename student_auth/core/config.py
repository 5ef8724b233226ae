import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from dotenv import load_dotenv

from student_auth.core.errors import StartupError

logger = logging.getLogger(__name__)

# Non-production signing key used when JWT_SECRET_KEY is unset.
INSECURE_FALLBACK_SECRET = "insecure-dev-only-jwt-secret-set-JWT_SECRET_KEY"

PRODUCTION_ENVS = {"production", "prod"}


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(environ: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise StartupError(f"{name} must be an integer, got {raw!r}.") from exc
    if value < minimum:
        raise StartupError(f"{name} must be >= {minimum}, got {value}.")
    return value


def _get_csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret_key: str = INSECURE_FALLBACK_SECRET
    jwt_algorithm: str = "HS256"
    app_env: str = "development"
    host: str = "0.0.0.0"
    port: int = 3000
    bcrypt_rounds: int = 10
    session_ttl_days: int = 7
    remember_ttl_days: int = 30
    request_timeout_seconds: float = 10.0
    cors_origins: tuple[str, ...] = ()
    static_dir: str = "public"
    log_level: str = "INFO"
    sql_echo: bool = False

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() in PRODUCTION_ENVS

    @property
    def uses_fallback_secret(self) -> bool:
        return self.jwt_secret_key == INSECURE_FALLBACK_SECRET


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build the process settings from the environment.

    Reads ``.env`` first when no explicit mapping is given. Raises
    ``StartupError`` when DATABASE_URL is missing or a numeric value is
    malformed, so the process never starts half-configured.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    database_url = (environ.get("DATABASE_URL") or "").strip()
    if not database_url:
        raise StartupError("DATABASE_URL is not set.")

    port = _get_int(environ, "PORT", 3000)
    bcrypt_rounds = _get_int(environ, "BCRYPT_ROUNDS", 10, minimum=4)
    if bcrypt_rounds > 31:
        raise StartupError(f"BCRYPT_ROUNDS must be <= 31, got {bcrypt_rounds}.")

    secret = environ.get("JWT_SECRET_KEY") or environ.get("JWT_SECRET") or INSECURE_FALLBACK_SECRET
    app_env = environ.get("APP_ENV") or environ.get("NODE_ENV") or "development"

    cors_origins = _get_csv(environ.get("CORS_ORIGINS")) or (
        f"http://localhost:{port}",
        f"http://127.0.0.1:{port}",
    )

    return Settings(
        database_url=database_url,
        jwt_secret_key=secret,
        jwt_algorithm=environ.get("JWT_ALGORITHM", "HS256"),
        app_env=app_env,
        host=environ.get("HOST", "0.0.0.0"),
        port=port,
        bcrypt_rounds=bcrypt_rounds,
        session_ttl_days=_get_int(environ, "SESSION_TTL_DAYS", 7),
        remember_ttl_days=_get_int(environ, "REMEMBER_TTL_DAYS", 30),
        request_timeout_seconds=float(_get_int(environ, "REQUEST_TIMEOUT_SECONDS", 10)),
        cors_origins=cors_origins,
        static_dir=environ.get("STATIC_DIR", "public"),
        log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        sql_echo=_get_bool(environ.get("SQL_ECHO"), default=False),
    )


def warn_on_insecure_settings(settings: Settings) -> None:
    if not settings.uses_fallback_secret:
        return
    if settings.is_production:
        logger.error(
            "JWT_SECRET_KEY is not set; signing session tokens with the built-in "
            "non-production fallback key. Anyone with the source can forge sessions."
        )
    else:
        logger.warning("JWT_SECRET_KEY is not set; using the non-production fallback key.")

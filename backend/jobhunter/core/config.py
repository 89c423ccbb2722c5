import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger("config")

load_dotenv()

DEFAULT_ADZUNA_BASE_URL = "https://api.adzuna.com/v1/api/jobs"
DEFAULT_GEOCODER_URL = "https://nominatim.openstreetmap.org/search"


def get_db_path() -> str:
    raw = os.environ.get("DB_PATH", "./job_hunter.sqlite3")
    return os.path.abspath(raw)


@dataclass(frozen=True)
class RuntimeConfig:
    adzuna_app_id: str
    adzuna_app_key: str
    adzuna_base_url: str
    adzuna_country: str
    results_per_page: int
    ingest_max_pages: int
    ingest_page_delay_ms: int
    http_timeout_s: int
    search_cache_ttl_s: int
    geocoder_url: str
    geocoder_user_agent: str
    email_enabled: bool
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    from_email: str
    app_url: str
    default_user_email: str


def _get_str(env_name: str, default_value: str = "") -> str:
    raw = os.getenv(env_name)
    if raw is None or not str(raw).strip():
        return default_value
    return str(raw).strip()


def _parse_int_with_floor(
    env_name: str,
    *,
    default_value: int,
    minimum_floor: int,
) -> int:
    raw = os.getenv(env_name)
    if raw is None or not str(raw).strip():
        value = int(default_value)
    else:
        try:
            value = int(str(raw).strip())
        except ValueError:
            logger.warning(
                "[config] %s=%r is invalid. Using default %s.",
                env_name,
                raw,
                default_value,
            )
            value = int(default_value)

    if value < minimum_floor:
        logger.warning(
            "[config] %s=%s below minimum (%s). Using %s.",
            env_name,
            value,
            minimum_floor,
            minimum_floor,
        )
        value = minimum_floor

    return value


def _parse_bool(env_name: str, *, default_value: bool) -> bool:
    raw = os.getenv(env_name)
    if raw is None or not str(raw).strip():
        return bool(default_value)

    normalized = str(raw).strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False

    logger.warning(
        "[config] %s=%r is invalid boolean. Using default %s.",
        env_name,
        raw,
        default_value,
    )
    return bool(default_value)


@lru_cache(maxsize=1)
def get_runtime_config() -> RuntimeConfig:
    smtp_user = _get_str("SMTP_USER")
    cfg = RuntimeConfig(
        adzuna_app_id=_get_str("ADZUNA_APP_ID"),
        adzuna_app_key=_get_str("ADZUNA_APP_KEY"),
        adzuna_base_url=_get_str("ADZUNA_BASE_URL", DEFAULT_ADZUNA_BASE_URL).rstrip("/"),
        adzuna_country=_get_str("ADZUNA_COUNTRY", "us").lower(),
        results_per_page=_parse_int_with_floor(
            "ADZUNA_RESULTS_PER_PAGE",
            default_value=100,
            minimum_floor=1,
        ),
        ingest_max_pages=_parse_int_with_floor(
            "INGEST_MAX_PAGES",
            default_value=5,
            minimum_floor=1,
        ),
        ingest_page_delay_ms=_parse_int_with_floor(
            "INGEST_PAGE_DELAY_MS",
            default_value=500,
            minimum_floor=0,
        ),
        http_timeout_s=_parse_int_with_floor(
            "HTTP_TIMEOUT_S",
            default_value=15,
            minimum_floor=1,
        ),
        search_cache_ttl_s=_parse_int_with_floor(
            "SEARCH_CACHE_TTL_S",
            default_value=3600,
            minimum_floor=1,
        ),
        geocoder_url=_get_str("GEOCODER_URL", DEFAULT_GEOCODER_URL),
        geocoder_user_agent=_get_str("GEOCODER_USER_AGENT", "JobHunter/1.0"),
        email_enabled=_parse_bool("EMAIL_ENABLED", default_value=False),
        smtp_host=_get_str("SMTP_HOST"),
        smtp_port=_parse_int_with_floor("SMTP_PORT", default_value=587, minimum_floor=1),
        smtp_user=smtp_user,
        smtp_password=_get_str("SMTP_PASSWORD"),
        from_email=_get_str("FROM_EMAIL", smtp_user),
        app_url=_get_str("APP_URL", "http://localhost:3000"),
        default_user_email=_get_str("DEFAULT_USER_EMAIL"),
    )

    logger.info(
        "[config] effective ADZUNA_COUNTRY=%s INGEST_MAX_PAGES=%s INGEST_PAGE_DELAY_MS=%s "
        "SEARCH_CACHE_TTL_S=%s EMAIL_ENABLED=%s",
        cfg.adzuna_country,
        cfg.ingest_max_pages,
        cfg.ingest_page_delay_ms,
        cfg.search_cache_ttl_s,
        cfg.email_enabled,
    )
    if not (cfg.adzuna_app_id and cfg.adzuna_app_key):
        logger.warning("[config] ADZUNA_APP_ID / ADZUNA_APP_KEY not set; upstream calls will fail.")
    return cfg

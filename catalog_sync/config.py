# ----------------------------------------------------------------
# Import configuration variables to be used throughout the project
# ----------------------------------------------------------------
import os
import json as _json
from dataclasses import dataclass
from dotenv import load_dotenv

# Load .env (allow container env to override file values)
load_dotenv(override=True)


def _rstrip_slash(s: str) -> str:
    return (s or "").rstrip("/")


def _get_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "on", "y"}


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_json_map(name: str, default: dict | None = None) -> dict:
    raw = os.getenv(name, "")
    if not raw:
        return default or {}
    try:
        return _json.loads(raw)
    except ValueError:
        return default or {}


class Settings:
    # ── Akeneo (source PIM) ──────────────────────────────────────────────────
    AKENEO_BASE_URL: str = _rstrip_slash(os.getenv("AKENEO_BASE_URL", ""))
    AKENEO_CLIENT_ID: str = os.getenv("AKENEO_CLIENT_ID", "")
    AKENEO_CLIENT_SECRET: str = os.getenv("AKENEO_CLIENT_SECRET", "")
    AKENEO_USERNAME: str = os.getenv("AKENEO_USERNAME", "")
    AKENEO_PASSWORD: str = os.getenv("AKENEO_PASSWORD", "")

    # ── commercetools (destination catalog) ─────────────────────────────────
    CTP_PROJECT_KEY: str = os.getenv("CTP_PROJECT_KEY", "")
    CTP_CLIENT_ID: str = os.getenv("CTP_CLIENT_ID", "")
    CTP_CLIENT_SECRET: str = os.getenv("CTP_CLIENT_SECRET", "")
    CTP_SCOPE: str = os.getenv("CTP_SCOPE", "")
    CTP_REGION: str = os.getenv("CTP_REGION", "europe-west1.gcp")

    # Publish policy. Compared as a raw string: only the literal "false"
    # re-publishes a product after it was modified.
    SET_PUBLISHED_TO_MODIFIED: str | None = os.getenv("SET_PUBLISHED_TO_MODIFIED")

    # ── Job policy ───────────────────────────────────────────────────────────
    SYNC_BATCH_SIZE: int = _get_int("SYNC_BATCH_SIZE", 5)
    SYNC_MAX_FAILED: int = _get_int("SYNC_MAX_FAILED", 100)
    SYNC_TIME_LIMIT_SECONDS: int = _get_int("SYNC_TIME_LIMIT_SECONDS", 25 * 60)
    SYNC_ITEM_CONCURRENCY: int = _get_int("SYNC_ITEM_CONCURRENCY", 1)
    SYNC_DELTA_LOOKBACK_SECONDS: int = _get_int("SYNC_DELTA_LOOKBACK_SECONDS", 5 * 60)
    SYNC_COMPLETENESS: str = os.getenv("SYNC_COMPLETENESS", "100")

    # ── Durable store ────────────────────────────────────────────────────────
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./data/catalog_sync.db")
    STORE_CONTAINER: str = os.getenv("STORE_CONTAINER", "ct-connect-akeneo")

    # ── Admin Panel ──────────────────────────────────────────────────────────
    ADMIN_USER: str = os.getenv("ADMIN_USER", "admin")
    ADMIN_PASS: str = os.getenv("ADMIN_PASS", "changeme")
    DEBUG_HTTP: bool = _get_bool("DEBUG_HTTP", False)

    # ── CORS ─────────────────────────────────────────────────────────────────
    # Comma-separated list in .env, e.g. "https://example.com, https://foo.bar"
    CORS_ORIGINS: list[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    # Extra request headers for outbound HTTP calls, JSON object
    HTTP_EXTRA_HEADERS: dict = _get_json_map("HTTP_EXTRA_HEADERS", {})


settings = Settings()


@dataclass(frozen=True)
class SyncPolicy:
    """Knobs for the batch loop: page size, failure cap, time budget."""

    batch_size: int = 5
    max_failed: int = 100
    time_limit_seconds: float = 25 * 60
    item_concurrency: int = 1
    delta_lookback_seconds: float = 5 * 60
    completeness: str = "100"

    @classmethod
    def from_settings(cls, s: Settings = settings) -> "SyncPolicy":
        return cls(
            batch_size=max(1, s.SYNC_BATCH_SIZE),
            max_failed=max(1, s.SYNC_MAX_FAILED),
            time_limit_seconds=max(0, s.SYNC_TIME_LIMIT_SECONDS),
            item_concurrency=max(1, s.SYNC_ITEM_CONCURRENCY),
            delta_lookback_seconds=max(0, s.SYNC_DELTA_LOOKBACK_SECONDS),
            completeness=s.SYNC_COMPLETENESS,
        )


# Storage locations of the job records and of the saved mapping config.
STORE_KEYS: dict[str, str] = {
    "full": "full-sync",
    "delta": "delta-sync",
    "all": "sync-config",
}

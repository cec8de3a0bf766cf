import logging
import os
from pathlib import Path

# Load .env early so os.getenv picks up local dev settings.
try:  # pragma: no cover - environment bootstrap
    from dotenv import load_dotenv

    _DOTENV_PATHS = [Path.cwd() / ".env", Path(__file__).resolve().parent / ".env"]
    for _env_path in _DOTENV_PATHS:
        if _env_path.exists():
            load_dotenv(dotenv_path=_env_path, override=False)
except Exception as exc:  # never crash on dotenv load issues
    logging.getLogger(__name__).warning("Failed to load .env: %s", exc)

APP_NAME = "Purchase Order Tracker"
APP_VERSION = "1.0.0"

# ----------------------------
# Helpers
# ----------------------------
def _req(name: str) -> str:
    v = os.getenv(name)
    if not v:
        raise RuntimeError(f"Missing required env var: {name}")
    return v

def _csv_list(name: str, default: str = "") -> list[str]:
    raw = (os.getenv(name) or default).strip()
    if not raw:
        return []
    return [x.strip() for x in raw.split(",") if x.strip()]

def _float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-numeric %s=%r; using %s", name, raw, default)
        return default

# ----------------------------
# Remote row store (spreadsheet web app)
# ----------------------------
# Read lazily: importing the derivation core must not require the store URL.
def require_store_url() -> str:
    return _req("PO_STORE_API_URL").strip()

PO_STORE_TIMEOUT_SECONDS = _float("PO_STORE_TIMEOUT_SECONDS", 30.0)

# The sheet stores local calendar dates; the web app serialises them as UTC instants.
SHEET_TIMEZONE = os.getenv("SHEET_TIMEZONE", "Asia/Kolkata")

# ----------------------------
# Business knobs
# ----------------------------
# Unit costs sent on a push are tax-inclusive.
PUSH_TAX_RATE = _float("PUSH_TAX_RATE", 0.05)

# Item statuses that still count as open demand for the shortfall report.
SHORTFALL_ITEM_STATUSES = _csv_list("SHORTFALL_ITEM_STATUSES", "New,Confirmed")

# ----------------------------
# Logging
# ----------------------------
PO_LOG_LEVEL = (os.getenv("PO_LOG_LEVEL") or "INFO").upper()
PO_LOG_DIR = Path(os.getenv("PO_LOG_DIR") or Path(__file__).resolve().parent / "logs")

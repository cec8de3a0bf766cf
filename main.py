import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import APP_NAME, APP_VERSION, PO_LOG_DIR, PO_LOG_LEVEL
from routes import (
    register_dashboard_routes,
    register_inventory_routes,
    register_purchase_order_routes,
    register_sales_order_routes,
)

# --- Logging configuration ---
LOG_DIR = PO_LOG_DIR
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE_PATH = LOG_DIR / "po_tracker.log"

root_logger = logging.getLogger()
logger = root_logger
if not root_logger.handlers:
    root_logger.setLevel(PO_LOG_LEVEL)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(
        LOG_FILE_PATH,
        maxBytes=5_000_000,  # 5 MB
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

logging.getLogger("uvicorn").propagate = True
logging.getLogger("uvicorn.error").propagate = True
logging.getLogger("uvicorn.access").propagate = True
# --- End logging configuration ---

app = FastAPI(title=APP_NAME, version=APP_VERSION)

register_purchase_order_routes(app)
register_sales_order_routes(app)
register_inventory_routes(app)
register_dashboard_routes(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/ping")
def ping() -> JSONResponse:
    ts = datetime.now(timezone.utc).isoformat()
    logger.info("[PING] ping called")
    return JSONResponse({"ok": True, "ts": ts})


def debug_dump_purchase_order(po_number: str) -> int:
    """Print the derived PO (status, actions, lines) as the API would serve it."""
    from routes.purchase_order_routes import po_payload
    from routes.store_access import get_store_client
    from services.po_snapshot import derive, load_snapshot

    view = derive(load_snapshot(get_store_client()))
    po = view.get_purchase_order(po_number)
    if po is None:
        print(f"[debug-po] {po_number} not found in {len(view.purchase_orders)} POs")
        return 1
    print(json.dumps(po_payload(view, po), indent=2))
    return 0


if __name__ == "__main__":
    import sys

    if "--debug-po" in sys.argv:
        try:
            idx = sys.argv.index("--debug-po")
            sys.exit(debug_dump_purchase_order(sys.argv[idx + 1]))
        except IndexError:
            print("Usage: python main.py --debug-po <PO_NUMBER>")
            sys.exit(1)

    uvicorn.run("main:app", host="127.0.0.1", port=8001, reload=True)

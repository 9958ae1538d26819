# config.py
from functools import lru_cache
from pathlib import Path
from dotenv import load_dotenv
import os

load_dotenv(Path(__file__).parent.parent / ".env")

@lru_cache
def settings():
    return {
        "API_URL": os.getenv("API_URL", "http://localhost:8000"),
        "API_KEY": os.getenv("API_KEY", "dev-key"),
        "HTTP_TIMEOUT": float(os.getenv("HTTP_TIMEOUT", "5")),
        "PROFILE_ID": os.getenv("PROFILE_ID", "default"),
        # Timers (milliseconds) – quote countdown and transfer status polling
        "QUOTE_TICK_MS": int(os.getenv("QUOTE_TICK_MS", "1000")),
        "STATUS_POLL_MS": int(os.getenv("STATUS_POLL_MS", "5000")),
        # Idle UI refresh when no timer is active
        "REFRESH_SECONDS": int(os.getenv("REFRESH_SECONDS", "30")),
        # Ledger
        "PAGE_SIZE": int(os.getenv("PAGE_SIZE", "20")),
        "TRANSFERS_LIMIT": int(os.getenv("TRANSFERS_LIMIT", "100")),
        "LOCAL_TZ": os.getenv("LOCAL_TZ", "UTC"),
        "EXPORT_PREFIX": os.getenv("EXPORT_PREFIX", "workbench-history"),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
    }

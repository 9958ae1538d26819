"""Package init: shared constants for the custody workbench."""
from __future__ import annotations

APP_NAME = "custody-workbench"
APP_ICON = "🏦"
VERSION = "0.1.0"

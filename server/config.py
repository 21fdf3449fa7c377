# server/config.py
"""
Server Configuration
"""
import os
from pathlib import Path

import yaml

# Paths
BASE_DIR = Path(__file__).parent
UPLOADS_DIR = Path(os.getenv("UPLOADS_DIR", str(BASE_DIR / "uploads")))
TEMPLATES_DIR = BASE_DIR / "templates"
SETTINGS_FILE = Path(os.getenv("SETTINGS_FILE", str(BASE_DIR / "settings.yaml")))


def parse_bool(value, default: bool = False) -> bool:
    """Booleans from env vars or YAML, where "false" may arrive quoted"""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def load_settings(path: Path = SETTINGS_FILE) -> dict:
    """Load optional YAML overrides (keys match the constant names below)"""
    if path.exists():
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}
    return {}


_overrides = load_settings()

# Server settings
HOST = _overrides.get("HOST", os.getenv("HOST", "0.0.0.0"))
PORT = int(_overrides.get("PORT", os.getenv("PORT", "5000")))
# Absolute URL prefix for image links (e.g. behind a proxy). Request host is used when empty.
PUBLIC_BASE_URL = _overrides.get("PUBLIC_BASE_URL", os.getenv("PUBLIC_BASE_URL", ""))

# Device side-channel (GET http://{deviceIp}/resource/{ref})
DEVICE_FETCH_TIMEOUT = float(_overrides.get("DEVICE_FETCH_TIMEOUT", os.getenv("DEVICE_FETCH_TIMEOUT", "5")))
DEVICE_FETCH_WORKERS = int(_overrides.get("DEVICE_FETCH_WORKERS", os.getenv("DEVICE_FETCH_WORKERS", "4")))

# Upload storage
MAX_UPLOAD_BYTES = int(_overrides.get("MAX_UPLOAD_BYTES", os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024))))
# Unrecognized events drop their origin/body pictures unless this is on
RETAIN_UNRECOGNIZED_IMAGES = parse_bool(
    _overrides.get("RETAIN_UNRECOGNIZED_IMAGES", os.getenv("RETAIN_UNRECOGNIZED_IMAGES")), False
)
UPLOAD_RETENTION_HOURS = float(_overrides.get("UPLOAD_RETENTION_HOURS", os.getenv("UPLOAD_RETENTION_HOURS", "24")))
SWEEP_INTERVAL_SECONDS = float(_overrides.get("SWEEP_INTERVAL_SECONDS", os.getenv("SWEEP_INTERVAL_SECONDS", "3600")))

# Ensure directories exist
UPLOADS_DIR.mkdir(parents=True, exist_ok=True)

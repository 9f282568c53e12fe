"""Configuration settings for the file server."""

import os
from pathlib import Path

from common.constants import DEFAULT_PORT


DATA_DIR = os.environ.get("LT_DATA_DIR", str(Path.home() / "LocalTransfer"))

SHARED_ROOT = os.path.abspath(os.environ.get("LT_SHARED_ROOT", os.path.join(DATA_DIR, "shared")))

UPLOAD_TEMP = os.path.abspath(os.environ.get("LT_UPLOAD_TEMP", os.path.join(DATA_DIR, "uploads")))

SERVER_HOST = os.environ.get("LT_HOST", "0.0.0.0")

SERVER_PORT = int(os.environ.get("LT_PORT", str(DEFAULT_PORT)))

MASK_PATHS = os.environ.get("LT_MASK_PATHS", "").lower() in ("1", "true", "yes")

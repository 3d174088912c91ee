"""
Central config: data locations and request parameters.
Override with environment variables when deploying against another data export.
"""
from __future__ import annotations

import os
from typing import List, Optional

DEFAULT_DATA_URL = os.getenv("MOBILITY_DEFAULT_DATA_URL", "https://matsim-eth.github.io/webmap/data/")

# Context data URL (remote base or local directory); tried before the default.
DATA_URL: Optional[str] = os.getenv("MOBILITY_DATA_URL") or None

# Folder pre-loaded into the file map for the API (its name is the first path segment).
LOCAL_DIR: Optional[str] = os.getenv("MOBILITY_LOCAL_DIR") or None

REQUEST_TIMEOUT = float(os.getenv("MOBILITY_REQUEST_TIMEOUT", "30"))

WEBMAP_URL = "https://matsim-eth.github.io/webmap/"


def cors_origins() -> List[str]:
    raw = os.getenv("MOBILITY_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    return [o.strip() for o in raw.split(",") if o.strip()]

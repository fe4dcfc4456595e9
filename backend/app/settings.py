"""Application settings."""
import os
from pathlib import Path

# Database file lives at repo root unless DATABASE_URL points elsewhere
REPO_ROOT = Path(__file__).resolve().parent.parent.parent
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{REPO_ROOT / 'stake.db'}")

# Remote verification endpoint. Empty means verdicts are computed in-process.
VERIFICATION_SERVICE_URL = os.getenv("VERIFICATION_SERVICE_URL", "").rstrip("/")
VERIFICATION_TIMEOUT_S = float(os.getenv("VERIFICATION_TIMEOUT_S", "10"))
VERIFICATION_RETRIES = int(os.getenv("VERIFICATION_RETRIES", "1"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

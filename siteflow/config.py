"""Runtime configuration read from environment variables."""
import os

# Use PostgreSQL in production (from DATABASE_URL env var), SQLite locally
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./siteflow.db")

LOG_LEVEL = os.getenv("SITEFLOW_LOG_LEVEL", "INFO").upper()

# Language used for user-facing error messages ("en" or "ko")
LOCALE = os.getenv("SITEFLOW_LOCALE", "en")

# Max dependent rows inspected per collection during a cascade delete
CASCADE_FETCH_LIMIT = int(os.getenv("SITEFLOW_CASCADE_FETCH_LIMIT", "1000"))

# When enabled, reject() refuses reports that are already final_approved
STRICT_REJECTION = os.getenv("SITEFLOW_STRICT_REJECTION", "false").lower() in ("1", "true", "yes")

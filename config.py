import os

from passlib.context import CryptContext

# =========
# Database
# =========
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
PORTFOLIO_COLLECTION = os.getenv("PORTFOLIO_COLLECTION", "portfolio")
PORTFOLIO_DOCUMENT_ID = os.getenv("PORTFOLIO_DOCUMENT_ID", "data")
# Change streams need a replica set, so watching is opt-in
PORTFOLIO_WATCH_CHANGES = os.getenv("PORTFOLIO_WATCH_CHANGES", "false").lower() in ("1", "true", "yes")

# =====================
# Auth / Security Setup
# =====================
SECRET_KEY = os.getenv("JWT_SECRET", "super-secret-key-change")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 12

# Use pbkdf2_sha256 to avoid external bcrypt dependency issues
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# Seed admin credentials via env (for demo)
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@portfolio.dev")
# Support providing a precomputed hash; otherwise hash the provided password (short default)
ADMIN_PASSWORD_HASH = os.getenv("ADMIN_PASSWORD_HASH") or pwd_context.hash(os.getenv("ADMIN_PASSWORD", "admin123"))

# Hidden path that switches the frontend into admin mode. Obscurity only;
# every write route is still guarded by the bearer token check.
ADMIN_PATH = os.getenv("ADMIN_PATH", "/secret-admin-portal")

# ======
# Intake
# ======
MAX_UPLOAD_BYTES = 1_000_000

# ========
# Realtime
# ========
# Messages held per WebSocket viewer before the oldest are dropped
MAX_PENDING_MESSAGES = int(os.getenv("MAX_PENDING_MESSAGES", "100"))

# =======
# Logging
# =======
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")

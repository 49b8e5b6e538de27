# ═══════════════════════════════════════════════════════════════
# MLM Back-Office — Configuration
# All settings come from the environment (.env supported)
# ═══════════════════════════════════════════════════════════════
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./backoffice.db")
# Railway/Heroku Postgres URLs use postgres:// but SQLAlchemy requires postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# ── Auth ──────────────────────────────────────────────────────
SECRET_KEY               = os.getenv("SECRET_KEY", "change-me-in-production")
JWT_ALGORITHM            = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "7"))

LOGIN_RATE_LIMIT   = os.getenv("LOGIN_RATE_LIMIT", "10/minute")
RATE_LIMIT_ENABLED = _env_bool("RATE_LIMIT_ENABLED", "true")
MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_MINUTES    = 15

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]

# ── Startup ───────────────────────────────────────────────────
SEED_DEMO_DATA = _env_bool("SEED_DEMO_DATA")

# ── Logging ───────────────────────────────────────────────────
LOG_FILE  = os.getenv("LOG_FILE", "")          # empty → stderr
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ── AI recommendations ────────────────────────────────────────
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL   = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")

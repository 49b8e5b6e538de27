# ═══════════════════════════════════════════════════════════════
# MLM Back-Office — Passwords, Tokens, Lockout, Sanitising
# ═══════════════════════════════════════════════════════════════
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import bleach
from jose import JWTError, jwt

from .config import (
    SECRET_KEY, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_DAYS,
    MAX_LOGIN_ATTEMPTS, LOCKOUT_MINUTES,
)

logger = logging.getLogger(__name__)


# ── Passwords ─────────────────────────────────────────────────
def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# ── Tokens ────────────────────────────────────────────────────
def create_access_token(user_id: str, expires_days: int = ACCESS_TOKEN_EXPIRE_DAYS) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=expires_days)
    return jwt.encode({"sub": user_id, "exp": expire}, SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[str]:
    """User id from a valid token, None for anything else."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    return payload.get("sub")


# ── Failed-login lockout ──────────────────────────────────────
failed_attempts = {}


def is_locked_out(identifier: str) -> bool:
    if identifier not in failed_attempts: return False
    attempts, lockout_time = failed_attempts[identifier]
    if attempts >= MAX_LOGIN_ATTEMPTS:
        if datetime.now() < lockout_time: return True
        del failed_attempts[identifier]
    return False


def record_failed_attempt(identifier: str):
    if identifier not in failed_attempts:
        failed_attempts[identifier] = [0, None]
    failed_attempts[identifier][0] += 1
    failed_attempts[identifier][1] = datetime.now() + timedelta(minutes=LOCKOUT_MINUTES)
    logger.warning(f"Failed login: {identifier} — attempts: {failed_attempts[identifier][0]}")


def clear_failed_attempts(identifier: str):
    failed_attempts.pop(identifier, None)


# ── Input sanitising ──────────────────────────────────────────
def sanitize(v):
    return bleach.clean(v.strip()) if v else v

"""
Tests for password hashing, access tokens, login lockout and input sanitising.
"""

from datetime import datetime, timedelta

from jose import jwt

from backoffice import security
from backoffice.config import SECRET_KEY, JWT_ALGORITHM, MAX_LOGIN_ATTEMPTS
from backoffice.security import (
    hash_password, verify_password, create_access_token, decode_access_token,
    is_locked_out, record_failed_attempt, clear_failed_attempts, sanitize,
)

TEST_PASSWORD = "secret123"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


class TestPasswords:
    def test_hash_is_not_plaintext(self):
        assert TEST_PASSWORD_HASH != TEST_PASSWORD
        assert TEST_PASSWORD_HASH.startswith("$2")

    def test_verify(self):
        assert verify_password(TEST_PASSWORD, TEST_PASSWORD_HASH)
        assert not verify_password("wrong", TEST_PASSWORD_HASH)

    def test_verify_rejects_empty_and_garbage(self):
        assert not verify_password("", TEST_PASSWORD_HASH)
        assert not verify_password(TEST_PASSWORD, "")
        assert not verify_password(TEST_PASSWORD, "not-a-bcrypt-hash")

    def test_salted(self):
        assert hash_password("abc123") != hash_password("abc123")


class TestTokens:
    def test_round_trip(self):
        assert decode_access_token(create_access_token("user-1")) == "user-1"

    def test_expired(self):
        assert decode_access_token(create_access_token("user-1", expires_days=-1)) is None

    def test_wrong_signature(self):
        token = jwt.encode(
            {"sub": "user-1", "exp": datetime.utcnow() + timedelta(days=1)},
            "some-other-key", algorithm=JWT_ALGORITHM,
        )
        assert decode_access_token(token) is None

    def test_garbage(self):
        assert decode_access_token("not.a.token") is None

    def test_claims(self):
        claims = jwt.decode(create_access_token("user-1"), SECRET_KEY, algorithms=[JWT_ALGORITHM])
        assert claims["sub"] == "user-1"
        assert "exp" in claims


class TestLockout:
    def test_locks_after_max_attempts(self):
        for _ in range(MAX_LOGIN_ATTEMPTS - 1):
            record_failed_attempt("rep1")
        assert not is_locked_out("rep1")
        record_failed_attempt("rep1")
        assert is_locked_out("rep1")

    def test_lock_expires(self):
        for _ in range(MAX_LOGIN_ATTEMPTS):
            record_failed_attempt("rep1")
        security.failed_attempts["rep1"][1] = datetime.now() - timedelta(seconds=1)
        assert not is_locked_out("rep1")
        assert "rep1" not in security.failed_attempts

    def test_clear(self):
        for _ in range(MAX_LOGIN_ATTEMPTS):
            record_failed_attempt("rep1")
        clear_failed_attempts("rep1")
        assert not is_locked_out("rep1")
        clear_failed_attempts("never-seen")


class TestSanitize:
    def test_strips_markup_and_whitespace(self):
        assert sanitize("  <script>alert(1)</script>Bob  ") == "&lt;script&gt;alert(1)&lt;/script&gt;Bob"

    def test_plain_text_untouched(self):
        assert sanitize("Alice Johnson") == "Alice Johnson"

    def test_passes_through_empty(self):
        assert sanitize(None) is None
        assert sanitize("") == ""

import hmac

import bcrypt

from .config import settings


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def admin_code_matches(code: str, expected: str | None = None) -> bool:
    """Exact, case-sensitive match against the configured admin sign-up code."""
    expected = settings.admin_signup_code if expected is None else expected
    if not code or not expected:
        return False
    return hmac.compare_digest(code.encode("utf-8"), expected.encode("utf-8"))

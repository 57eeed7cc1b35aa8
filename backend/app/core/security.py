import base64
import hmac
import secrets

API_KEY_RANDOM_BYTES = 48
API_KEY_LENGTH = 64


def generate_api_key() -> str:
    # 48 random bytes encode to exactly 64 url-safe base64 characters without padding.
    raw = secrets.token_bytes(API_KEY_RANDOM_BYTES)
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def extract_bearer_token(authorization_header: str | None) -> str | None:
    if not authorization_header:
        return None
    if authorization_header[:7].lower() != "bearer ":
        return None
    token = authorization_header[7:].strip()
    return token or None


def tokens_match(expected: str, provided: str | None) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))

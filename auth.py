from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.auth_secret, salt="caller-token")


def issue_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def resolve_user_id(token: Optional[str]) -> Optional[int]:
    """Return the caller id signed into ``token``, or None when it is
    missing, tampered with or older than the configured max age."""
    if not token:
        return None
    settings = get_settings()
    try:
        data = _serializer().loads(
            token, max_age=settings.token_max_age_hours * 3600
        )
    except BadSignature:
        return None
    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int):
        return None
    return user_id

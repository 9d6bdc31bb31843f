import logging
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

logger = logging.getLogger(__name__)


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.auth_secret, salt="user-token")


def issue_token(user_id: str) -> str:
    return _serializer().dumps({"u": user_id})


def read_token(token: str, max_age_hours: Optional[int] = None) -> Optional[str]:
    """Return the user id carried by a token, or None if it is tampered or expired."""
    if max_age_hours is None:
        max_age_hours = get_settings().token_max_age_hours
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except BadSignature:
        # SignatureExpired is a BadSignature too.
        logger.info("token_rejected: reason=bad_signature")
        return None
    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, str) or not user_id:
        return None
    return user_id

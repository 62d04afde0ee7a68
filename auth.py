import logging
from dataclasses import dataclass
from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    external_id: str
    email: Optional[str] = None
    name: Optional[str] = None


class InvalidSessionToken(ValueError):
    pass


def _serializer(secret: Optional[str] = None) -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(secret or settings.session_secret, salt="session")


def issue_session_token(principal: Principal, secret: Optional[str] = None) -> str:
    payload = {"sub": principal.external_id}
    if principal.email:
        payload["email"] = principal.email
    if principal.name:
        payload["name"] = principal.name
    return _serializer(secret).dumps(payload)


def read_session_token(
    token: str,
    *,
    secret: Optional[str] = None,
    max_age_secs: Optional[int] = None,
) -> Principal:
    if max_age_secs is None:
        max_age_secs = get_settings().session_max_age_secs
    try:
        data = _serializer(secret).loads(token, max_age=max_age_secs)
    except SignatureExpired as exc:
        raise InvalidSessionToken("Session expired") from exc
    except BadSignature as exc:
        raise InvalidSessionToken("Invalid session token") from exc

    if not isinstance(data, dict) or not data.get("sub"):
        raise InvalidSessionToken("Session token has no subject")
    return Principal(
        external_id=str(data["sub"]),
        email=data.get("email"),
        name=data.get("name"),
    )


def is_email_allowed(email: Optional[str], allowed: list[str]) -> bool:
    # Principals without an email claim are let through, as are all callers
    # when no allow-list is configured.
    if not allowed or not email:
        return True
    return email.strip().lower() in {entry.lower() for entry in allowed}

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from booking_engine.core.config import settings


def create_access_token(host_id: str | int) -> str:
    """Short-lived bearer token identifying a host (issued by the identity service)."""
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode = {"sub": str(host_id), "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_manage_token(appointment_id: int) -> str:
    """Token embedded in the guest's manage/cancel link."""
    expire = datetime.now(UTC) + timedelta(days=settings.manage_token_expire_days)
    to_encode = {"sub": str(appointment_id), "exp": expire, "type": "manage"}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def _decode_subject(token: str, token_type: str) -> str | None:
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.algorithm]
        )
        if payload.get("type") != token_type:
            return None
        sub = payload.get("sub")
        return str(sub) if sub else None
    except JWTError:
        return None


def decode_access_token(token: str) -> str | None:
    return _decode_subject(token, "access")


def verify_manage_token(token: str, appointment_id: int) -> bool:
    return _decode_subject(token, "manage") == str(appointment_id)

from datetime import timedelta

import bcrypt
import jwt

from database import utcnow
from errors import Unauthorized
from settings import get_settings


def hash_password(password: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


def create_token(user_id: str, role: str) -> str:
    auth_settings = get_settings().auth
    payload = {
        "sub": str(user_id),
        "role": role,
        "exp": utcnow() + timedelta(minutes=auth_settings.token_expires_minutes),
    }
    return jwt.encode(payload, auth_settings.jwt_secret, algorithm=auth_settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    auth_settings = get_settings().auth
    try:
        payload = jwt.decode(token, auth_settings.jwt_secret, algorithms=[auth_settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")
    if "sub" not in payload or "role" not in payload:
        raise Unauthorized("Invalid token")
    return payload

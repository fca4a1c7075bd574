import time
from typing import Dict, Optional

import jwt

from machinebio.core.environment import (
    get_jwt_secret,
    get_jwt_algorithm,
    get_jwt_exp_delta_seconds,
)


def token_response(token: str):
    return {
        "access_token": token
    }


def sign_jwt(user_id: int) -> Dict[str, str]:
    """Generate a JWT token for a given user ID."""
    payload = {
        "user_id": user_id,
        "expires": time.time() + get_jwt_exp_delta_seconds()
    }
    token = jwt.encode(payload, get_jwt_secret(), algorithm=get_jwt_algorithm())
    return token_response(token)


def decode_jwt(token: str) -> Optional[dict]:
    """Decode a JWT token and return the payload if valid, else None."""
    try:
        decoded_token = jwt.decode(token, get_jwt_secret(), algorithms=[get_jwt_algorithm()])
    except jwt.InvalidTokenError:
        return None

    if decoded_token.get("expires", 0) < time.time():
        return None
    return decoded_token

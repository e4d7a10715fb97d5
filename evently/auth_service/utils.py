"""
Bearer-token helpers.
Verifies Supabase-issued access tokens for API callers that do not use the
browser session cookie.
"""

import os
import logging
from typing import Tuple, Optional, Dict, Any

import jwt
from flask import jsonify, request, Response
from dotenv import load_dotenv

load_dotenv()

JWT_ALGORITHMS = ["HS256"]
JWT_AUDIENCE = "authenticated"


def _jwt_secret() -> Optional[str]:
    return os.getenv("SUPABASE_JWT_SECRET")


def read_bearer_token() -> Optional[str]:
    """
    Return the raw token from `Authorization: Bearer <token>`, if present.
    """
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


# --- JWT VALIDATION ---
def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and verify an access token.

    Args:
        token (str): JWT string issued by the account store.

    Returns:
        dict: The verified claims.

    Raises:
        RuntimeError: If SUPABASE_JWT_SECRET is not configured.
        jwt.PyJWTError: If the token is invalid or expired.
    """
    secret = _jwt_secret()
    if not secret:
        raise RuntimeError("SUPABASE_JWT_SECRET is missing. Set it in .env")
    return jwt.decode(token, secret, algorithms=JWT_ALGORITHMS, audience=JWT_AUDIENCE)


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Validate a JWT manually.

    Returns:
        dict: claims if valid, None otherwise.
    """
    try:
        return decode_token(token)
    except Exception:
        return None


def verify_token_from_request() -> Tuple[Optional[str], Optional[Dict[str, Any]], Optional[Response], Optional[int]]:
    """
    Verify the bearer token of the current request, if one was sent.

    Returns:
        tuple: (token, claims, error_response, status_code)
               All None when the request carries no bearer token.
               If verification failed, token and claims are None.
    """
    token = read_bearer_token()
    if token is None:
        return None, None, None, None

    try:
        claims = decode_token(token)
    except RuntimeError as e:
        logging.error(f"[Auth] {e}")
        return None, None, jsonify({"error": "bearer authentication is not configured"}), 401
    except jwt.ExpiredSignatureError:
        return None, None, jsonify({"error": "token expired"}), 401
    except Exception:
        return None, None, jsonify({"error": "invalid token"}), 401

    if not claims.get("sub"):
        return None, None, jsonify({"error": "invalid token"}), 401

    return token, claims, None, None

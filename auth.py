"""
Supabase bearer-token checks for the certificate service.

Certificates are issued by clinicians only: the render endpoint depends on
`require_clinician`, which accepts tokens whose `app_metadata.role` is one of
CLINICIAN_ROLES. The middleware in app_server.py rejects unauthenticated
/api/* calls before any route runs.

Environment variables (set in .env):
    SUPABASE_JWT_SECRET  –  secret for HS256-signed tokens
    SUPABASE_URL         –  project URL, used to fetch JWKS for asymmetric tokens
"""

from __future__ import annotations

import os
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

CLINICIAN_ROLES: frozenset[str] = frozenset({"doctor", "admin"})

_bearer = HTTPBearer(auto_error=True)
_jwks_client: Optional[jwt.PyJWKClient] = None


def _jwt_secret() -> str:
    return os.environ.get("SUPABASE_JWT_SECRET", "")


def _get_jwks_client() -> Optional[jwt.PyJWKClient]:
    global _jwks_client
    supabase_url = os.environ.get("SUPABASE_URL", "").rstrip("/")
    if _jwks_client is None and supabase_url:
        _jwks_client = jwt.PyJWKClient(
            f"{supabase_url}/auth/v1/.well-known/jwks.json",
            cache_keys=True,
        )
    return _jwks_client


def decode_supabase_token(token: str) -> dict:
    """
    Validate a Supabase JWT (HS256 or asymmetric) and return its claims.
    Raises jwt.InvalidTokenError (or a subclass) on failure.
    """
    alg = jwt.get_unverified_header(token).get("alg", "HS256")

    if alg == "HS256":
        secret = _jwt_secret()
        if not secret:
            raise jwt.InvalidTokenError("SUPABASE_JWT_SECRET is not set; cannot validate HS256 token.")
        return jwt.decode(token, secret, algorithms=["HS256"], options={"verify_aud": False})

    client = _get_jwks_client()
    if client is None:
        raise jwt.InvalidTokenError(
            f"Token uses {alg} but SUPABASE_URL is not set; cannot fetch JWKS."
        )
    signing_key = client.get_signing_key_from_jwt(token)
    return jwt.decode(token, signing_key.key, algorithms=[alg], options={"verify_aud": False})


def user_role(claims: dict) -> str | None:
    app_metadata = claims.get("app_metadata") or {}
    return app_metadata.get("role")


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer),
) -> dict:
    try:
        return decode_supabase_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {exc}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_clinician(current_user: dict = Depends(get_current_user)) -> dict:
    if user_role(current_user) not in CLINICIAN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Doctor access required.",
        )
    return current_user

"""
Authentication helpers: password hashing, signed tokens and the FastAPI
dependencies that resolve the logged-in user or owner from a request.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Request, Response
from passlib.context import CryptContext

import config
from errors import AuthError, PermissionDeniedError
from schemas import AuthResponse, Owner, User
from stores import Stores, get_stores

logger = logging.getLogger(__name__)

TOKEN_COOKIE = "token"
ROLE_USER = "user"
ROLE_OWNER = "owner"
TOKEN_ALGORITHM = "HS256"

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return pwd_context.verify(password, hashed)
    except ValueError:
        # stored value is not a recognised hash
        return False


# Tokens: HS256 JWTs carrying the email, role and expiry

def create_token(email: str, role: str, expires_in: Optional[int] = None) -> str:
    if expires_in is None:
        expires_in = config.TOKEN_EXPIRY_MINUTES * 60
    claims = {
        "sub": email,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(claims, config.SECRET_KEY, algorithm=TOKEN_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Verify and decode a token. Returns None if it is malformed, forged or expired."""
    if not token:
        return None
    try:
        return jwt.decode(
            token, config.SECRET_KEY, algorithms=[TOKEN_ALGORITHM], options={"require": ["sub", "exp"]},
        )
    except jwt.InvalidTokenError:
        return None


def _request_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return request.cookies.get(TOKEN_COOKIE) or None


def token_claims(request: Request) -> dict:
    data = decode_token(_request_token(request) or "")
    if data is None:
        raise AuthError("You need to login first")
    return data


def issue_token(response: Response, account, role: str) -> AuthResponse:
    """Sign a token for the account and hand it out as both a cookie and a response body."""
    token = create_token(account.email, role)
    response.set_cookie(TOKEN_COOKIE, token, httponly=True, samesite="lax")
    return AuthResponse(id=account.id, fullname=account.fullname, email=account.email, token=token)


# FastAPI dependencies

def current_user_email(claims: dict = Depends(token_claims)) -> str:
    if claims.get("role") != ROLE_USER:
        raise AuthError("You need to login first")
    return claims["sub"]


def current_user(email: str = Depends(current_user_email), stores: Stores = Depends(get_stores)) -> User:
    user = stores.users.find_by_email(email)
    if user is None:
        raise AuthError("User not found. Please login again.")
    return user


def current_owner(claims: dict = Depends(token_claims), stores: Stores = Depends(get_stores)) -> Owner:
    if claims.get("role") != ROLE_OWNER:
        raise PermissionDeniedError("Owner access required")
    owner = stores.owners.find_by_email(claims["sub"])
    if owner is None:
        raise AuthError("Owner not found. Please login again.")
    return owner


def authenticate(store, email: str, password: str):
    """Return the account when the credentials match, else None."""
    account = store.find_by_email(email)
    if account is None or not verify_password(password, account.password):
        logger.warning("Failed login for %s", email)
        return None
    return account

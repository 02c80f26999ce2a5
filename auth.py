"""
Caller identity and authorization.

A request's bearer token is decoded once into a ``Caller``. Operations then
declare the capability they need with ``authorize`` instead of comparing
role strings inline.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

import jwt

import settings
from errors import ForbiddenError, UnauthenticatedError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    USER = "user"
    DEVELOPER = "developer"
    ADMIN = "admin"


class Capability(str, Enum):
    SHOP = "shop"
    MANAGE_ORDERS = "manage_orders"
    MODERATE_REVIEWS = "moderate_reviews"
    MANAGE_CATALOG = "manage_catalog"


ROLE_CAPABILITIES = {
    Role.USER: frozenset({Capability.SHOP}),
    Role.DEVELOPER: frozenset({Capability.SHOP, Capability.MANAGE_ORDERS, Capability.MODERATE_REVIEWS}),
    Role.ADMIN: frozenset(Capability),
}


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: Role = Role.USER
    email: Optional[str] = None
    username: Optional[str] = None

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES[self.role]


def authorize(caller: Optional[Caller], capability: Capability = Capability.SHOP) -> Caller:
    """
    Check that the caller holds a capability.

    Returns:
        The caller, so operations can write ``caller = authorize(caller)``

    Raises:
        UnauthenticatedError: No caller on the request
        ForbiddenError: Caller's role lacks the capability
    """
    if caller is None:
        raise UnauthenticatedError()
    if not caller.can(capability):
        raise ForbiddenError(f"Role '{caller.role.value}' is not allowed to {capability.value.replace('_', ' ')}")
    return caller


def sign_token(user_id: str, role: str = Role.USER.value, email: Optional[str] = None,
               username: Optional[str] = None, secret: Optional[str] = None,
               expires_in: Optional[timedelta] = None) -> str:
    """Issue a bearer token in the format ``decode_token`` accepts."""
    expires_in = expires_in or timedelta(hours=settings.TOKEN_EXPIRATION_HOURS)
    payload = {
        "data": {"_id": str(user_id), "role": role, "email": email, "username": username},
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, secret or settings.TOKEN_SECRET, algorithm=settings.TOKEN_ALGORITHM)


def decode_token(token: str, secret: Optional[str] = None) -> Optional[Caller]:
    """
    Resolve a token into a Caller.

    Invalid, expired or malformed tokens yield None; the request then
    proceeds anonymously and protected operations reject it.
    """
    try:
        payload = jwt.decode(token, secret or settings.TOKEN_SECRET, algorithms=[settings.TOKEN_ALGORITHM])
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid token: {e}")
        return None

    data = payload.get("data") or {}
    if not data.get("_id"):
        logger.warning("Token carries no user id")
        return None
    try:
        role = Role(data.get("role") or Role.USER.value)
    except ValueError:
        logger.warning(f"Token carries unknown role: {data.get('role')!r}")
        return None
    return Caller(user_id=str(data["_id"]), role=role, email=data.get("email"), username=data.get("username"))


def caller_from_header(authorization: Optional[str], secret: Optional[str] = None) -> Optional[Caller]:
    # "Bearer <token>"; a bare token is accepted too
    if not authorization:
        return None
    token = authorization.split(" ")[-1].strip()
    if not token:
        return None
    return decode_token(token, secret)

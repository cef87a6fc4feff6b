"""Bearer-token authentication and role gating for HTTP routes."""
from __future__ import annotations

from functools import wraps
from typing import Callable

from flask import current_app, g, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .errors import AuthenticationError, AuthorizationError
from .extensions import db
from .models import Seller, User

TOKEN_SALT = "auth-token"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def build_token(user: User) -> str:
    return _serializer().dumps({"user_id": user.user_id, "email": user.email, "role": user.role})


def decode_token(token: str) -> dict[str, object]:
    """Return the token payload or raise AuthenticationError."""
    try:
        return _serializer().loads(token, max_age=current_app.config["TOKEN_MAX_AGE"])
    except SignatureExpired as exc:
        raise AuthenticationError("Token has expired") from exc
    except BadSignature as exc:
        raise AuthenticationError("Token is not valid") from exc


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def load_user_from_token(token: str) -> User:
    payload = decode_token(token)
    user = db.session.get(User, payload.get("user_id"))
    if user is None:
        raise AuthenticationError("Token is not valid")
    if not user.is_verified:
        raise AuthenticationError("Please verify your email to access this resource")
    return user


def login_required(view: Callable) -> Callable:
    @wraps(view)
    def wrapper(*args, **kwargs):
        token = _bearer_token()
        if not token:
            raise AuthenticationError("No token, authorization denied")
        g.current_user = load_user_from_token(token)
        return view(*args, **kwargs)

    return wrapper


def roles_required(*roles: str) -> Callable:
    """Authenticate, then require the user's role to be one of ``roles``."""

    def decorator(view: Callable) -> Callable:
        @wraps(view)
        @login_required
        def wrapper(*args, **kwargs):
            if g.current_user.role not in roles:
                raise AuthorizationError(
                    f"User role '{g.current_user.role}' is not authorized to access this resource"
                )
            return view(*args, **kwargs)

        return wrapper

    return decorator


def current_seller(required: bool = True) -> Seller | None:
    """Seller profile of the authenticated user."""
    seller = Seller.query.filter_by(user_id=g.current_user.user_id).first()
    if seller is None and required:
        raise AuthorizationError("Seller profile not found")
    return seller


def approved_seller_required(view: Callable) -> Callable:
    @wraps(view)
    @roles_required("seller")
    def wrapper(*args, **kwargs):
        seller = current_seller(required=False)
        if seller is None or not seller.is_approved:
            raise AuthorizationError("Your seller account is pending approval")
        return view(*args, **kwargs)

    return wrapper

"""Registration and sign-in."""
from __future__ import annotations

from flask import Blueprint, g

from ..auth import login_required
from ..responses import json_payload, success
from ..services import accounts

bp = Blueprint("auth", __name__)


@bp.post("/register")
def register_user() -> tuple[dict[str, object], int]:
    """Register a new buyer or seller account.
    ---
    tags:
      - Auth
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            email:
              type: string
            password:
              type: string
            first_name:
              type: string
            last_name:
              type: string
            phone:
              type: string
            role:
              type: string
              enum: [buyer, seller]
            shop_name:
              type: string
            shop_address:
              type: string
            business_type:
              type: string
          required:
            - email
            - password
            - first_name
            - last_name
    responses:
      201:
        description: Account created; returns the user and a bearer token
      400:
        description: Invalid payload or email already registered
    """
    user, token = accounts.register_user(json_payload())
    return success({"user": user.to_dict(), "token": token}, 201, message="User registered successfully")


@bp.post("/login")
def login() -> tuple[dict[str, object], int]:
    """Exchange email and password for a bearer token.
    ---
    tags:
      - Auth
    responses:
      200:
        description: Signed in
      401:
        description: Invalid credentials
    """
    user, token = accounts.login_user(json_payload())
    return success({"user": user.to_dict(), "token": token}, message="Login successful")


@bp.post("/logout")
@login_required
def logout() -> tuple[dict[str, object], int]:
    # Tokens are stateless; the client discards its copy.
    return success(None, message="Logout successful")


@bp.get("/me")
@login_required
def me() -> tuple[dict[str, object], int]:
    return success(g.current_user.to_dict())

from __future__ import annotations

from flask import Blueprint, g

from ..auth import login_required
from ..responses import json_payload, success
from ..services import accounts

bp = Blueprint("users", __name__)


@bp.get("/profile")
@login_required
def get_profile() -> tuple[dict[str, object], int]:
    return success(accounts.get_user(g.current_user.user_id).to_dict())


@bp.put("/profile")
@login_required
def update_profile() -> tuple[dict[str, object], int]:
    user = accounts.update_profile(g.current_user, json_payload())
    return success(user.to_dict(), message="Profile updated successfully")


@bp.delete("/account")
@login_required
def delete_account() -> tuple[dict[str, object], int]:
    """Delete the signed-in account.
    ---
    tags:
      - Users
    responses:
      200:
        description: Account deleted
      400:
        description: Account still owns active listings or live appointments
    """
    accounts.delete_account(g.current_user)
    return success(None, message="Account deleted successfully")

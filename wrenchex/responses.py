"""JSON envelope helpers shared by every blueprint."""
from __future__ import annotations

from flask import jsonify, request

from .errors import ValidationError


def success(data: object = None, status: int = 200, **extra: object):
    body: dict[str, object] = {"success": True, "data": data}
    body.update(extra)
    return jsonify(body), status


def paginated(items: list, total: int, page: int, limit: int, status: int = 200):
    return success(
        items,
        status,
        pagination={
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    )


def pagination_args(default_limit: int = 10, max_limit: int = 50) -> tuple[int, int]:
    try:
        page = max(1, int(request.args.get("page", 1)))
        limit = min(max_limit, max(1, int(request.args.get("limit", default_limit))))
    except (TypeError, ValueError) as exc:
        raise ValidationError("page and limit must be integers") from exc
    return page, limit


def json_payload() -> dict[str, object]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}

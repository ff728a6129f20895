"""
Print-shop Workflow Engine
Blueprint registry and shared request helpers.
"""

from flask import request


def paginate_query(query, default_limit=100, max_limit=500):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 100, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def request_actor(data: dict | None = None) -> dict:
    """Resolve the acting user from the JSON body or the X-User-* headers.

    Authentication is performed upstream; the engine only needs the
    identity and role the caller was authenticated as.

    Returns:
        {"id": str|None, "role": str|None, "name": str|None}
    """
    data = data or {}
    actor = data.get("actor") or {}
    return {
        "id": actor.get("id") or request.headers.get("X-User-Id"),
        "role": actor.get("role") or request.headers.get("X-User-Role") or request.args.get("role"),
        "name": actor.get("name") or request.headers.get("X-User-Name"),
    }

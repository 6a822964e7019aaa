"""Standardized API response helpers.

List endpoints return ``{"items": [...], "total": <int>}``; paginated ones
add ``skip``, ``limit`` and ``hasMore``.
"""


def list_response(items: list, total=None) -> dict:
    return {
        "items": items,
        "total": total if total is not None else len(items),
    }


def paginated_response(items: list, total: int, skip: int = 0, limit: int = 50) -> dict:
    """Wrap a page of serialized items in the standard envelope."""
    return {
        "items": items,
        "total": total,
        "skip": skip,
        "limit": limit,
        "hasMore": (skip + len(items)) < total,
    }

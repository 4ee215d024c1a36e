"""
Shared ORDER BY clause helpers for catalog queries.

Important:
- The returned strings are *static SQL fragments* selected from a small
  whitelist. Do NOT concatenate user input into ORDER BY.
- Unknown values fall back to a sensible default.
"""

from __future__ import annotations


def playlists_order_clause(order_by: str, *, alias: str = "p") -> str:
    """
    ORDER BY clause for local and remote playlist lists.

    `alias` must be one of the table aliases used by the query modules.
    """
    if alias not in ("p", "rp"):
        raise ValueError(f"Unsupported playlist alias: {alias!r}")
    if order_by == "id":
        return f"ORDER BY {alias}.uid ASC"
    # Default: name. Unnamed playlists go last.
    return f"ORDER BY {alias}.name IS NULL, {alias}.name COLLATE NOCASE ASC, {alias}.uid ASC"


def subscriptions_order_clause(order_by: str) -> str:
    if order_by == "subscribers":
        return "ORDER BY s.subscriber_count IS NULL, s.subscriber_count DESC, s.uid ASC"
    if order_by == "id":
        return "ORDER BY s.uid ASC"
    return "ORDER BY s.name COLLATE NOCASE ASC, s.uid ASC"


def streams_order_clause(order_by: str) -> str:
    if order_by == "uploader":
        return "ORDER BY s.uploader COLLATE NOCASE ASC, s.title COLLATE NOCASE ASC, s.uid ASC"
    if order_by == "upload_date":
        # Newest first, unknown dates last.
        return "ORDER BY s.upload_date IS NULL, s.upload_date DESC, s.uid ASC"
    if order_by == "id":
        return "ORDER BY s.uid ASC"
    return "ORDER BY s.title COLLATE NOCASE ASC, s.uid ASC"

"""Read model over the external identity provider, used to address notifications."""
from typing import Any, Dict, Optional


def get_user(con, user_id: str) -> Optional[Dict[str, Any]]:
    row = con.execute(
        "SELECT id, username, email, first_name FROM users WHERE id=?",
        (user_id,),
    ).fetchone()
    return dict(row) if row else None


def ensure_user(
    con,
    user_id: str,
    *,
    email: Optional[str] = None,
    first_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Register a caller; blank fields never overwrite what is already stored."""
    con.execute(
        "INSERT INTO users(id, username, email, first_name) VALUES(?,?,?,?) "
        "ON CONFLICT(id) DO UPDATE SET "
        "email=CASE WHEN excluded.email != '' THEN excluded.email ELSE users.email END, "
        "first_name=COALESCE(excluded.first_name, users.first_name)",
        (user_id, user_id, (email or "").strip(), (first_name or "").strip() or None),
    )
    con.commit()
    return get_user(con, user_id)

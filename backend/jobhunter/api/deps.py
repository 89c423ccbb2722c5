from dataclasses import dataclass
from typing import Iterator, Optional

from fastapi import Depends, Header, Request

from jobhunter.db.conn import connect

# Identity is owned by an external provider; without it we run single-user mode
DEFAULT_USER_ID = "default"


@dataclass(frozen=True)
class Caller:
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None


def get_db(request: Request) -> Iterator:
    """One connection per request; the scheduler opens its own."""
    con = connect(request.app.state.db_path)
    try:
        yield con
    finally:
        con.close()


def current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    return (x_user_id or "").strip() or DEFAULT_USER_ID


def current_caller(
    user_id: str = Depends(current_user_id),
    x_user_email: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> Caller:
    return Caller(
        id=user_id,
        email=(x_user_email or "").strip() or None,
        first_name=(x_user_name or "").strip() or None,
    )

"""
Request-scoped identity.

Authentication lives outside this service; the gateway forwards the acting
user in headers.
"""

from typing import Optional

from fastapi import Header, HTTPException


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def get_optional_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_id or None


def get_is_admin(x_user_role: Optional[str] = Header(None)) -> bool:
    return (x_user_role or "").lower() == "admin"


def get_request_id(x_request_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_request_id

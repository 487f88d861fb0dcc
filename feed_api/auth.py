"""
Viewer identity.

Authentication happens upstream; the gateway forwards the verified user id
in `X-User-Id`. Absent → anonymous viewer.
"""
from typing import Optional

from fastapi import Header, HTTPException

from feed_api.ids import is_valid_id


async def get_viewer_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> Optional[str]:
    if x_user_id is None or x_user_id == "":
        return None
    if not is_valid_id(x_user_id):
        raise HTTPException(status_code=400, detail="Invalid X-User-Id header")
    return x_user_id


async def require_viewer_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> str:
    viewer_id = await get_viewer_id(x_user_id)
    if viewer_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return viewer_id

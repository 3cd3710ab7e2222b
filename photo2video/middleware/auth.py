from typing import Optional

from fastapi import Header, HTTPException


async def get_user_id(
    x_user_id: Optional[str] = Header(None),
) -> int:
    """
    Numeric user id from the X-User-ID header.

    Authentication is handled upstream; this only scopes data to a user.

    Usage:
        @router.get("/endpoint")
        async def endpoint(user_id: int = Depends(get_user_id)):
            ...
    """
    if not x_user_id:
        raise HTTPException(
            status_code=401,
            detail="User ID required"
        )

    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid user ID format")

    if user_id <= 0:
        raise HTTPException(status_code=400, detail="Invalid user ID format")
    return user_id

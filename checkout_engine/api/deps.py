from typing import Optional

from fastapi import Header, HTTPException, Request, status

from checkout_engine.services import PaymentServices


def get_services(request: Request) -> PaymentServices:
    return request.app.state.services


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    """
    Caller identity, set by the authenticating gateway in front of this service.

    Raises 401 when the request is anonymous.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - Please log in",
        )
    return x_user_id

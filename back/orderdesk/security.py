from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from .settings import settings

# Tokens are issued by the dashboard's auth service; this API only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


@dataclass(frozen=True)
class StaffContext:
    email: str
    restaurant_id: int


async def get_token_from_cookie(
    request: Request,
    token: Annotated[str | None, Depends(oauth2_scheme)]
) -> str:
    """
    Get token from cookie (primary) or Authorization header (fallback).
    """
    cookie_token = request.cookies.get("access_token")
    if cookie_token:
        return cookie_token

    if token:
        return token

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
    )


async def get_current_staff(
    token: Annotated[str, Depends(get_token_from_cookie)],
) -> StaffContext:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        email: str = payload.get("sub")
        restaurant_id = payload.get("restaurant_id")
        if email is None or restaurant_id is None:
            raise credentials_exception
        restaurant_id = int(restaurant_id)
    except (JWTError, ValueError):
        raise credentials_exception

    return StaffContext(email=email, restaurant_id=restaurant_id)

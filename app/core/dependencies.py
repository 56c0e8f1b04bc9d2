from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from app.db.session import get_db
from app.core.errors import AuthenticationError
from app.core.jwt_config import decode_token, get_token_from_cookie
from app.services.user_service import get_user_by_id

async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)):
    token = get_token_from_cookie(request=request)
    payload = decode_token(token)
    user_id = payload.get("sub")

    if user_id is None:
        raise AuthenticationError("Invalid authentication credentials")

    try:
        user = await get_user_by_id(db, int(user_id))
    except ValueError:
        raise AuthenticationError("Invalid authentication credentials")

    if user is None:
        raise AuthenticationError("User not found")

    return user

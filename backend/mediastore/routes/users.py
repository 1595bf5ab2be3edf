from fastapi import APIRouter, Depends

from mediastore.core.security import get_current_user
from mediastore.models.user import User
from mediastore.schemas.user import UserResponse

router = APIRouter(
    prefix="/users",
    tags=["Users"]
)

@router.get("/me", response_model=UserResponse)
async def read_users_me(current_user: User = Depends(get_current_user)):
    return current_user

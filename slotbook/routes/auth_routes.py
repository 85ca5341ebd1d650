from fastapi import APIRouter, Depends

from slotbook.auth.dependencies import get_current_operator
from slotbook.models.user import User

router = APIRouter(tags=["auth"])


@router.get("/me")
async def me(current_user: User = Depends(get_current_operator)):
    return {
        "data": {
            "email": current_user.email,
            "role": current_user.role,
            "agency_id": current_user.agency_id,
        }
    }

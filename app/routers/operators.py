from fastapi import APIRouter, Depends

from app.dependencies import get_current_operator
from app.models.operator import Operator
from app.schemas.operator import OperatorResponse

router = APIRouter(prefix="/operators", tags=["operators"])


@router.get("/me", response_model=OperatorResponse)
async def get_own_profile(operator: Operator = Depends(get_current_operator)):
    return operator

from fastapi import APIRouter, Depends
from ..models import User
from ..schemas import ActivityContextIn, ActivitySummaryOut
from ..dependencies import get_current_user
from ..agent.activity_processor import process_farm_activity

router = APIRouter(prefix="/ai", tags=["ai"])

@router.post("/process-farm-activity", response_model=ActivitySummaryOut)
def process_activity(body: ActivityContextIn, current_user: User = Depends(get_current_user)):
    # Failures come back as a fallback summary, never as an error status
    return process_farm_activity(body.context)

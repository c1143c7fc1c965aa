from fastapi import APIRouter, Depends
from ..analysis import AnalysisClient, AnalysisRequest
from .auth import get_current_teacher, Teacher

router = APIRouter(prefix="/analysis", tags=["analysis"])


@router.post("")
async def analyze(req: AnalysisRequest, teacher: Teacher = Depends(get_current_teacher)):
	"""Run the AI analysis on a raw request body; degraded results are returned, not raised."""
	analysis = await AnalysisClient().analyze_request(req)
	return analysis.model_dump(by_alias=True, exclude_none=True)

"""
TrustGrid - Analysis API

    POST /v1/analyze   - Score a piece of testimonial text without saving it
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from trustgrid.auth import require_auth
from trustgrid.accounts.profiles import Profile
from trustgrid.analysis.analyzer import analyze_with_fallback
from trustgrid.deps import get_analyzer

router = APIRouter(prefix="/v1", tags=["analysis"])


class AnalyzeRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)


@router.post("/analyze")
async def analyze_text(
    body: AnalyzeRequest,
    user: Profile = Depends(require_auth),
    analyzer=Depends(get_analyzer),
):
    analysis = await analyze_with_fallback(analyzer, body.text)
    return analysis.to_dict()

"""Transcript analysis endpoints."""

from datetime import date
from pathlib import Path

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field
from starlette.background import BackgroundTask

from taxlens.analysis.engine import analyze_transcripts
from taxlens.analysis.models import ClientInfo, ComprehensiveAnalysisResult
from taxlens.core.config import settings
from taxlens.core.logging import get_logger
from taxlens.output import write_action_plan_workbook

logger = get_logger(__name__)

router = APIRouter(prefix="/api/analyze", tags=["analysis"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class AnalyzeRequest(BaseModel):
    """Payload for an analysis run."""

    transcripts: list[str] = Field(min_length=1)
    client_info: ClientInfo | None = None
    as_of: date | None = None


async def _run_analysis(payload: AnalyzeRequest) -> ComprehensiveAnalysisResult:
    """Run the engine, mapping input errors to 422."""
    try:
        return await analyze_transcripts(
            payload.transcripts, payload.client_info, as_of=payload.as_of
        )
    except ValueError as e:
        logger.warning("analysis_rejected", error=str(e), error_type=type(e).__name__)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e


@router.post("", response_model=ComprehensiveAnalysisResult)
async def analyze(payload: AnalyzeRequest) -> ComprehensiveAnalysisResult:
    """Analyze transcript texts and return the full result."""
    return await _run_analysis(payload)


@router.post("/action-plan", response_class=FileResponse)
async def analyze_action_plan(payload: AnalyzeRequest) -> FileResponse:
    """Analyze transcript texts and return the action plan workbook.

    The workbook holds taxpayer data, so the file is deleted once sent.
    """
    result = await _run_analysis(payload)
    path = write_action_plan_workbook(
        result, Path(settings.output_dir) / f"action-plan-{result.analysis_id}.xlsx"
    )
    return FileResponse(
        path,
        media_type=XLSX_MEDIA_TYPE,
        filename=path.name,
        background=BackgroundTask(path.unlink, missing_ok=True),
    )

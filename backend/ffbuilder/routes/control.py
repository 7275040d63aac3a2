"""
Control endpoints for conversions.

HTTP adapter over JobRunner:
- POST /api/convert/srt-to-hls: start a stream ingest job
- POST /api/convert/hls-to-mp4: start a segment remux job
- POST /api/stop/{job_id}: stop a running job
- GET /api/processes: ids of running jobs

Conversion endpoints answer as soon as ffmpeg is spawned. Progress and
the outcome are delivered over the /ws event stream.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from ..execution.errors import OutputDirectoryError, ValidationError
from ..jobs.errors import SpawnError
from ..jobs.models import JobKind
from ..jobs.runner import JobRunner, StopResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["control"])


class ConversionStartedResponse(BaseModel):
    """Returned once the conversion process is running."""

    model_config = ConfigDict(extra="forbid")

    message: str
    job_id: str
    timestamp: str


class ProcessListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    active_processes: List[str]


class StopResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    message: str
    job_id: str


def validation_failed_response(details: List[str]) -> JSONResponse:
    """400 body shared with the request-parsing error handler."""
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": details},
    )


def _start_conversion(request: Request, kind: JobKind, params: Dict[str, Any]):
    runner: JobRunner = request.app.state.job_runner

    try:
        job_id = runner.start(kind, params)
    except ValidationError as e:
        logger.info(f"[Control] Rejected {kind.label} request: {e.details}")
        return validation_failed_response(e.details)
    except OutputDirectoryError as e:
        logger.error(f"[Control] {kind.label} request failed: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "Output directory unavailable", "message": str(e)},
        )
    except SpawnError as e:
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to start ffmpeg", "message": e.reason, "job_id": e.job_id},
        )

    return ConversionStartedResponse(
        message=f"{kind.label} conversion started",
        job_id=job_id,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.post("/convert/srt-to-hls", response_model=ConversionStartedResponse)
def convert_srt_to_hls(request: Request, params: Dict[str, Any] = Body(...)):
    """
    Start ingesting an SRT stream into HLS segments.

    Body: srtAddress, srtPort, streamId?, passphrase?, outputPath, hlsName
    """
    return _start_conversion(request, JobKind.STREAM_INGEST, params)


@router.post("/convert/hls-to-mp4", response_model=ConversionStartedResponse)
def convert_hls_to_mp4(request: Request, params: Dict[str, Any] = Body(...)):
    """
    Start remuxing an HLS playlist into one MP4 file.

    Body: hlsInputUrl, outputPath, mp4Name
    """
    return _start_conversion(request, JobKind.SEGMENT_REMUX, params)


@router.post("/stop/{job_id}", response_model=StopResponse)
def stop_conversion(job_id: str, request: Request):
    """
    Stop a running conversion.

    Returns immediately; the process may still be terminating.

    Raises:
        404: If the job is not running
    """
    runner: JobRunner = request.app.state.job_runner

    if runner.stop(job_id) is StopResult.NOT_FOUND:
        return JSONResponse(
            status_code=404,
            content={"error": "Process not found", "job_id": job_id},
        )

    return StopResponse(message="Process stopped", job_id=job_id)


@router.get("/processes", response_model=ProcessListResponse)
def list_processes(request: Request):
    runner: JobRunner = request.app.state.job_runner
    return ProcessListResponse(active_processes=runner.list_ids())

"""POST /reports/{variant}: load a snapshot, run one report and store it."""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from revenue_reports.config import ReportConfig
from revenue_reports.errors import ConfigurationError, StorageError
from revenue_reports.models.report import ReportVariant
from revenue_reports.pipeline.pipeline import ReportPipeline
from revenue_reports.repository import ReportRepository

from ..auth import verify_worker_token

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/reports/{variant}")
async def run_report(
    variant: ReportVariant,
    request: Request,
    parameters: dict[str, Any],
    _auth: None = Depends(verify_worker_token),
):
    """Run one report variant with a flat parameter mapping (report_date required)."""
    log = logger.bind(variant=variant.value)

    try:
        report_config = ReportConfig.from_mapping(parameters)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=e.message)

    log.info("reports.received", report_date=report_config.report_date.isoformat())

    repository = ReportRepository(request.app.state.postgres)
    try:
        snapshot = await repository.load_snapshot(variant)
        result = ReportPipeline().run(snapshot, report_config, variant)
        if getattr(request.app.state, "persist_reports", True):
            await repository.save_run(result)
    except ConfigurationError as e:
        log.warning("reports.configuration_error", error=str(e))
        return JSONResponse(status_code=422, content={"error": e.message})
    except StorageError as e:
        log.error("reports.storage_error", error=str(e))
        return JSONResponse(status_code=503, content={"error": e.message})
    except Exception as e:
        log.error("reports.failed", error=str(e), error_type=type(e).__name__)
        return JSONResponse(status_code=500, content={"error": str(e)})

    log.info("reports.complete", rows=result.row_count, processing_time_ms=result.processing_time_ms)
    return result.to_dict()


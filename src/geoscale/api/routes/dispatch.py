"""Dispatch endpoint invoked by the external scheduler (cron).

POST /dispatch runs one stateless dispatcher cycle and reports what it did.
No request body is required; `?kind=` scopes the cycle to one job kind.
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError

from geoscale.api.dependencies import get_dispatcher, verify_dispatch_token
from geoscale.models.job import JobKind
from geoscale.workers.dispatcher import Dispatcher, DispatchSummary

logger = structlog.get_logger()
router = APIRouter(tags=["dispatch"])


class JobResultDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: UUID = Field(..., alias="jobID")
    success: bool
    error: str | None = None


class DispatchResponse(BaseModel):
    """Summary of one dispatch cycle.

    A skipped cycle only carries `success` and `skipped`.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    skipped: bool | None = None
    processed: int | None = None
    succeeded: int | None = None
    failed: int | None = None
    results: list[JobResultDTO] | None = None
    budget_exhausted: bool | None = Field(default=None, alias="budgetExhausted")

    @classmethod
    def from_summary(cls, summary: DispatchSummary) -> "DispatchResponse":
        if summary.skipped:
            return cls(success=True, skipped=True)
        return cls(
            success=True,
            processed=summary.processed,
            succeeded=summary.succeeded,
            failed=summary.failed,
            results=[
                JobResultDTO(job_id=r.job_id, success=r.success, error=r.error)
                for r in summary.results
            ],
            budget_exhausted=summary.budget_exhausted,
        )


@router.post(
    "/dispatch",
    response_model=DispatchResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(verify_dispatch_token)],
)
async def dispatch(
    kind: JobKind | None = Query(default=None),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """Run one dispatch cycle.

    Returns:
        200 with the cycle summary, or {"success": true, "skipped": true} when a
        previous batch is still processing
        500 {"success": false, "error": ...} when the job store is unreachable

    Example:
        POST /dispatch?kind=content-generation

        Response 200:
        {
            "success": true,
            "processed": 2,
            "succeeded": 1,
            "failed": 1,
            "results": [
                {"jobID": "...", "success": true},
                {"jobID": "...", "success": false, "error": "OpenRouter API error (503)"}
            ],
            "budgetExhausted": false
        }
    """
    try:
        summary = await dispatcher.run_cycle(kind)
    except SQLAlchemyError as e:
        logger.error(
            "dispatch.store_unavailable",
            error=str(e),
            error_type=type(e).__name__,
        )
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    return DispatchResponse.from_summary(summary)

"""Job queue API endpoints.

This module implements REST endpoints for enqueueing and inspecting jobs:
- POST /jobs - Enqueue one job per subject
- GET /jobs/{job_id} - Get a single job
- GET /jobs/subjects/{subject_id}/latest - Latest job for a subject
- GET /jobs/subjects/{subject_id}/position - Subject's position in the queue
- GET /projects/{project_id}/jobs - Jobs for a project (newest first)
- GET /projects/{project_id}/queue-stats - Queue counters for a project
- GET /queue/stats - Queue counters across all projects

Request and response bodies use camelCase keys.
"""

import math
from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from geoscale.api.dependencies import get_settings, get_uow_factory
from geoscale.core.config import Settings
from geoscale.models.job import Job, JobKind, JobStatus
from geoscale.services.enqueue import enqueue_jobs
from geoscale.services.exceptions import ValidationError

logger = structlog.get_logger()
router = APIRouter(tags=["jobs"])

# Rough per-job duration used for queue position estimates
SECONDS_PER_JOB_ESTIMATE = 5


# Request/Response Models


class EnqueueRequest(BaseModel):
    """Request model for enqueueing jobs."""

    model_config = ConfigDict(populate_by_name=True)

    kind: JobKind = Field(..., description="Job kind (content-generation, wordpress-push)")
    subject_ids: list[UUID] = Field(
        ..., alias="subjectIDs", description="Location keyword IDs to act upon"
    )
    owner_id: UUID = Field(..., alias="ownerID", description="Requesting user")
    project_id: UUID = Field(..., alias="projectID", description="Project of the subjects")
    priority: int = Field(default=0, description="Higher runs first")
    max_attempts: int | None = Field(
        default=None,
        alias="maxAttempts",
        description="Attempts before terminal failure (default: DEFAULT_MAX_ATTEMPTS)",
    )


class EnqueueResponse(BaseModel):
    """Response model for enqueue operations."""

    model_config = ConfigDict(populate_by_name=True)

    jobs_created: int = Field(..., alias="jobsCreated")
    job_ids: list[UUID] = Field(..., alias="jobIDs")


class JobDTO(BaseModel):
    """Data Transfer Object for job information in API responses."""

    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    kind: JobKind
    subject_id: UUID = Field(..., alias="subjectID")
    project_id: UUID = Field(..., alias="projectID")
    status: JobStatus
    attempts: int
    max_attempts: int = Field(..., alias="maxAttempts")
    priority: int
    error_message: str | None = Field(default=None, alias="errorMessage")
    created_at: datetime = Field(..., alias="createdAt")
    started_at: datetime | None = Field(default=None, alias="startedAt")
    completed_at: datetime | None = Field(default=None, alias="completedAt")

    @classmethod
    def from_job(cls, job: Job) -> "JobDTO":
        return cls(
            id=job.id,
            kind=job.kind,
            subject_id=job.subject_id,
            project_id=job.project_id,
            status=job.status,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            priority=job.priority,
            error_message=job.error_message,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class QueueStatsResponse(BaseModel):
    """Queue counters. `pending` is queued + processing."""

    model_config = ConfigDict(populate_by_name=True)

    queued: int
    processing: int
    completed: int
    failed: int
    pending: int
    estimated_minutes: int = Field(..., alias="estimatedMinutes")


class QueuePositionResponse(BaseModel):
    """Position of a subject among queued jobs (1-based, null if not queued)."""

    model_config = ConfigDict(populate_by_name=True)

    subject_id: UUID = Field(..., alias="subjectID")
    position: int | None
    queue_length: int = Field(..., alias="queueLength")
    estimated_wait_minutes: int = Field(..., alias="estimatedWaitMinutes")


# API Endpoints


@router.post("/jobs", response_model=EnqueueResponse, status_code=status.HTTP_201_CREATED)
async def create_jobs(
    request: EnqueueRequest,
    uow_factory=Depends(get_uow_factory),
    settings: Settings = Depends(get_settings),
) -> EnqueueResponse:
    """Enqueue one job per subject.

    Raises:
        HTTPException 400: Empty subject list or invalid max attempts

    Example:
        POST /jobs
        {
            "kind": "content-generation",
            "subjectIDs": ["6f1c...", "9a0e..."],
            "ownerID": "2b7d...",
            "projectID": "c41a...",
            "priority": 0
        }

        Response 201:
        {
            "jobsCreated": 2,
            "jobIDs": ["...", "..."]
        }
    """
    max_attempts = (
        request.max_attempts if request.max_attempts is not None else settings.default_max_attempts
    )
    try:
        async with await uow_factory() as uow:
            job_ids = await enqueue_jobs(
                uow,
                kind=request.kind,
                subject_ids=request.subject_ids,
                owner_id=request.owner_id,
                project_id=request.project_id,
                priority=request.priority,
                max_attempts=max_attempts,
            )
    except ValidationError as e:
        logger.warning("jobs.enqueue_rejected", project_id=str(request.project_id), error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return EnqueueResponse(jobs_created=len(job_ids), job_ids=job_ids)


@router.get("/jobs/{job_id}", response_model=JobDTO)
async def get_job(job_id: UUID, uow_factory=Depends(get_uow_factory)) -> JobDTO:
    async with await uow_factory() as uow:
        job = await uow.jobs.get_by_id(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return JobDTO.from_job(job)


@router.get("/jobs/subjects/{subject_id}/latest", response_model=JobDTO)
async def get_latest_job_for_subject(
    subject_id: UUID,
    kind: JobKind | None = Query(default=None),
    uow_factory=Depends(get_uow_factory),
) -> JobDTO:
    """Most recent job for a subject, optionally of one kind."""
    async with await uow_factory() as uow:
        job = await uow.jobs.get_latest_for_subject(subject_id, kind=kind)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No job found for subject"
        )
    return JobDTO.from_job(job)


@router.get("/jobs/subjects/{subject_id}/position", response_model=QueuePositionResponse)
async def get_queue_position(
    subject_id: UUID,
    kind: JobKind | None = Query(default=None),
    uow_factory=Depends(get_uow_factory),
) -> QueuePositionResponse:
    """Where a subject's queued job sits in dispatch order.

    The wait estimate assumes roughly five seconds per job ahead of it.
    """
    async with await uow_factory() as uow:
        queued = await uow.jobs.queued_subject_ids(kind=kind)

    position = queued.index(subject_id) + 1 if subject_id in queued else None
    estimated = math.ceil(position * SECONDS_PER_JOB_ESTIMATE / 60) if position else 0
    return QueuePositionResponse(
        subject_id=subject_id,
        position=position,
        queue_length=len(queued),
        estimated_wait_minutes=estimated,
    )


@router.get("/projects/{project_id}/jobs", response_model=list[JobDTO])
async def list_project_jobs(
    project_id: UUID,
    kind: JobKind | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    uow_factory=Depends(get_uow_factory),
) -> list[JobDTO]:
    async with await uow_factory() as uow:
        jobs = await uow.jobs.list_by_project(project_id, kind=kind, limit=limit, offset=offset)
    return [JobDTO.from_job(job) for job in jobs]


async def _queue_stats(
    uow_factory, batch_size: int, kind: JobKind | None, project_id: UUID | None
) -> QueueStatsResponse:
    async with await uow_factory() as uow:
        counts = {
            job_status: await uow.jobs.count_by_status(
                job_status, kind=kind, project_id=project_id
            )
            for job_status in JobStatus
        }

    pending = counts[JobStatus.QUEUED] + counts[JobStatus.PROCESSING]
    return QueueStatsResponse(
        queued=counts[JobStatus.QUEUED],
        processing=counts[JobStatus.PROCESSING],
        completed=counts[JobStatus.COMPLETED],
        failed=counts[JobStatus.FAILED],
        pending=pending,
        # One batch per dispatch cycle, cycles roughly a minute apart
        estimated_minutes=math.ceil(pending / batch_size),
    )


@router.get("/projects/{project_id}/queue-stats", response_model=QueueStatsResponse)
async def get_project_queue_stats(
    project_id: UUID,
    kind: JobKind | None = Query(default=None),
    uow_factory=Depends(get_uow_factory),
    settings: Settings = Depends(get_settings),
) -> QueueStatsResponse:
    return await _queue_stats(uow_factory, settings.dispatch_batch_size, kind, project_id)


@router.get("/queue/stats", response_model=QueueStatsResponse)
async def get_queue_stats(
    kind: JobKind | None = Query(default=None),
    uow_factory=Depends(get_uow_factory),
    settings: Settings = Depends(get_settings),
) -> QueueStatsResponse:
    return await _queue_stats(uow_factory, settings.dispatch_batch_size, kind, None)

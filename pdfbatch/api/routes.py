"""Batch job and download API routers."""

from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import Response

from pdfbatch.api.dependencies import (
    get_coordinator,
    get_job_service,
    get_link_issuer,
    get_user_id,
)
from pdfbatch.api.schemas import (
    BatchFileSchema,
    BatchJobSchema,
    CreateJobRequest,
    FileOutcomeSchema,
    JobListResponse,
    JobStatusResponse,
    MergeResponse,
    PaginationSchema,
    ProcessResponse,
    UpdateJobRequest,
    UploadErrorSchema,
    UploadResponse,
)
from pdfbatch.batch.coordinator import BatchJobCoordinator
from pdfbatch.batch.job_service import BatchJobService
from pdfbatch.batch.models import IncomingFile, NewFile
from pdfbatch.download.link_issuer import DownloadLinkIssuer
from pdfbatch.processor.models import FileOutcome

batch_router = APIRouter()
download_router = APIRouter()


def _outcome(outcome: FileOutcome) -> FileOutcomeSchema:
    return FileOutcomeSchema(
        file_id=outcome.file_id,
        filename=outcome.filename,
        status=outcome.status.value,
        pages=outcome.pages,
        error_code=outcome.error_code,
        error_message=outcome.error_message,
    )


@batch_router.post("/jobs", status_code=201)
def create_job(
    request: CreateJobRequest,
    user_id: UUID = Depends(get_user_id),
    service: BatchJobService = Depends(get_job_service),
) -> BatchJobSchema:
    """Create a pending batch job with one placeholder per announced file."""
    job = service.create_job(
        user_id=user_id,
        name=request.name,
        files=[NewFile(name=f.name, size=f.size) for f in request.files],
        description=request.description,
        merge_output=request.merge_output,
        merge_format=request.merge_format,
    )
    return BatchJobSchema.model_validate(job)


@batch_router.get("/jobs")
def list_jobs(
    page: int = Query(default=1),
    limit: int = Query(default=20),
    status: str | None = Query(default=None),
    sort_by: str = Query(default="created_at"),
    sort_order: str = Query(default="desc"),
    user_id: UUID = Depends(get_user_id),
    service: BatchJobService = Depends(get_job_service),
) -> JobListResponse:
    result = service.list_jobs(
        user_id,
        page=page,
        limit=limit,
        status=status,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return JobListResponse(
        jobs=[BatchJobSchema.model_validate(job) for job in result.jobs],
        pagination=PaginationSchema(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=result.total_pages,
        ),
    )


@batch_router.patch("/jobs/{job_id}")
def update_job(
    job_id: UUID,
    request: UpdateJobRequest,
    user_id: UUID = Depends(get_user_id),
    service: BatchJobService = Depends(get_job_service),
) -> BatchJobSchema:
    """Rename a job or change its description. An explicit null description clears it."""
    description = request.description
    if description is None and "description" in request.model_fields_set:
        description = ""
    job = service.update_job(job_id, user_id, name=request.name, description=description)
    return BatchJobSchema.model_validate(job)


@batch_router.delete("/jobs/{job_id}", status_code=204)
def delete_job(
    job_id: UUID,
    user_id: UUID = Depends(get_user_id),
    service: BatchJobService = Depends(get_job_service),
) -> None:
    """Delete a job that is not currently processing."""
    service.delete_job(job_id, user_id)


@batch_router.post("/jobs/{job_id}/files")
async def upload_files(
    job_id: UUID,
    files: list[UploadFile] = File(...),
    user_id: UUID = Depends(get_user_id),
    service: BatchJobService = Depends(get_job_service),
) -> UploadResponse:
    """Upload PDF bytes for the job's pending files."""
    # One byte past the limit is enough for the validator to reject the file.
    read_limit = service.max_upload_bytes + 1
    incoming = [
        IncomingFile(filename=upload.filename or "", content=await upload.read(read_limit))
        for upload in files
    ]
    result = service.upload_files(job_id, user_id, incoming)
    return UploadResponse(
        job_id=result.job_id,
        uploaded=result.uploaded,
        errors=[UploadErrorSchema(filename=e.filename, error=e.error) for e in result.errors],
        job_status=result.job_status.value,
    )


@batch_router.post("/jobs/{job_id}/process")
def process_job(
    job_id: UUID,
    user_id: UUID = Depends(get_user_id),
    coordinator: BatchJobCoordinator = Depends(get_coordinator),
) -> ProcessResponse:
    """Run one processing sweep. Poll until all_completed is true."""
    result = coordinator.process_job(job_id, user_id)
    return ProcessResponse(
        job_id=result.job_id,
        status=result.status.value,
        processed=[_outcome(o) for o in result.processed],
        failed=[_outcome(o) for o in result.failed],
        pages_processed=result.pages_processed,
        pages_charged=result.pages_charged,
        all_completed=result.all_completed,
        interrupted=result.interrupted,
        error_code=result.error_code,
        error_message=result.error_message,
    )


@batch_router.post("/jobs/{job_id}/merge")
def merge_job(
    job_id: UUID,
    user_id: UUID = Depends(get_user_id),
    coordinator: BatchJobCoordinator = Depends(get_coordinator),
) -> MergeResponse:
    """Merge completed files and return a single-use download link."""
    result = coordinator.merge_job(job_id, user_id)
    return MergeResponse(
        job_id=result.job_id,
        output_id=result.output_id,
        file_name=result.file_name,
        format=result.format.value,
        file_size=result.file_size,
        total_pages=result.total_pages,
        file_count=result.file_count,
        download_token=result.download_token,
        expires_at=result.expires_at,
        download_url=f"/download/{result.output_id}?token={result.download_token}",
    )


@batch_router.get("/jobs/{job_id}")
def get_job(
    job_id: UUID,
    user_id: UUID = Depends(get_user_id),
    coordinator: BatchJobCoordinator = Depends(get_coordinator),
) -> JobStatusResponse:
    view = coordinator.get_job(job_id, user_id)
    return JobStatusResponse(
        job=BatchJobSchema.model_validate(view.job),
        files=[BatchFileSchema.model_validate(f) for f in view.files],
    )


@download_router.get("/{output_id}")
def download(
    output_id: str,
    token: str = Query(default=""),
    issuer: DownloadLinkIssuer = Depends(get_link_issuer),
) -> Response:
    """Redeem a download token. Each token works exactly once."""
    payload = issuer.redeem(output_id, token)
    return Response(
        content=payload.content,
        media_type=payload.content_type,
        headers={
            "Content-Length": str(payload.size),
            "Content-Disposition": f'attachment; filename="{payload.file_name}"',
            "Cache-Control": "no-store, no-cache, must-revalidate",
            "Pragma": "no-cache",
            "X-Content-Type-Options": "nosniff",
        },
    )

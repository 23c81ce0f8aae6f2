"""Pydantic request and response schemas for the batch API."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from pdfbatch.batch.states import FileStatus, JobStatus, MergeFormat


class ErrorResponse(BaseModel):
    error: str
    detail: str


class NewFileSchema(BaseModel):
    name: str
    size: int


class CreateJobRequest(BaseModel):
    name: str
    description: str | None = None
    files: list[NewFileSchema] = Field(default_factory=list)
    merge_output: bool = False
    merge_format: str | None = None


class BatchFileSchema(BaseModel):
    id: uuid.UUID
    original_filename: str
    status: FileStatus
    file_size: int
    estimated_pages: int
    actual_pages: int | None
    error_code: str | None
    error_message: str | None

    model_config = {"from_attributes": True}


class BatchJobSchema(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None
    status: JobStatus
    merge_output: bool
    merge_format: MergeFormat | None
    total_files: int
    processed_files: int
    failed_files: int
    estimated_pages: int
    processed_pages: int
    error_code: str | None
    error_message: str | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class JobStatusResponse(BaseModel):
    job: BatchJobSchema
    files: list[BatchFileSchema]


class UploadErrorSchema(BaseModel):
    filename: str
    error: str


class UploadResponse(BaseModel):
    job_id: uuid.UUID
    uploaded: list[str]
    errors: list[UploadErrorSchema]
    job_status: str


class FileOutcomeSchema(BaseModel):
    file_id: uuid.UUID
    filename: str
    status: str
    pages: int
    error_code: str | None = None
    error_message: str | None = None


class ProcessResponse(BaseModel):
    job_id: uuid.UUID
    status: str
    processed: list[FileOutcomeSchema]
    failed: list[FileOutcomeSchema]
    pages_processed: int
    pages_charged: int
    all_completed: bool
    interrupted: bool
    error_code: str | None = None
    error_message: str | None = None


class MergeResponse(BaseModel):
    job_id: uuid.UUID
    output_id: uuid.UUID
    file_name: str
    format: str
    file_size: int
    total_pages: int
    file_count: int
    download_token: str
    expires_at: datetime
    download_url: str


class UpdateJobRequest(BaseModel):
    name: str | None = None
    description: str | None = None


class PaginationSchema(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class JobListResponse(BaseModel):
    jobs: list[BatchJobSchema]
    pagination: PaginationSchema

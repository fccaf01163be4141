from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from .artifact_store import LocalArtifactStore
from .configuration import Settings, build_config_metadata, get_settings
from .errors import AlreadyProcessedError, InvalidInputError, NotFoundError, StorageFailureError
from .job_manager import JobManager
from .messages import normalize_language, translate
from .models import (
    ConfigMetadata,
    ConvertAccepted,
    DownloadReference,
    JobDetail,
    JobStatusResponse,
    JobSummary,
    LabelSize,
    ProcessRequest,
    ProcessResponse,
)
from .utils import decode_zpl_payload

settings = get_settings()
logging.getLogger("zpl_pdf_backend").setLevel(settings.log_level.upper())

app = FastAPI(title="ZPL to PDF API", version="0.1.0")

allowed_origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

job_manager = JobManager.from_settings(settings)


def get_job_manager() -> JobManager:
    return job_manager


def get_app_settings() -> Settings:
    return settings


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/config/defaults", response_model=ConfigMetadata)
def get_config_defaults(config: Settings = Depends(get_app_settings)) -> ConfigMetadata:
    return build_config_metadata(config)


async def _read_upload(file: UploadFile, limit: int) -> str:
    raw = await file.read(limit + 1)
    await file.close()
    if len(raw) > limit:
        raise HTTPException(status_code=413, detail=f"ZPL file exceeds the {limit} byte limit")
    try:
        return decode_zpl_payload(raw)
    except UnicodeDecodeError as exc:  # noqa: BLE001
        raise HTTPException(status_code=400, detail="ZPL file must be UTF-8 text") from exc


@app.post("/zpl/convert", status_code=202, response_model=ConvertAccepted)
async def convert_zpl(
    file: Optional[UploadFile] = File(None),
    zplContent: Optional[str] = Form(None),
    labelSize: LabelSize = Form(LabelSize.TWO_BY_ONE),
    language: Optional[str] = Form(None),
    manager: JobManager = Depends(get_job_manager),
    config: Settings = Depends(get_app_settings),
) -> ConvertAccepted:
    # An uploaded file wins over inline content.
    if file is not None and file.filename:
        content = await _read_upload(file, config.max_upload_bytes)
    else:
        content = zplContent

    try:
        job_id = manager.submit(content, labelSize, language)
    except InvalidInputError as exc:  # noqa: BLE001
        raise HTTPException(status_code=400, detail=exc.reason) from exc

    return ConvertAccepted(
        jobId=job_id,
        message=translate("accepted", normalize_language(language, manager.default_language)),
        statusUrl=f"/zpl/status/{job_id}",
    )


@app.post("/zpl/process", response_model=ProcessResponse)
def process_zpl(request: ProcessRequest, manager: JobManager = Depends(get_job_manager)) -> ProcessResponse:
    try:
        manager.process(request.jobId)
    except NotFoundError as exc:  # noqa: BLE001
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except AlreadyProcessedError as exc:  # noqa: BLE001
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    job_status = manager.status(request.jobId)
    return ProcessResponse(status=job_status.status, message=job_status.message)


@app.get("/zpl/status/{job_id}", response_model=JobStatusResponse)
def check_status(job_id: str, manager: JobManager = Depends(get_job_manager)) -> JobStatusResponse:
    try:
        return manager.status(job_id)
    except NotFoundError as exc:  # noqa: BLE001
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/zpl/download/{job_id}", response_model=DownloadReference)
def download_pdf(job_id: str, manager: JobManager = Depends(get_job_manager)) -> DownloadReference:
    try:
        return manager.download(job_id)
    except NotFoundError as exc:  # noqa: BLE001
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StorageFailureError as exc:  # noqa: BLE001
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.get("/zpl/files/{job_id}")
def download_file(job_id: str, manager: JobManager = Depends(get_job_manager)) -> FileResponse:
    if not isinstance(manager.artifacts, LocalArtifactStore):
        raise HTTPException(status_code=404, detail="Files are served by the storage backend")
    try:
        reference = manager.download(job_id)
    except NotFoundError as exc:  # noqa: BLE001
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return FileResponse(
        manager.artifacts.path_for(job_id),
        media_type="application/pdf",
        filename=reference.filename,
    )


@app.get("/jobs", response_model=list[JobSummary])
def list_jobs(manager: JobManager = Depends(get_job_manager)) -> list[JobSummary]:
    return manager.list_jobs()


@app.get("/jobs/{job_id}", response_model=JobDetail)
def get_job(job_id: str, manager: JobManager = Depends(get_job_manager)) -> JobDetail:
    try:
        return manager.get_job(job_id)
    except NotFoundError as exc:  # noqa: BLE001
        raise HTTPException(status_code=404, detail=str(exc)) from exc

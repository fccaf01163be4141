"""
ZPL PDF Backend - REST API for converting ZPL labels to PDF

This package provides a FastAPI-based web service that turns label markup written
in the Zebra Programming Language into PDF documents. It enables:

- ZPL submission as inline text or uploaded file, with structural validation
- Asynchronous conversion jobs with pending/processing/completed/failed states
- Progress and status polling per job
- PDF storage on the local filesystem or S3, with download references

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - job_manager: Job lifecycle coordinator (submit, process, status, download)
    - job_store: Thread-safe job records with an atomic compare-and-set update
    - validator: Structural pre-check of submitted ZPL
    - zpl_parser: ZPL tokenizer and label interpreter
    - pdf_renderer: ReportLab drawing of labels onto sized pages
    - engine: Parse + render facade producing RenderedDocument objects
    - artifact_store: Local and S3 storage of finished PDFs
    - database: Optional SQLite persistence of job records
    - configuration: Settings loaded from ZPL_* environment variables
    - messages: Status messages in English and Spanish

Usage:
    Run the API server with:
        uvicorn zpl_pdf_backend.main:app --reload --host 0.0.0.0 --port 8000

Architecture Principles:
    - Submission is fast and synchronous; rendering happens off the request path
    - One worker per job, enforced by the pending -> processing transition
    - Processing failures are recorded on the job, never raised to pollers
    - Failed jobs are not retried; resubmit to try again
"""

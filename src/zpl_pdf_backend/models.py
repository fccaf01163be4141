from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

POINTS_PER_INCH = 72


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class LabelSize(str, Enum):
    TWO_BY_ONE = "2x1"
    TWO_BY_FOUR = "2x4"
    FOUR_BY_TWO = "4x2"
    FOUR_BY_SIX = "4x6"

    @property
    def dimensions(self) -> Tuple[int, int]:
        """Label (width, height) in inches."""
        width, height = self.value.split("x")
        return int(width), int(height)

    @property
    def page_size(self) -> Tuple[float, float]:
        """PDF page (width, height) in points."""
        width, height = self.dimensions
        return float(width * POINTS_PER_INCH), float(height * POINTS_PER_INCH)


class JobEvent(BaseModel):
    timestamp: datetime
    message: str


class JobStatusResponse(BaseModel):
    status: JobStatus
    progress: int
    message: str


class DownloadReference(BaseModel):
    url: str
    filename: str


class JobSummary(BaseModel):
    id: str
    status: JobStatus
    progress: int
    message: str
    label_size: LabelSize
    language: str
    created_at: datetime
    updated_at: datetime
    filename: Optional[str] = None


class JobDetail(JobSummary):
    events: List[JobEvent]
    source_length: int


class ConvertAccepted(BaseModel):
    jobId: str
    message: str
    statusUrl: str


class ProcessRequest(BaseModel):
    jobId: str = Field(..., min_length=1)


class ProcessResponse(BaseModel):
    status: JobStatus
    message: str


class LabelSizeInfo(BaseModel):
    value: LabelSize
    width_in: int
    height_in: int
    width_pt: float
    height_pt: float


class ConfigMetadata(BaseModel):
    label_sizes: List[LabelSizeInfo]
    defaults: Dict[str, Any]
    languages: List[str]
    notes: Dict[str, str]

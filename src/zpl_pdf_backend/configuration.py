from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .messages import SUPPORTED_LANGUAGES
from .models import ConfigMetadata, LabelSize, LabelSizeInfo

NOTES: Dict[str, str] = {
    "dpi": "Printer resolution used to map ZPL dots onto PDF points (203 dpi = 8 dots/mm).",
    "unsupported_policy": "'warn' skips unknown ZPL commands and records a warning; 'strict' fails the job.",
    "auto_process": "When false, jobs stay pending until POST /zpl/process is called for them.",
    "storage_backend": "'local' serves PDFs from output_root; 's3' uploads them and returns presigned URLs.",
    "max_upload_bytes": "Upper bound for uploaded ZPL files.",
}


class Settings(BaseSettings):
    """Service settings, read from ZPL_* environment variables and an optional .env file."""

    model_config = SettingsConfigDict(
        env_prefix="ZPL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    output_root: Path = Path("output")
    storage_backend: Literal["local", "s3"] = "local"
    files_base_url: str = "/zpl/files"

    s3_bucket_name: str = ""
    s3_prefix: str = "labels/"
    presigned_url_expiration: int = Field(3600, gt=0)

    max_workers: int = Field(2, ge=1)
    auto_process: bool = True

    dpi: int = Field(203, gt=0)
    unsupported_policy: Literal["warn", "strict"] = "warn"
    max_upload_bytes: int = Field(1024 * 1024, gt=0)

    database_path: Optional[Path] = None
    default_language: str = "en"
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def label_size_table() -> list[LabelSizeInfo]:
    rows = []
    for size in LabelSize:
        width_in, height_in = size.dimensions
        width_pt, height_pt = size.page_size
        rows.append(
            LabelSizeInfo(
                value=size,
                width_in=width_in,
                height_in=height_in,
                width_pt=width_pt,
                height_pt=height_pt,
            )
        )
    return rows


def build_config_metadata(settings: Settings) -> ConfigMetadata:
    defaults = settings.model_dump(mode="json", exclude={"s3_bucket_name"})
    return ConfigMetadata(
        label_sizes=label_size_table(),
        defaults=defaults,
        languages=sorted(SUPPORTED_LANGUAGES),
        notes=NOTES,
    )

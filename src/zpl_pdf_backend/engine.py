from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

from .errors import ConversionError, RenderingError
from .models import LabelSize
from .pdf_renderer import DEFAULT_DPI, PdfRenderer
from .zpl_parser import parse_zpl

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class RenderedDocument:
    """A finished PDF plus what the engine learned while producing it."""

    content: bytes
    page_count: int
    page_size: Tuple[float, float]
    warnings: Tuple[str, ...] = ()


class ConversionEngine:
    """
    Converts ZPL markup into a PDF with one page per label block.

    The engine holds only configuration, so one instance can serve any number of
    jobs from any number of threads.

    Attributes:
        dpi: Printer resolution used to convert dots into points
        strict: Fail on unsupported instructions instead of skipping them
    """

    def __init__(self, dpi: int = DEFAULT_DPI, strict: bool = False) -> None:
        self.dpi = dpi
        self.strict = strict
        self._renderer = PdfRenderer(dpi=dpi)

    def render(
        self,
        source_content: str,
        label_size: Union[LabelSize, str],
        job_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RenderedDocument:
        """
        Parse and render a submission.

        The whole stream is parsed before the first page is drawn, so a malformed
        block anywhere means no document at all.

        Args:
            source_content: Raw ZPL markup
            label_size: Page geometry for every label
            job_id: Used in the PDF title when given
            on_progress: Called with (pages_done, pages_total) after each page

        Returns:
            RenderedDocument with the PDF bytes

        Raises:
            MalformedInputError: Structural or field-data problems
            UnsupportedInstructionError: Unknown instruction in strict mode
            RenderingError: Any other failure inside the PDF library
        """
        size = LabelSize(label_size)
        parsed = parse_zpl(source_content, strict=self.strict)
        title = f"Labels {job_id}" if job_id else "Labels"

        try:
            content = self._renderer.render(parsed.labels, size, title=title, on_page=on_progress)
        except ConversionError:
            raise
        except Exception as exc:
            raise RenderingError(f"PDF rendering failed: {exc}") from exc

        logger.info(
            f"Rendered {len(parsed.labels)} label(s) at {size.value} "
            f"with {len(parsed.warnings)} warning(s)"
        )
        return RenderedDocument(
            content=content,
            page_count=len(parsed.labels),
            page_size=size.page_size,
            warnings=tuple(parsed.warnings),
        )

"""
PDF rendering of parsed labels with ReportLab.

Every label becomes one page sized to the requested LabelSize. Element positions
are ZPL dots measured from the top-left corner; they are converted to PDF points
(72 per inch) using the configured printer resolution.
"""

from __future__ import annotations

import math
from contextlib import contextmanager
from io import BytesIO
from typing import Callable, Iterator, List, Optional, Sequence

from reportlab.graphics import renderPDF
from reportlab.graphics.barcode import createBarcodeDrawing
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from .errors import MalformedInputError
from .models import LabelSize
from .zpl_parser import (
    BarcodeField,
    Element,
    GraphicBox,
    GraphicDiagonal,
    GraphicEllipse,
    Label,
    TextField,
)

DEFAULT_DPI = 203

# Share of the font height that sits above the baseline.
BASELINE_RATIO = 0.8

LINE_BREAK = "\\&"

# Byte-mode capacity of QR versions 1-10 per error correction level.
QR_BYTE_CAPACITY = {
    "L": (17, 32, 53, 78, 106, 134, 154, 192, 230, 271),
    "M": (14, 26, 42, 62, 84, 106, 122, 152, 180, 213),
    "Q": (11, 20, 32, 46, 60, 74, 86, 108, 130, 151),
    "H": (7, 14, 24, 34, 44, 58, 64, 84, 98, 119),
}

# Digits the barcode library expects; it computes the check digit itself.
_CHECK_DIGIT_LENGTHS = {"EAN13": 12, "EAN8": 7, "UPCA": 11}

PageCallback = Callable[[int, int], None]


def qr_module_count(data: str, error_correction: str = "Q") -> int:
    """Estimate the side length in modules of the smallest QR symbol holding ``data``."""
    capacities = QR_BYTE_CAPACITY.get(error_correction, QR_BYTE_CAPACITY["Q"])
    size = len(data.encode("utf-8"))
    for version, capacity in enumerate(capacities, start=1):
        if size <= capacity:
            return 17 + 4 * version
    per_version = capacities[-1] / len(capacities)
    version = min(40, len(capacities) + math.ceil((size - capacities[-1]) / per_version))
    return 17 + 4 * version


class PdfRenderer:
    """Draws parsed labels onto ReportLab canvases, one page per label."""

    def __init__(self, dpi: int = DEFAULT_DPI) -> None:
        self.dpi = dpi
        self.scale = 72.0 / dpi

    def render(
        self,
        labels: Sequence[Label],
        label_size: LabelSize,
        title: Optional[str] = None,
        on_page: Optional[PageCallback] = None,
    ) -> bytes:
        page_width, page_height = label_size.page_size
        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=(page_width, page_height))
        pdf.setTitle(title or "ZPL labels")
        pdf.setCreator("zpl-pdf-backend")

        total = len(labels)
        for number, label in enumerate(labels, start=1):
            for element in label.elements:
                self._draw_element(pdf, element, page_height, label.index)
            pdf.showPage()
            if on_page is not None:
                on_page(number, total)

        pdf.save()
        return buffer.getvalue()

    def _draw_element(self, pdf: canvas.Canvas, element: Element, page_height: float, label_index: int) -> None:
        if isinstance(element, TextField):
            self._draw_text(pdf, element, page_height)
        elif isinstance(element, BarcodeField):
            self._draw_barcode(pdf, element, page_height, label_index)
        elif isinstance(element, GraphicBox):
            self._draw_box(pdf, element, page_height)
        elif isinstance(element, GraphicEllipse):
            self._draw_ellipse(pdf, element, page_height)
        elif isinstance(element, GraphicDiagonal):
            self._draw_diagonal(pdf, element, page_height)

    @contextmanager
    def _oriented(
        self,
        pdf: canvas.Canvas,
        x: float,
        top: float,
        width: float,
        height: float,
        orientation: str = "N",
    ) -> Iterator[None]:
        """
        Set up a local frame where the element's unrotated box spans x 0..width, y -height..0.

        ``x`` and ``top`` are the page coordinates (points) of the field origin. After
        rotation the box still starts at the origin and extends right and down, which is
        how the printer lays out rotated fields.
        """
        pdf.saveState()
        if orientation == "R":
            pdf.translate(x + height, top)
            pdf.rotate(-90)
        elif orientation == "I":
            pdf.translate(x + width, top - height)
            pdf.rotate(180)
        elif orientation == "B":
            pdf.translate(x, top - width)
            pdf.rotate(90)
        else:
            pdf.translate(x, top)
        try:
            yield
        finally:
            pdf.restoreState()

    def _draw_text(self, pdf: canvas.Canvas, field: TextField, page_height: float) -> None:
        font = field.font
        font_name = "Helvetica-Bold" if font.name == "0" else "Courier"
        size = font.height * self.scale
        natural_width = font.height if font_name == "Helvetica-Bold" else font.height * 0.6
        horiz_scale = 100.0 * font.width / natural_width
        stretch = horiz_scale / 100.0

        block = field.block
        if block is not None:
            wrap_width = block.width * self.scale if block.width else None
            lines: List[str] = []
            for part in field.text.split(LINE_BREAK):
                if wrap_width:
                    lines.extend(simpleSplit(part, font_name, size, wrap_width / stretch) or [""])
                else:
                    lines.append(part)
            lines = lines[: block.max_lines]
            line_height = size + block.line_spacing * self.scale
            justification = block.justification
        else:
            wrap_width = None
            lines = [field.text]
            line_height = size
            justification = "L"

        line_widths = [pdf.stringWidth(line, font_name, size) * stretch for line in lines]
        box_width = wrap_width or max(line_widths, default=0.0)
        box_height = line_height * len(lines)

        x = field.x * self.scale
        top = page_height - field.y * self.scale
        if field.typeset:
            top += size * BASELINE_RATIO

        with self._oriented(pdf, x, top, box_width, box_height, font.orientation):
            pdf.setFillColor(colors.white if field.reverse else colors.black)
            for row, (line, line_width) in enumerate(zip(lines, line_widths)):
                offset = 0.0
                if justification == "C":
                    offset = (box_width - line_width) / 2
                elif justification == "R":
                    offset = box_width - line_width
                text = pdf.beginText()
                text.setFont(font_name, size)
                text.setHorizScale(horiz_scale)
                text.setTextOrigin(offset, -row * line_height - size * BASELINE_RATIO)
                text.textOut(line)
                pdf.drawText(text)

    def _barcode_drawing(self, field: BarcodeField) -> Drawing:
        if field.symbology == "QR":
            side = qr_module_count(field.data, field.error_correction) * field.magnification * self.scale
            return createBarcodeDrawing(
                "QR",
                value=field.data,
                barWidth=side,
                barHeight=side,
                barBorder=0,
                barLevel=field.error_correction,
            )

        value = field.data
        digits = _CHECK_DIGIT_LENGTHS.get(field.symbology)
        if digits is not None or field.symbology == "I2of5":
            if not value.isdigit():
                raise ValueError("numeric data required")
            value = value[:digits] if digits else value
        return createBarcodeDrawing(
            field.symbology,
            value=value,
            barWidth=field.module_width * self.scale,
            barHeight=field.height * self.scale,
            ratio=field.ratio,
            humanReadable=field.interpretation,
            checksum=0,
            quiet=0,
        )

    def _draw_barcode(self, pdf: canvas.Canvas, field: BarcodeField, page_height: float, label_index: int) -> None:
        try:
            drawing = self._barcode_drawing(field)
        except ValueError as exc:
            raise MalformedInputError(
                f"label {label_index}: invalid {field.symbology} barcode data {field.data!r} ({exc})"
            ) from exc

        x = field.x * self.scale
        top = page_height - field.y * self.scale
        if field.typeset:
            top += drawing.height
        with self._oriented(pdf, x, top, drawing.width, drawing.height, field.orientation):
            renderPDF.draw(drawing, pdf, 0, -drawing.height)

    def _draw_box(self, pdf: canvas.Canvas, box: GraphicBox, page_height: float) -> None:
        width = box.width * self.scale
        height = box.height * self.scale
        thickness = box.thickness * self.scale
        radius = box.rounding / 8.0 * min(width, height) / 2
        color = colors.white if box.color == "W" else colors.black

        with self._oriented(pdf, box.x * self.scale, page_height - box.y * self.scale, width, height):
            pdf.setFillColor(color)
            pdf.setStrokeColor(color)
            if 2 * thickness >= min(width, height):
                if radius:
                    pdf.roundRect(0, -height, width, height, radius, stroke=0, fill=1)
                else:
                    pdf.rect(0, -height, width, height, stroke=0, fill=1)
                return
            pdf.setLineWidth(thickness)
            inset = thickness / 2
            if radius:
                pdf.roundRect(inset, -height + inset, width - thickness, height - thickness, radius, stroke=1, fill=0)
            else:
                pdf.rect(inset, -height + inset, width - thickness, height - thickness, stroke=1, fill=0)

    def _draw_ellipse(self, pdf: canvas.Canvas, ellipse: GraphicEllipse, page_height: float) -> None:
        width = ellipse.width * self.scale
        height = ellipse.height * self.scale
        thickness = ellipse.thickness * self.scale
        color = colors.white if ellipse.color == "W" else colors.black

        with self._oriented(pdf, ellipse.x * self.scale, page_height - ellipse.y * self.scale, width, height):
            pdf.setFillColor(color)
            pdf.setStrokeColor(color)
            if 2 * thickness >= min(width, height):
                pdf.ellipse(0, -height, width, 0, stroke=0, fill=1)
                return
            pdf.setLineWidth(thickness)
            inset = thickness / 2
            pdf.ellipse(inset, -height + inset, width - inset, -inset, stroke=1, fill=0)

    def _draw_diagonal(self, pdf: canvas.Canvas, line: GraphicDiagonal, page_height: float) -> None:
        width = line.width * self.scale
        height = line.height * self.scale
        color = colors.white if line.color == "W" else colors.black

        with self._oriented(pdf, line.x * self.scale, page_height - line.y * self.scale, width, height):
            pdf.setStrokeColor(color)
            pdf.setLineWidth(line.thickness * self.scale)
            if line.direction == "L":
                pdf.line(0, 0, width, -height)
            else:
                pdf.line(0, -height, width, 0)

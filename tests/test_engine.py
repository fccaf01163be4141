"""
Tests for the conversion engine and PDF renderer.
"""

import fitz  # pymupdf
import pytest

from zpl_pdf_backend.engine import ConversionEngine, RenderedDocument
from zpl_pdf_backend.errors import MalformedInputError, UnsupportedInstructionError
from zpl_pdf_backend.models import LabelSize
from zpl_pdf_backend.pdf_renderer import PdfRenderer, qr_module_count


@pytest.fixture
def engine():
    return ConversionEngine()


class TestPageGeometry:
    def test_two_labels_make_two_pages(self, engine, two_labels):
        document = engine.render(two_labels, LabelSize.FOUR_BY_SIX, job_id="abc")

        assert isinstance(document, RenderedDocument)
        assert document.content.startswith(b"%PDF")
        assert document.page_count == 2
        assert document.page_size == (288, 432)
        assert document.warnings == ()

    def test_pdf_pages_match_label_geometry(self, engine, two_labels):
        """The page tree in the PDF itself holds one 4x6 page per label."""
        document = engine.render(two_labels, LabelSize.FOUR_BY_SIX)

        with fitz.open(stream=document.content, filetype="pdf") as pdf:
            assert pdf.page_count == 2
            assert [(page.rect.width, page.rect.height) for page in pdf] == [(288, 432), (288, 432)]
            assert "Ship To: ACME Corp" in pdf[0].get_text()
            assert "Second label" in pdf[1].get_text()

    @pytest.mark.parametrize(
        "label_size,page_size",
        [("2x1", (144, 72)), ("2x4", (144, 288)), ("4x2", (288, 144)), ("4x6", (288, 432))],
    )
    def test_label_size_sets_page_size(self, engine, single_label, label_size, page_size):
        document = engine.render(single_label, label_size)
        assert document.page_count == 1
        assert document.page_size == page_size

    def test_unknown_label_size_is_rejected(self, engine, single_label):
        with pytest.raises(ValueError):
            engine.render(single_label, "3x3")

    def test_renderer_scale_follows_dpi(self):
        assert PdfRenderer(dpi=300).scale == pytest.approx(0.24)


class TestProgress:
    def test_callback_runs_once_per_page(self, engine, two_labels):
        calls = []
        engine.render(two_labels, LabelSize.TWO_BY_ONE, on_progress=lambda done, total: calls.append((done, total)))
        assert calls == [(1, 2), (2, 2)]

    def test_no_callback_for_malformed_input(self, engine, unterminated_label):
        calls = []
        with pytest.raises(MalformedInputError):
            engine.render(unterminated_label, LabelSize.TWO_BY_ONE, on_progress=lambda *args: calls.append(args))
        assert calls == []


class TestFailures:
    def test_unterminated_block_fails_whole_document(self, engine, unterminated_label):
        with pytest.raises(MalformedInputError) as exc_info:
            engine.render(unterminated_label, LabelSize.FOUR_BY_SIX)
        assert exc_info.value.kind == "malformed_input"

    def test_unsupported_instruction_warns_by_default(self, engine):
        document = engine.render("^XA^KZ1^FO10,10^FDok^FS^XZ", LabelSize.TWO_BY_ONE)
        assert document.page_count == 1
        assert document.warnings == ("label 1: unsupported instruction ^KZ skipped",)

    def test_unsupported_instruction_fails_in_strict_mode(self):
        with pytest.raises(UnsupportedInstructionError) as exc_info:
            ConversionEngine(strict=True).render("^XA^KZ1^XZ", LabelSize.TWO_BY_ONE)
        assert exc_info.value.kind == "unsupported_instruction"

    def test_non_numeric_ean_data_is_malformed(self, engine):
        with pytest.raises(MalformedInputError) as exc_info:
            engine.render("^XA^FO10,10^BEN,50^FDABC^FS^XZ", LabelSize.FOUR_BY_TWO)
        assert "EAN13" in str(exc_info.value)


class TestElements:
    @pytest.mark.parametrize(
        "command,data",
        [
            ("^BCN,60", "SHIP-0042"),
            ("^B3N,N,60", "ABC123"),
            ("^BEN,60", "400638133393"),
            ("^B8N,60", "1234567"),
            ("^BUN,60", "03600029145"),
            ("^B2N,60", "12345678"),
            ("^BQN,2,3", "QA,hello"),
        ],
    )
    def test_every_symbology_renders(self, engine, command, data):
        document = engine.render(f"^XA^FO20,20{command}^FD{data}^FS^XZ", LabelSize.FOUR_BY_SIX)
        assert document.page_count == 1

    @pytest.mark.parametrize("orientation", ["N", "R", "I", "B"])
    def test_rotated_fields_render(self, engine, orientation):
        content = (
            f"^XA^FO100,100^A0{orientation},30,30^FDRotated^FS"
            f"^FO100,300^BC{orientation},50^FD1234^FS^XZ"
        )
        assert engine.render(content, LabelSize.FOUR_BY_SIX).page_count == 1

    def test_graphics_and_field_blocks_render(self, engine):
        content = (
            "^XA"
            "^FO10,10^GB300,200,3,B,3^FS"
            "^FO10,220^GB300,40,40^FS"
            "^FO10,270^GC80,3^FS"
            "^FO100,270^GE120,60,2^FS"
            "^FO10,350^GD200,80,2,B,L^FS"
            "^FO10,450^FB300,3,4,C^A0N,25,25^FDfirst line\\&second line^FS"
            "^FT10,600^FR^FDreverse^FS"
            "^XZ"
        )
        assert engine.render(content, LabelSize.FOUR_BY_SIX).page_count == 1


class TestQrModuleCount:
    def test_small_payload_fits_version_one(self):
        assert qr_module_count("hello", "Q") == 21

    def test_larger_payload_grows_symbol(self):
        assert qr_module_count("x" * 40, "Q") == 33

    def test_payload_beyond_table_is_capped(self):
        assert qr_module_count("x" * 10000, "L") == 17 + 4 * 40

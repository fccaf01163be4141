"""
ZPL tokenizer and label interpreter.

The parser turns a command stream into a list of Label objects, one per
^XA ... ^XZ block, each holding positioned text, barcode and graphic elements in
printer dots. Geometry is resolved later by the PDF renderer.

Parsing is all-or-nothing: a structural problem anywhere in the stream raises
MalformedInputError and no labels are returned.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Union

from .errors import MalformedInputError, UnsupportedInstructionError

logger = logging.getLogger(__name__)

_PREFIX_RE = re.compile(r"[\^~]")
_HEX_DIGITS = "0123456789abcdefABCDEF"
_QR_DATA_RE = re.compile(r"^([HQML])([AM]),(.*)$", re.DOTALL)
_CODE128_INVOCATION_RE = re.compile(r">([0-9:;<=>])")

FIELD_DATA_CODES = frozenset({"FD", "FV"})
# Largest dot value any ZPL field parameter accepts.
MAX_DOTS = 32000

ORIENTATIONS = frozenset("NRIB")
JUSTIFICATIONS = frozenset("LCRJ")

# Printer setup commands that do not change what ends up on the page.
IGNORED_COMMANDS = frozenset(
    {"PW", "LL", "LS", "LT", "PO", "PM", "PR", "PQ", "MD", "MN", "MT", "MM", "CI", "LR", "JM", "SZ", "JU", "XB"}
)
IGNORED_TILDE_COMMANDS = frozenset({"SD", "TA", "JS", "JA", "JR", "JC", "JD", "JE"})

BARCODE_SYMBOLOGIES: Dict[str, str] = {
    "BC": "Code128",
    "B3": "Standard39",
    "BE": "EAN13",
    "B8": "EAN8",
    "BU": "UPCA",
    "B2": "I2of5",
    "BQ": "QR",
}


@dataclass(frozen=True)
class Instruction:
    """One command from the stream, e.g. ``^FO50,60`` -> prefix '^', code 'FO', params '50,60'."""

    prefix: str
    code: str
    params: str
    offset: int

    @property
    def name(self) -> str:
        return f"{self.prefix}{self.code}"

    def args(self) -> List[str]:
        if not self.params:
            return []
        return [arg.strip() for arg in self.params.split(",")]


@dataclass(frozen=True)
class FontSpec:
    name: str = "A"
    orientation: str = "N"
    height: int = 9
    width: int = 5


@dataclass(frozen=True)
class FieldBlock:
    width: int
    max_lines: int = 1
    line_spacing: int = 0
    justification: str = "L"


@dataclass(frozen=True)
class TextField:
    x: int
    y: int
    text: str
    font: FontSpec
    typeset: bool = False
    reverse: bool = False
    block: Optional[FieldBlock] = None


@dataclass(frozen=True)
class BarcodeField:
    x: int
    y: int
    symbology: str
    data: str
    orientation: str = "N"
    height: int = 10
    module_width: int = 2
    ratio: float = 3.0
    interpretation: bool = True
    typeset: bool = False
    magnification: int = 2
    error_correction: str = "Q"


@dataclass(frozen=True)
class GraphicBox:
    x: int
    y: int
    width: int
    height: int
    thickness: int = 1
    color: str = "B"
    rounding: int = 0


@dataclass(frozen=True)
class GraphicEllipse:
    x: int
    y: int
    width: int
    height: int
    thickness: int = 1
    color: str = "B"


@dataclass(frozen=True)
class GraphicDiagonal:
    x: int
    y: int
    width: int
    height: int
    thickness: int = 1
    color: str = "B"
    direction: str = "R"


Element = Union[TextField, BarcodeField, GraphicBox, GraphicEllipse, GraphicDiagonal]


@dataclass
class Label:
    index: int
    elements: List[Element] = field(default_factory=list)


@dataclass
class ParsedDocument:
    labels: List[Label]
    warnings: List[str] = field(default_factory=list)


UnsupportedHandler = Callable[[Instruction, int], None]


def _float_arg(args: List[str], index: int, default: float) -> float:
    """Numeric argument at ``index``; missing, non-numeric and non-finite values give ``default``."""
    try:
        value = float(args[index])
    except (IndexError, ValueError):
        return default
    return value if math.isfinite(value) else default


def _int_arg(args: List[str], index: int, default: int) -> int:
    value = int(_float_arg(args, index, default))
    return max(-MAX_DOTS, min(MAX_DOTS, value))


def _choice_arg(args: List[str], index: int, choices: frozenset, default: str) -> str:
    try:
        value = args[index][:1].upper()
    except IndexError:
        return default
    return value if value in choices else default


def _flag_arg(args: List[str], index: int, default: bool) -> bool:
    try:
        value = args[index][:1].upper()
    except IndexError:
        return default
    if value == "Y":
        return True
    if value == "N":
        return False
    return default


def _color_arg(args: List[str], index: int) -> str:
    return _choice_arg(args, index, frozenset("BW"), "B")


def tokenize(content: str) -> List[Instruction]:
    """
    Split a ZPL stream into instructions.

    Field data (^FD, ^FV) runs up to the next caret so tildes may appear in data;
    every other command's parameters run to the next caret or tilde. Line breaks
    inside parameters are dropped.

    Raises:
        MalformedInputError: If a command prefix is not followed by a two-character code
    """
    instructions: List[Instruction] = []
    length = len(content)
    match = _PREFIX_RE.search(content)
    position = match.start() if match else length

    while position < length:
        prefix = content[position]
        code = content[position + 1 : position + 3]
        if len(code) < 2 or not code.strip() or _PREFIX_RE.search(code):
            raise MalformedInputError(f"Truncated command {prefix}{code!s} at offset {position}")
        code = code.upper()

        params_start = position + 3
        if code in FIELD_DATA_CODES:
            end = content.find("^", params_start)
        else:
            next_prefix = _PREFIX_RE.search(content, params_start)
            end = next_prefix.start() if next_prefix else -1
        if end == -1:
            end = length

        params = content[params_start:end].replace("\r", "").replace("\n", "")
        if code not in FIELD_DATA_CODES:
            params = params.strip()
        instructions.append(Instruction(prefix=prefix, code=code, params=params, offset=position))
        position = end

    return instructions


def split_blocks(instructions: List[Instruction], warnings: List[str]) -> List[List[Instruction]]:
    """
    Group instructions into ^XA ... ^XZ label blocks, preserving input order.

    Instructions outside any block are skipped and reported in ``warnings``.

    Raises:
        MalformedInputError: On nested or unterminated blocks, stray end markers,
            or when the stream holds no block at all
    """
    blocks: List[List[Instruction]] = []
    current: Optional[List[Instruction]] = None
    current_offset = 0

    for instruction in instructions:
        is_marker = instruction.prefix == "^"
        if is_marker and instruction.code == "XA":
            if current is not None:
                raise MalformedInputError(
                    f"Malformed label structure: label block {len(blocks) + 1} starting at offset "
                    f"{current_offset} is not closed with ^XZ before the next ^XA at offset {instruction.offset}"
                )
            current = []
            current_offset = instruction.offset
        elif is_marker and instruction.code == "XZ":
            if current is None:
                raise MalformedInputError(
                    f"Malformed label structure: ^XZ at offset {instruction.offset} has no matching ^XA"
                )
            blocks.append(current)
            current = None
        elif current is None:
            warnings.append(f"instruction {instruction.name} outside a label block skipped")
        else:
            current.append(instruction)

    if current is not None:
        raise MalformedInputError(
            f"Malformed label structure: label block {len(blocks) + 1} starting at offset "
            f"{current_offset} has no matching ^XZ"
        )
    if not blocks:
        raise MalformedInputError("Malformed label structure: no complete ^XA ... ^XZ label block found")
    return blocks


def decode_hex_escapes(data: str, indicator: str) -> str:
    """Replace ``<indicator>HH`` sequences with the byte they encode (read as UTF-8 where possible)."""
    out = bytearray()
    index = 0
    while index < len(data):
        char = data[index]
        pair = data[index + 1 : index + 3]
        if char == indicator and len(pair) == 2 and all(c in _HEX_DIGITS for c in pair):
            out.append(int(pair, 16))
            index += 3
        else:
            out.extend(char.encode("utf-8"))
            index += 1
    return out.decode("utf-8", errors="replace")


class _LabelInterpreter:
    """Applies one block's instructions, tracking label-wide defaults and the open field."""

    def __init__(self, index: int, on_unsupported: UnsupportedHandler) -> None:
        self.label = Label(index=index)
        self._on_unsupported = on_unsupported
        self._home: Tuple[int, int] = (0, 0)
        self._default_font = FontSpec()
        self._default_orientation = "N"
        self._module_width = 2
        self._ratio = 3.0
        self._barcode_height = 10
        self._handlers: Dict[str, Callable[[Instruction], None]] = {
            "FO": self._origin,
            "FT": self._origin,
            "LH": self._label_home,
            "CF": self._change_font,
            "FW": self._field_orientation,
            "FB": self._field_block,
            "FR": self._reverse,
            "FH": self._hex_indicator,
            "FD": self._field_data,
            "FV": self._field_data,
            "FS": self._field_separator,
            "BY": self._barcode_defaults,
            "GB": self._box,
            "GC": self._circle,
            "GE": self._ellipse,
            "GD": self._diagonal,
            "FX": lambda instruction: None,
        }
        self._reset_field()

    def _reset_field(self) -> None:
        self._field_origin: Optional[Tuple[int, int]] = None
        self._typeset = False
        self._font: Optional[FontSpec] = None
        self._barcode: Optional[Dict[str, object]] = None
        self._graphic: Optional[Tuple[type, Dict[str, object]]] = None
        self._block: Optional[FieldBlock] = None
        self._is_reverse = False
        self._hex: Optional[str] = None
        self._data: Optional[str] = None

    def feed(self, instruction: Instruction) -> None:
        if instruction.prefix == "~":
            if instruction.code not in IGNORED_TILDE_COMMANDS:
                self._on_unsupported(instruction, self.label.index)
            return

        if instruction.code.startswith("A"):
            self._field_font(instruction)
            return

        handler = self._handlers.get(instruction.code)
        if handler is not None:
            handler(instruction)
        elif instruction.code in BARCODE_SYMBOLOGIES:
            self._barcode_field(instruction)
        elif instruction.code not in IGNORED_COMMANDS:
            self._on_unsupported(instruction, self.label.index)

    def finish(self) -> Label:
        self._flush_field()
        return self.label

    # label-wide state

    def _label_home(self, instruction: Instruction) -> None:
        args = instruction.args()
        self._home = (_int_arg(args, 0, 0), _int_arg(args, 1, 0))

    def _change_font(self, instruction: Instruction) -> None:
        args = instruction.args()
        current = self._default_font
        name = args[0][:1].upper() if args and args[0] else current.name
        height = max(1, _int_arg(args, 1, current.height))
        width = max(1, _int_arg(args, 2, height if len(args) > 1 else current.width))
        self._default_font = FontSpec(name=name, orientation=current.orientation, height=height, width=width)

    def _field_orientation(self, instruction: Instruction) -> None:
        self._default_orientation = _choice_arg(instruction.args(), 0, ORIENTATIONS, self._default_orientation)

    def _barcode_defaults(self, instruction: Instruction) -> None:
        args = instruction.args()
        self._module_width = max(1, _int_arg(args, 0, self._module_width))
        self._ratio = min(3.0, max(2.0, _float_arg(args, 1, self._ratio)))
        self._barcode_height = max(1, _int_arg(args, 2, self._barcode_height))

    # field state

    def _origin(self, instruction: Instruction) -> None:
        if self._graphic is not None:
            self._flush_field()
        args = instruction.args()
        self._field_origin = (self._home[0] + _int_arg(args, 0, 0), self._home[1] + _int_arg(args, 1, 0))
        self._typeset = instruction.code == "FT"

    def _field_font(self, instruction: Instruction) -> None:
        args = instruction.args()
        name = instruction.code[1]
        orientation = _choice_arg(args, 0, ORIENTATIONS, self._default_orientation)
        height = max(1, _int_arg(args, 1, self._default_font.height))
        width = max(1, _int_arg(args, 2, height))
        self._font = FontSpec(name=name, orientation=orientation, height=height, width=width)

    def _field_block(self, instruction: Instruction) -> None:
        args = instruction.args()
        self._block = FieldBlock(
            width=max(0, _int_arg(args, 0, 0)),
            max_lines=max(1, _int_arg(args, 1, 1)),
            line_spacing=_int_arg(args, 2, 0),
            justification=_choice_arg(args, 3, JUSTIFICATIONS, "L"),
        )

    def _reverse(self, instruction: Instruction) -> None:
        self._is_reverse = True

    def _hex_indicator(self, instruction: Instruction) -> None:
        self._hex = instruction.params[:1] or "_"

    def _field_data(self, instruction: Instruction) -> None:
        self._data = instruction.params

    def _barcode_field(self, instruction: Instruction) -> None:
        args = instruction.args()
        code = instruction.code
        orientation = _choice_arg(args, 0, ORIENTATIONS, self._default_orientation)
        barcode: Dict[str, object] = {
            "symbology": BARCODE_SYMBOLOGIES[code],
            "orientation": orientation,
            "module_width": self._module_width,
            "ratio": self._ratio,
        }
        if code == "BQ":
            barcode["magnification"] = min(10, max(1, _int_arg(args, 2, 2)))
            barcode["error_correction"] = _choice_arg(args, 3, frozenset("HQML"), "Q")
            barcode["interpretation"] = False
        elif code == "B3":
            barcode["height"] = max(1, _int_arg(args, 2, self._barcode_height))
            barcode["interpretation"] = _flag_arg(args, 3, True)
        else:
            barcode["height"] = max(1, _int_arg(args, 1, self._barcode_height))
            barcode["interpretation"] = _flag_arg(args, 2, True)
        self._barcode = barcode

    def _box(self, instruction: Instruction) -> None:
        args = instruction.args()
        thickness = max(1, _int_arg(args, 2, 1))
        self._graphic = (
            GraphicBox,
            {
                "width": max(thickness, _int_arg(args, 0, thickness)),
                "height": max(thickness, _int_arg(args, 1, thickness)),
                "thickness": thickness,
                "color": _color_arg(args, 3),
                "rounding": min(8, max(0, _int_arg(args, 4, 0))),
            },
        )

    def _circle(self, instruction: Instruction) -> None:
        args = instruction.args()
        diameter = max(3, _int_arg(args, 0, 3))
        self._graphic = (
            GraphicEllipse,
            {
                "width": diameter,
                "height": diameter,
                "thickness": max(1, _int_arg(args, 1, 1)),
                "color": _color_arg(args, 2),
            },
        )

    def _ellipse(self, instruction: Instruction) -> None:
        args = instruction.args()
        thickness = max(1, _int_arg(args, 2, 1))
        self._graphic = (
            GraphicEllipse,
            {
                "width": max(thickness, _int_arg(args, 0, thickness)),
                "height": max(thickness, _int_arg(args, 1, thickness)),
                "thickness": thickness,
                "color": _color_arg(args, 3),
            },
        )

    def _diagonal(self, instruction: Instruction) -> None:
        args = instruction.args()
        thickness = max(1, _int_arg(args, 2, 1))
        direction = args[4][:1] if len(args) > 4 and args[4] else "R"
        direction = {"/": "R", "\\": "L"}.get(direction, direction.upper())
        self._graphic = (
            GraphicDiagonal,
            {
                "width": max(thickness, _int_arg(args, 0, thickness)),
                "height": max(thickness, _int_arg(args, 1, thickness)),
                "thickness": thickness,
                "color": _color_arg(args, 3),
                "direction": direction if direction in ("R", "L") else "R",
            },
        )

    def _field_separator(self, instruction: Instruction) -> None:
        self._flush_field()

    def _flush_field(self) -> None:
        x, y = self._field_origin or self._home

        if self._graphic is not None:
            graphic_type, options = self._graphic
            self.label.elements.append(graphic_type(x=x, y=y, **options))
        elif self._data is not None:
            data = decode_hex_escapes(self._data, self._hex) if self._hex else self._data
            if self._barcode is not None:
                self.label.elements.append(self._make_barcode(x, y, data))
            else:
                font = self._font or FontSpec(
                    name=self._default_font.name,
                    orientation=self._default_orientation,
                    height=self._default_font.height,
                    width=self._default_font.width,
                )
                self.label.elements.append(
                    TextField(
                        x=x,
                        y=y,
                        text=data,
                        font=font,
                        typeset=self._typeset,
                        reverse=self._is_reverse,
                        block=self._block,
                    )
                )
        self._reset_field()

    def _make_barcode(self, x: int, y: int, data: str) -> BarcodeField:
        options = dict(self._barcode or {})
        symbology = options["symbology"]
        if symbology == "QR":
            match = _QR_DATA_RE.match(data)
            if match:
                options["error_correction"] = match.group(1)
                data = match.group(3)
        elif symbology == "Code128":
            data = _CODE128_INVOCATION_RE.sub(lambda m: ">" if m.group(1) == ">" else "", data)
        return BarcodeField(x=x, y=y, data=data, typeset=self._typeset, **options)


def parse_label(block: List[Instruction], index: int, on_unsupported: UnsupportedHandler) -> Label:
    interpreter = _LabelInterpreter(index, on_unsupported)
    for instruction in block:
        interpreter.feed(instruction)
    return interpreter.finish()


def parse_zpl(content: str, strict: bool = False) -> ParsedDocument:
    """
    Parse a full ZPL submission.

    Args:
        content: Raw ZPL markup
        strict: Raise on the first unsupported instruction instead of skipping it

    Returns:
        ParsedDocument with one Label per block, in input order, plus warnings

    Raises:
        MalformedInputError: On any structural problem
        UnsupportedInstructionError: In strict mode, on the first unknown instruction
    """
    warnings: List[str] = []

    def on_unsupported(instruction: Instruction, label_index: int) -> None:
        if strict:
            raise UnsupportedInstructionError(instruction.name, label_index)
        message = f"label {label_index}: unsupported instruction {instruction.name} skipped"
        logger.warning(message)
        warnings.append(message)

    blocks = split_blocks(tokenize(content), warnings)
    labels = [parse_label(block, index, on_unsupported) for index, block in enumerate(blocks, start=1)]
    return ParsedDocument(labels=labels, warnings=warnings)

"""
ABBYY source tree -> ALTO layout trees.

One output unit is built per source page (per-page mode) or one for the whole
document. Each unit owns a fresh UnitState: id counters, style registry and
confidence accumulator never leak from one unit into the next.
"""
import datetime as _dt
import logging
import re
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from lxml import etree

from . import altoout
from .abbyyio import SourceBlock, SourceDocument, SourceLine, SourcePage, load_abbyy
from .config import ConversionConfig
from .confidence import ConfidenceAccumulator, format_confidence
from .errors import ConversionError
from .geometry import NO_GEOMETRY, BoundingBox, aggregate
from .segmenter import STRING, Segment, segment
from .styles import StyleRegistry

logger = logging.getLogger(__name__)


class Stage(IntEnum):
    HEADER_EMITTED = 1
    LAYOUT_OPENED = 2
    PAGE_OPENED = 3
    PRINT_SPACE_COMPUTED = 4
    TEXT_BLOCKS_EMITTED = 5
    CONFIDENCE_FINALIZED = 6
    STYLES_ATTACHED = 7
    SERIALIZED = 8


# TEXT_BLOCKS_EMITTED -> PAGE_OPENED is the next page of a whole-document unit
_NEXT = {
    None: {Stage.HEADER_EMITTED},
    Stage.HEADER_EMITTED: {Stage.LAYOUT_OPENED},
    Stage.LAYOUT_OPENED: {Stage.PAGE_OPENED},
    Stage.PAGE_OPENED: {Stage.PRINT_SPACE_COMPUTED},
    Stage.PRINT_SPACE_COMPUTED: {Stage.TEXT_BLOCKS_EMITTED},
    Stage.TEXT_BLOCKS_EMITTED: {Stage.PAGE_OPENED, Stage.CONFIDENCE_FINALIZED},
    Stage.CONFIDENCE_FINALIZED: {Stage.STYLES_ATTACHED},
    Stage.STYLES_ATTACHED: {Stage.SERIALIZED},
    Stage.SERIALIZED: set(),
}


class UnitState:
    """Mutable state of one output unit."""

    def __init__(self, name: str, config: ConversionConfig):
        self.name = name
        self.registry = StyleRegistry(config.serif_families, config.legacy_font_size)
        self.confidence = ConfidenceAccumulator()
        self.pages = 0
        self.text_blocks = 0
        self.text_lines = 0
        self.strings = 0
        self.stage: Optional[Stage] = None

    def advance(self, stage: Stage) -> None:
        if stage not in _NEXT[self.stage]:
            prev = self.stage.name if self.stage is not None else "START"
            raise RuntimeError(f"unit {self.name}: illegal transition {prev} -> {stage.name}")
        self.stage = stage


@dataclass
class AltoUnit:
    name: str
    root: etree._Element
    xml: bytes
    page_indexes: List[int] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)


def xml_id(name: str) -> str:
    """Make a document name usable as an xs:ID prefix."""
    s = re.sub(r"[^A-Za-z0-9_.-]", "_", name)
    return s if re.match(r"[A-Za-z_]", s) else "_" + s


def content_boxes(block: SourceBlock) -> List[BoundingBox]:
    return [c.box for ln in block.lines for c in ln.characters if not c.is_boundary and c.box is not None]


def text_block_box(block: SourceBlock) -> Optional[BoundingBox]:
    """Block's own stored edges; its characters when the edges are missing or inverted.

    None for a block without words: it is emitted with the NO_GEOMETRY marker
    and does not count towards the PrintSpace.
    """
    boxes = content_boxes(block)
    if not boxes:
        return None
    if block.box is not None:
        if block.box.is_valid():
            return aggregate([block.box])
        logger.warning("block %d: inverted edges %s, using its characters", block.index, tuple(block.box))
    return aggregate(boxes)


# ---------- leaf emitters ----------
def line_segments(state: UnitState, line: SourceLine) -> List[tuple]:
    """[(style id, segments)] for every formatting run that yields words."""
    out = []
    for run in line.runs:
        segs = segment(run.characters, state.confidence.record)
        if segs:
            out.append((state.registry.intern(run), segs))
    return out


def emit_line(state: UnitState, block_el: etree._Element, block_id: str, line: SourceLine) -> Optional[etree._Element]:
    runs = line_segments(state, line)
    if not runs:
        return None

    state.text_lines += 1
    line_id = f"{block_id}_TL{state.text_lines}"
    line_el = altoout.sub(block_el, "TextLine", ID=line_id)
    boxes: List[BoundingBox] = []
    for style_id, segs in runs:
        for seg in segs:
            boxes.append(seg.box)
            emit_segment(state, line_el, line_id, style_id, seg)
    altoout.set_geometry(line_el, aggregate(boxes))
    return line_el


def emit_segment(state: UnitState, line_el: etree._Element, line_id: str, style_id: str, seg: Segment) -> etree._Element:
    if seg.kind == STRING:
        state.strings += 1
        el = altoout.sub(line_el, "String", ID=f"{line_id}_S{state.strings}")
        altoout.set_geometry(el, seg.box)
        el.set("CONTENT", seg.content)
        el.set("STYLEREFS", style_id)
        return el
    el = altoout.sub(line_el, "SP", ID=f"{line_id}_SP{state.strings}")
    return altoout.set_geometry(el, seg.box)


def emit_text_block(state: UnitState, ps_el: etree._Element, block: SourceBlock,
                    box: Optional[BoundingBox]) -> etree._Element:
    state.text_blocks += 1
    block_id = f"{state.name}_TB{state.text_blocks}"
    tb_el = altoout.sub(ps_el, "TextBlock", ID=block_id)
    altoout.set_geometry(tb_el, box if box is not None else NO_GEOMETRY)
    emitted = 0
    for n, line in enumerate(block.lines, start=1):
        try:
            if emit_line(state, tb_el, block_id, line) is not None:
                emitted += 1
        except ConversionError as e:
            raise e.add_context(line_index=n)
    if not emitted:
        logger.debug("%s: no text lines, marked empty", block_id)
    return tb_el


# ---------- page ----------
def emit_page(state: UnitState, layout_el: etree._Element, page: SourcePage, config: ConversionConfig) -> etree._Element:
    state.advance(Stage.PAGE_OPENED)
    state.pages += 1
    page_el = altoout.add_page(layout_el, f"Page_{page.index}", page.height, page.width, page.index)

    qualifying = [b for b in page.blocks if b.block_type == config.text_block_type]
    skipped = len(page.blocks) - len(qualifying)
    boxes: Dict[int, Optional[BoundingBox]] = {b.index: text_block_box(b) for b in qualifying}

    ps_el = altoout.sub(page_el, "PrintSpace", ID=f"PrintSpace_{page.index}")
    geo = [bx for bx in boxes.values() if bx is not None]
    altoout.set_geometry(ps_el, aggregate(geo) if geo else NO_GEOMETRY)
    state.advance(Stage.PRINT_SPACE_COMPUTED)

    for b in qualifying:
        try:
            emit_text_block(state, ps_el, b, boxes[b.index])
        except ConversionError as e:
            raise e.add_context(page_index=page.index, block_index=b.index)
    state.advance(Stage.TEXT_BLOCKS_EMITTED)

    logger.info("Page %d: %d text block(s), %d other block(s) skipped", page.index, len(qualifying), skipped)
    return page_el


# ---------- unit ----------
def build_unit(name: str, document: SourceDocument, pages: Sequence[SourcePage],
               config: ConversionConfig, processing_date: str) -> AltoUnit:
    state = UnitState(xml_id(name), config)

    root = altoout.new_alto_root()
    source_filename = document.path.name if document.path is not None else document.name
    altoout.add_alto_header(root, source_filename, processing_date)
    state.advance(Stage.HEADER_EMITTED)

    layout_el = altoout.add_layout(root)
    state.advance(Stage.LAYOUT_OPENED)

    for page in pages:
        emit_page(state, layout_el, page, config)

    confidence = state.confidence.finalize()
    altoout.add_processing_settings(root, format_confidence(confidence))
    state.advance(Stage.CONFIDENCE_FINALIZED)

    altoout.add_styles(root, state.registry.records())
    state.advance(Stage.STYLES_ATTACHED)

    xml = altoout.to_bytes(root, config.pretty_print)
    state.advance(Stage.SERIALIZED)

    return AltoUnit(
        name=state.name, root=root, xml=xml,
        page_indexes=[p.index for p in pages],
        summary={
            "unit": state.name,
            "pages": state.pages,
            "text_blocks": state.text_blocks,
            "text_lines": state.text_lines,
            "strings": state.strings,
            "characters": state.confidence.count,
            "styles": len(state.registry),
            "confidence": confidence,
        },
    )


def convert_document(document: SourceDocument, config: Optional[ConversionConfig] = None,
                     processing_date: Optional[str] = None) -> List[AltoUnit]:
    config = config or ConversionConfig()
    processing_date = processing_date or _dt.date.today().isoformat()
    base = Path(document.name).stem
    if not config.per_page:
        return [build_unit(base, document, document.pages, config, processing_date)]
    return [
        build_unit(f"{base}_{page.index:04d}", document, [page], config, processing_date)
        for page in document.pages
    ]


def unit_output_path(out_xml: Path, unit: AltoUnit, per_page: bool) -> Path:
    if not per_page:
        return out_xml
    return out_xml.with_name(f"{out_xml.stem}_{unit.page_indexes[0]:04d}{out_xml.suffix or '.xml'}")


def write_units(units: Sequence[AltoUnit], out_xml: Path, per_page: bool) -> List[Path]:
    """Stage every unit in a temp file next to its target; rename only once all are written."""
    staged = []
    try:
        for unit in units:
            path = unit_output_path(out_xml, unit, per_page)
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(path.name + ".tmp")
            staged.append((tmp, path))
            tmp.write_bytes(unit.xml)
    except OSError:
        for tmp, _ in staged:
            tmp.unlink(missing_ok=True)
        raise
    for tmp, path in staged:
        tmp.replace(path)
        logger.debug("wrote %s", path)
    return [path for _, path in staged]


def convert_file(input_path: Path, out_xml: Path, config: Optional[ConversionConfig] = None) -> Dict[str, Any]:
    """Convert one ABBYY file. Nothing is written unless every unit converts and stages."""
    config = config or ConversionConfig()
    input_path, out_xml = Path(input_path), Path(out_xml)
    document = load_abbyy(input_path)
    processing_date = _dt.date.fromtimestamp(input_path.stat().st_ctime).isoformat()
    logger.info("Converting %s (FineReader %d, %d page(s))", input_path.name, document.version, len(document.pages))

    units = convert_document(document, config, processing_date)

    written = [str(p) for p in write_units(units, out_xml, config.per_page)]

    return {
        "source": input_path.name,
        "abbyy_version": document.version,
        "written": written,
        "units": [u.summary for u in units],
    }

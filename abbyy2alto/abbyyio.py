import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from lxml import etree

from .errors import InputNotFound, MalformedSourceDocument, SchemaVariantUndetected
from .geometry import BoundingBox

logger = logging.getLogger(__name__)

ABBYY8_NS = "http://www.abbyy.com/FineReader_xml/FineReader8-schema-v2.xml"
ABBYY6_NS = "http://www.abbyy.com/FineReader_xml/FineReader6-schema-v1.xml"

# probe order matters: v8 first, v6 only when v8 has no pages
VARIANTS: Tuple[Tuple[int, str], ...] = ((8, ABBYY8_NS), (6, ABBYY6_NS))

BOUNDARY_TEXTS = ("", " ")


@dataclass
class SourceCharacter:
    box: Optional[BoundingBox]
    text: str
    confidence: float = 0.0

    @property
    def is_boundary(self) -> bool:
        return self.text in BOUNDARY_TEXTS


@dataclass
class FormattingRun:
    language: str = ""
    font_family: str = ""
    font_size_raw: str = ""
    bold: bool = False
    italic: bool = False
    small_caps: bool = False
    characters: List[SourceCharacter] = field(default_factory=list)


@dataclass
class SourceLine:
    box: Optional[BoundingBox]
    runs: List[FormattingRun] = field(default_factory=list)

    @property
    def characters(self) -> List[SourceCharacter]:
        return [c for r in self.runs for c in r.characters]


@dataclass
class SourceParagraph:
    lines: List[SourceLine] = field(default_factory=list)


@dataclass
class SourceBlock:
    index: int
    block_type: str
    box: Optional[BoundingBox]
    paragraphs: List[SourceParagraph] = field(default_factory=list)

    @property
    def lines(self) -> List[SourceLine]:
        return [ln for p in self.paragraphs for ln in p.lines]


@dataclass
class SourcePage:
    index: int
    width: int
    height: int
    resolution: int = 0
    blocks: List[SourceBlock] = field(default_factory=list)


@dataclass
class SourceDocument:
    name: str
    version: int
    namespace: str
    pages: List[SourcePage] = field(default_factory=list)
    path: Optional[Path] = None


# ---------- attribute helpers ----------
def _int_attr(el: etree._Element, name: str, default: Optional[int] = None) -> Optional[int]:
    raw = el.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return int(float(raw))
    except (ValueError, OverflowError) as e:
        raise MalformedSourceDocument(f"{el.tag.split('}')[-1]}/@{name} is not a number",
                                      attribute=name, value=raw, line=el.sourceline) from e


def _float_attr(el: etree._Element, name: str, default: float = 0.0) -> float:
    raw = el.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise MalformedSourceDocument(f"{el.tag.split('}')[-1]}/@{name} is not a number",
                                      attribute=name, value=raw, line=el.sourceline) from e


def _bool_attr(el: etree._Element, name: str) -> bool:
    return (el.get(name) or "").strip().lower() in ("true", "1")


def read_box(el: etree._Element) -> Optional[BoundingBox]:
    edges = [_int_attr(el, k) for k in ("l", "t", "r", "b")]
    if any(e is None for e in edges):
        return None
    return BoundingBox(*edges)


# ---------- variant detection ----------
def detect_variant(root: etree._Element) -> Tuple[int, str, List[etree._Element]]:
    """Return (version, namespace, page elements) for the first namespace that has pages."""
    for version, ns in VARIANTS:
        pages = list(root.iter(f"{{{ns}}}page"))
        if pages:
            return version, ns, pages
        logger.debug("no FineReader %d pages found, trying next variant", version)
    raise SchemaVariantUndetected(
        "no page elements under a known FineReader namespace",
        namespaces=", ".join(ns for _, ns in VARIANTS),
    )


# ---------- tree readers ----------
def read_character(el: etree._Element) -> SourceCharacter:
    return SourceCharacter(
        box=read_box(el),
        text=el.text or "",
        confidence=_float_attr(el, "charConfidence"),
    )


def read_run(el: etree._Element, ns: str) -> FormattingRun:
    return FormattingRun(
        language=el.get("lang", ""),
        font_family=el.get("ff", ""),
        font_size_raw=el.get("fs", ""),
        bold=_bool_attr(el, "bold"),
        italic=_bool_attr(el, "italic"),
        small_caps=_bool_attr(el, "smallcaps"),
        characters=[read_character(c) for c in el.iter(f"{{{ns}}}charParams")],
    )


def read_line(el: etree._Element, ns: str) -> SourceLine:
    fmts = el.findall(f"{{{ns}}}formatting")
    if fmts:
        runs = [read_run(f, ns) for f in fmts]
    else:
        # no formatting wrapper: one unformatted run over the line's characters
        runs = [FormattingRun(characters=[read_character(c) for c in el.iter(f"{{{ns}}}charParams")])]
    return SourceLine(box=read_box(el), runs=runs)


def read_block(el: etree._Element, ns: str, index: int) -> SourceBlock:
    paragraphs = []
    for par in el.iter(f"{{{ns}}}par"):
        paragraphs.append(SourceParagraph(lines=[read_line(ln, ns) for ln in par.iter(f"{{{ns}}}line")]))
    return SourceBlock(index=index, block_type=el.get("blockType", ""), box=read_box(el), paragraphs=paragraphs)


def read_page(el: etree._Element, ns: str, index: int) -> SourcePage:
    blocks = [read_block(b, ns, i) for i, b in enumerate(el.iter(f"{{{ns}}}block"), start=1)]
    return SourcePage(
        index=index,
        width=_int_attr(el, "width", 0),
        height=_int_attr(el, "height", 0),
        resolution=_int_attr(el, "resolution", 0),
        blocks=blocks,
    )


def parse_abbyy(source: Union[bytes, etree._Element, etree._ElementTree], name: str = "document",
                path: Optional[Path] = None) -> SourceDocument:
    if isinstance(source, bytes):
        try:
            root = etree.fromstring(source)
        except etree.XMLSyntaxError as e:
            raise MalformedSourceDocument(f"cannot parse ABBYY XML: {e}", source=name) from e
    elif isinstance(source, etree._ElementTree):
        root = source.getroot()
    else:
        root = source

    try:
        version, ns, page_els = detect_variant(root)
    except SchemaVariantUndetected as e:
        raise e.add_context(source=name)

    pages = []
    for i, p in enumerate(page_els, start=1):
        try:
            pages.append(read_page(p, ns, i))
        except MalformedSourceDocument as e:
            raise e.add_context(source=name, page_index=i)
    logger.debug("read %s: FineReader %d, %d page(s)", name, version, len(pages))
    return SourceDocument(name=name, version=version, namespace=ns, pages=pages, path=path)


def load_abbyy(path: Path) -> SourceDocument:
    path = Path(path)
    if not path.exists():
        raise InputNotFound(f"ABBYY XML not found: {path}", path=str(path))
    try:
        tree = etree.parse(str(path))
    except etree.XMLSyntaxError as e:
        raise MalformedSourceDocument(f"cannot parse ABBYY XML: {e}", path=str(path)) from e
    return parse_abbyy(tree, name=path.name, path=path)

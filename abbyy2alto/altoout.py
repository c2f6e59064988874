from typing import Iterable, Optional

from lxml import etree

from .geometry import BoundingBox
from .styles import StyleRecord

ALTO_NS = "http://www.loc.gov/standards/alto/ns-v2#"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
ALTO_SCHEMA_LOCATION = "http://www.loc.gov/standards/alto/ns-v2# http://www.loc.gov/standards/alto/alto-v2.0.xsd"
NSMAP = {None: ALTO_NS, "xsi": XSI_NS}


def q(tag: str) -> str:
    return f"{{{ALTO_NS}}}{tag}"


def sub(parent: etree._Element, tag: str, text: Optional[str] = None, **attrs) -> etree._Element:
    el = etree.SubElement(parent, q(tag), {k: str(v) for k, v in attrs.items()})
    if text is not None:
        el.text = text
    return el


def set_geometry(el: etree._Element, box: BoundingBox) -> etree._Element:
    el.set("HPOS", str(box.left)); el.set("VPOS", str(box.top))
    el.set("HEIGHT", str(box.height)); el.set("WIDTH", str(box.width))
    return el


def box_of(el: etree._Element) -> BoundingBox:
    """Read an emitted element's box back from its HPOS/VPOS/WIDTH/HEIGHT."""
    x = int(el.get("HPOS", "0")); y = int(el.get("VPOS", "0"))
    return BoundingBox(x, y, x + int(el.get("WIDTH", "0")), y + int(el.get("HEIGHT", "0")))


# ---------- document skeleton ----------
def new_alto_root() -> etree._Element:
    root = etree.Element(q("alto"), nsmap=NSMAP)
    root.set(f"{{{XSI_NS}}}schemaLocation", ALTO_SCHEMA_LOCATION)
    return root


def add_alto_header(root: etree._Element, source_filename: str, processing_date: str) -> etree._Element:
    """Description block: unit, source file, processing step (settings come later)."""
    desc = sub(root, "Description")
    sub(desc, "MeasurementUnit", "pixel")
    sii = sub(desc, "sourceImageInformation")
    sub(sii, "fileName", source_filename)
    ocr = sub(desc, "OCRProcessing", ID="OCR_1")
    step = sub(ocr, "ocrProcessingStep")
    sub(step, "processingDateTime", processing_date)
    return desc


def add_processing_settings(root: etree._Element, settings: str) -> etree._Element:
    step = root.find(f"./{q('Description')}/{q('OCRProcessing')}/{q('ocrProcessingStep')}")
    if step is None:
        raise ValueError("ALTO header not emitted yet")
    return sub(step, "processingStepSettings", settings)


def add_layout(root: etree._Element) -> etree._Element:
    return sub(root, "Layout")


def add_page(layout: etree._Element, page_id: str, height: int, width: int, physical_nr: int) -> etree._Element:
    return sub(layout, "Page", ID=page_id, PHYSICAL_IMAGE_NR=physical_nr, HEIGHT=height, WIDTH=width)


def add_styles(root: etree._Element, records: Iterable[StyleRecord]) -> etree._Element:
    """Styles go before Layout in ALTO document order."""
    styles = etree.Element(q("Styles"))
    for rec in records:
        ts = sub(styles, "TextStyle", ID=rec.id, FONTSIZE=rec.font_size,
                 FONTTYPE=rec.font_type, FONTWIDTH=rec.font_width)
        if rec.font_style:
            ts.set("FONTSTYLE", rec.font_style)
    layout = root.find(q("Layout"))
    if layout is not None:
        layout.addprevious(styles)
    else:
        root.append(styles)
    return styles


# ---------- serialization ----------
def to_bytes(root: etree._Element, pretty_print: bool = True) -> bytes:
    return etree.tostring(root, encoding="utf-8", xml_declaration=True, pretty_print=pretty_print)


def to_string(root: etree._Element, pretty_print: bool = True) -> str:
    return to_bytes(root, pretty_print).decode("utf-8")

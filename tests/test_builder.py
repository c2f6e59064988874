import pytest
from lxml import etree

from abbyy2alto.abbyyio import SourceCharacter, parse_abbyy
from abbyy2alto.altoout import ALTO_NS, box_of, q
from abbyy2alto.builder import Stage, UnitState, convert_document, xml_id
from abbyy2alto.config import ConversionConfig
from abbyy2alto.errors import MalformedCharacterStream, MalformedSourceDocument
from abbyy2alto.geometry import BoundingBox, aggregate

from conftest import block_xml, document_xml, line_xml, page_xml

NS = {"a": ALTO_NS}


def convert(raw: bytes, **config):
    doc = parse_abbyy(raw, name="book_001.xml")
    return convert_document(doc, ConversionConfig(**config), processing_date="2010-05-04")


def test_one_unit_per_page(two_page_doc):
    units = convert(two_page_doc)
    assert [u.name for u in units] == ["book_001_0001", "book_001_0002"]
    assert [u.page_indexes for u in units] == [[1], [2]]
    for u in units:
        assert len(u.root.findall(".//a:Page", NS)) == 1
        assert u.xml.startswith(b"<?xml")


def test_page_tree_and_geometry(two_page_doc):
    root = convert(two_page_doc)[0].root
    page = root.find(".//a:Page", NS)
    assert (page.get("ID"), page.get("WIDTH"), page.get("HEIGHT"), page.get("PHYSICAL_IMAGE_NR")) == \
        ("Page_1", "2480", "3508", "1")

    ps = page.find("a:PrintSpace", NS)
    assert box_of(ps) == BoundingBox(90, 95, 400, 160)

    blocks = ps.findall("a:TextBlock", NS)
    assert [b.get("ID") for b in blocks] == ["book_001_0001_TB1"]
    lines = blocks[0].findall("a:TextLine", NS)
    assert [ln.get("ID") for ln in lines] == ["book_001_0001_TB1_TL1", "book_001_0001_TB1_TL2"]

    first = lines[0]
    assert [(el.tag.split("}")[1], el.get("CONTENT")) for el in first] == \
        [("String", "Hi"), ("SP", None), ("String", "The"), ("SP", None)]
    hi = first.find("a:String", NS)
    assert (hi.get("HPOS"), hi.get("VPOS"), hi.get("WIDTH"), hi.get("HEIGHT")) == ("100", "100", "20", "20")
    assert hi.get("ID") == "book_001_0001_TB1_TL1_S1"
    assert box_of(first) == BoundingBox(100, 100, 160, 120)


def test_every_line_box_aggregates_its_children(two_page_doc):
    for unit in convert(two_page_doc, per_page=False):
        for line in unit.root.iter(q("TextLine")):
            assert box_of(line) == aggregate(box_of(ch) for ch in line)
        for ps in unit.root.iter(q("PrintSpace")):
            assert box_of(ps) == aggregate(box_of(tb) for tb in ps)


def test_non_text_blocks_are_skipped():
    raw = document_xml([page_xml([
        block_xml([line_xml("word", 500, 500)], block_type="Table", box=(0, 0, 3000, 3000)),
        block_xml([line_xml("kept", 100, 100)], box=(100, 100, 140, 120)),
        block_xml([], block_type="Picture", box=(10, 10, 20, 20)),
    ])])
    root = convert(raw)[0].root
    blocks = root.findall(".//a:TextBlock", NS)
    assert len(blocks) == 1
    assert [s.get("CONTENT") for s in root.iter(q("String"))] == ["kept"]
    assert box_of(root.find(".//a:PrintSpace", NS)) == BoundingBox(100, 100, 140, 120)


def test_empty_print_space_is_marked():
    raw = document_xml([page_xml([block_xml([], block_type="Picture", box=(10, 10, 20, 20))])])
    unit = convert(raw)[0]
    spaces = unit.root.findall(".//a:PrintSpace", NS)
    assert len(spaces) == 1
    ps = spaces[0]
    assert len(ps) == 0
    assert [ps.get(k) for k in ("HPOS", "VPOS", "HEIGHT", "WIDTH")] == ["0", "0", "0", "0"]
    assert unit.summary["text_blocks"] == 0


def test_text_block_without_words_is_marked_empty():
    raw = document_xml([page_xml([block_xml([line_xml("   ", 100, 100)], box=(90, 90, 200, 130))])])
    unit = convert(raw)[0]
    tb = unit.root.find(".//a:TextBlock", NS)
    assert tb is not None
    assert len(tb) == 0
    assert box_of(tb) == BoundingBox(0, 0, 0, 0)
    assert box_of(unit.root.find(".//a:PrintSpace", NS)) == BoundingBox(0, 0, 0, 0)
    assert unit.summary["characters"] == 0


def test_empty_text_block_does_not_widen_print_space():
    raw = document_xml([page_xml([
        block_xml([], box=(10, 10, 2000, 3000)),
        block_xml([line_xml("ab", 100, 100)], box=(90, 95, 130, 125)),
    ])])
    root = convert(raw)[0].root
    assert box_of(root.find(".//a:PrintSpace", NS)) == BoundingBox(90, 95, 130, 125)
    assert [box_of(tb) for tb in root.iter(q("TextBlock"))] == \
        [BoundingBox(0, 0, 0, 0), BoundingBox(90, 95, 130, 125)]


def test_inverted_block_edges_use_its_characters():
    raw = document_xml([page_xml([block_xml([line_xml("ab", 100, 100)], box=(300, 95, 90, 160))])])
    root = convert(raw)[0].root
    tb = root.find(".//a:TextBlock", NS)
    assert box_of(tb) == BoundingBox(100, 100, 120, 120)
    assert box_of(root.find(".//a:PrintSpace", NS)) == BoundingBox(100, 100, 120, 120)
    assert all(int(el.get("WIDTH")) >= 0 for el in root.iter(q("PrintSpace"), q("TextBlock")))


def test_non_numeric_font_size_carries_location():
    raw = document_xml([page_xml([block_xml([line_xml("ab", 100, 100, fs="big")], box=(90, 95, 130, 125))])])
    with pytest.raises(MalformedSourceDocument) as ei:
        convert(raw, legacy_font_size=False)
    assert ei.value.context["attribute"] == "fs"
    assert ei.value.context["value"] == "big"
    assert (ei.value.context["page_index"], ei.value.context["block_index"], ei.value.context["line_index"]) == (1, 1, 1)


def test_block_without_edges_uses_its_characters():
    raw = document_xml([page_xml([block_xml([line_xml("ab", 100, 100), line_xml("c", 50, 140)])])])
    tb = convert(raw)[0].root.find(".//a:TextBlock", NS)
    assert box_of(tb) == BoundingBox(50, 100, 120, 160)


def test_styles_are_shared_and_referenced(two_page_doc):
    unit = convert(two_page_doc)[0]
    root = unit.root
    assert [el.tag for el in root] == [q("Description"), q("Styles"), q("Layout")]
    styles = root.findall("a:Styles/a:TextStyle", NS)
    assert [(s.get("ID"), s.get("FONTSIZE"), s.get("FONTTYPE"), s.get("FONTSTYLE")) for s in styles] == [
        ("TS_10.0", "10.0", "serif", None),
        ("TS_12.0_b", "12.0", "serif", "bold"),
    ]
    assert {s.get("FONTWIDTH") for s in styles} == {"proportional"}
    refs = {s.get("STYLEREFS") for s in root.iter(q("String"))}
    assert refs == {"TS_10.0", "TS_12.0_b"}


def test_header_and_confidence(two_page_doc):
    root = convert(two_page_doc)[0].root
    desc = root.find("a:Description", NS)
    assert desc.findtext("a:MeasurementUnit", namespaces=NS) == "pixel"
    assert desc.findtext("a:sourceImageInformation/a:fileName", namespaces=NS) == "book_001.xml"
    step = desc.find("a:OCRProcessing/a:ocrProcessingStep", NS)
    assert step.findtext("a:processingDateTime", namespaces=NS) == "2010-05-04"
    assert step.findtext("a:processingStepSettings", namespaces=NS) == "OCR Average Character Confidence 90%"


def test_state_resets_between_pages(two_page_doc):
    first, second = convert(two_page_doc)
    assert first.summary["confidence"] == 90.0
    assert second.summary["confidence"] == 80.0
    assert second.summary["characters"] == 9
    assert [tb.get("ID") for tb in second.root.iter(q("TextBlock"))] == ["book_001_0002_TB1"]
    assert [s.get("ID") for s in second.root.find(".//a:Styles", NS)] == ["TS_10.0_a"]
    assert next(second.root.iter(q("String"))).get("ID").endswith("_S1")


def test_whole_document_mode(two_page_doc):
    units = convert(two_page_doc, per_page=False)
    assert len(units) == 1
    root = units[0].root
    assert [p.get("ID") for p in root.iter(q("Page"))] == ["Page_1", "Page_2"]
    assert [tb.get("ID") for tb in root.iter(q("TextBlock"))] == ["book_001_TB1", "book_001_TB2"]
    assert units[0].summary["confidence"] == 84.71
    assert units[0].summary["styles"] == 3
    assert units[0].summary["strings"] == 5


def test_segmentation_errors_carry_location(two_page_doc):
    doc = parse_abbyy(two_page_doc, name="book_001.xml")
    doc.pages[1].blocks[0].lines[0].runs[0].characters[2] = SourceCharacter(None, "i", 50)
    with pytest.raises(MalformedCharacterStream) as ei:
        convert_document(doc, ConversionConfig())
    assert ei.value.context["page_index"] == 2
    assert ei.value.context["block_index"] == 1
    assert ei.value.context["line_index"] == 1
    assert "page_index=2" in str(ei.value)


def test_custom_text_block_type():
    raw = document_xml([page_xml([block_xml([line_xml("x", 0, 0)], block_type="Body", box=(0, 0, 10, 20))])])
    assert convert(raw)[0].summary["text_blocks"] == 0
    assert convert(raw, text_block_type="Body")[0].summary["text_blocks"] == 1


def test_stage_order_is_enforced():
    state = UnitState("u", ConversionConfig())
    state.advance(Stage.HEADER_EMITTED)
    state.advance(Stage.LAYOUT_OPENED)
    with pytest.raises(RuntimeError):
        state.advance(Stage.STYLES_ATTACHED)
    with pytest.raises(RuntimeError):
        state.advance(Stage.HEADER_EMITTED)


def test_xml_ids_are_safe():
    assert xml_id("book 001") == "book_001"
    assert xml_id("0042") == "_0042"


def test_compact_output(two_page_doc):
    unit = convert(two_page_doc, pretty_print=False)[0]
    assert b"\n  <" not in unit.xml
    assert etree.fromstring(unit.xml).tag == q("alto")

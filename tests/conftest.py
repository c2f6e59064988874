from typing import List, Optional, Sequence, Tuple

import pytest

from abbyy2alto.abbyyio import ABBYY8_NS, SourceCharacter
from abbyy2alto.geometry import BoundingBox

# (text, confidence) laid out left to right, 10px per character
Chars = Sequence[Tuple[str, float]]


def make_chars(items: Chars, left: int = 100, top: int = 50, width: int = 10, height: int = 20) -> List[SourceCharacter]:
    out = []
    x = left
    for text, conf in items:
        out.append(SourceCharacter(box=BoundingBox(x, top, x + width, top + height), text=text, confidence=conf))
        x += width
    return out


def char_xml(text: str, conf: float, l: int, t: int, r: int, b: int) -> str:
    return f'<charParams l="{l}" t="{t}" r="{r}" b="{b}" charConfidence="{conf:g}">{text}</charParams>'


def line_xml(words: str, left: int, top: int, conf: float = 90, ff: str = "Times New Roman",
             fs: str = "10.", bold: bool = False, italic: bool = False) -> str:
    chars = "".join(
        char_xml(ch, conf if ch != " " else 0, left + i * 10, top, left + i * 10 + 10, top + 20)
        for i, ch in enumerate(words)
    )
    attrs = f'lang="EnglishUnitedStates" ff="{ff}" fs="{fs}"'
    if bold:
        attrs += ' bold="true"'
    if italic:
        attrs += ' italic="true"'
    right = left + len(words) * 10
    return (f'<line baseline="{top + 18}" l="{left}" t="{top}" r="{right}" b="{top + 20}">'
            f'<formatting {attrs}>{chars}</formatting></line>')


def block_xml(lines: List[str], block_type: str = "Text", box: Optional[Tuple[int, int, int, int]] = None) -> str:
    edges = ""
    if box is not None:
        edges = ' l="{}" t="{}" r="{}" b="{}"'.format(*box)
    return (f'<block blockType="{block_type}"{edges}><text><par>'
            + "".join(lines) + "</par></text></block>")


def page_xml(blocks: List[str], width: int = 2480, height: int = 3508) -> str:
    return f'<page width="{width}" height="{height}" resolution="300">' + "".join(blocks) + "</page>"


def document_xml(pages: List[str], ns: str = ABBYY8_NS) -> bytes:
    return (f'<?xml version="1.0" encoding="UTF-8"?>\n<document xmlns="{ns}" version="1.0">'
            + "".join(pages) + "</document>").encode("utf-8")


@pytest.fixture
def two_page_doc() -> bytes:
    p1 = page_xml([
        block_xml([line_xml("Hi The", 100, 100), line_xml("end", 100, 130, fs="12", bold=True)],
                  box=(90, 95, 400, 160)),
        block_xml([], block_type="Picture", box=(0, 0, 2000, 3000)),
    ])
    p2 = page_xml([
        block_xml([line_xml("Arial text", 200, 300, ff="Arial", conf=80)], box=(190, 290, 400, 330)),
    ])
    return document_xml([p1, p2])


@pytest.fixture
def sample_file(tmp_path, two_page_doc):
    path = tmp_path / "book_001.xml"
    path.write_bytes(two_page_doc)
    return path

from typing import Dict, Iterable, List, NamedTuple

from .abbyyio import FormattingRun
from .errors import MalformedSourceDocument

SERIF = "serif"
SANS_SERIF = "sans-serif"
PROPORTIONAL = "proportional"


class StyleSignature(NamedTuple):
    font_size: str
    bold: bool
    italic: bool
    small_caps: bool
    serif: bool


class StyleRecord(NamedTuple):
    id: str
    font_size: str
    font_style: str
    font_type: str
    font_width: str = PROPORTIONAL


def normalize_font_size(raw: str, legacy: bool = True) -> str:
    """FineReader writes sizes like '10.' or '9.5'.

    Legacy rule: a value containing a point gets '0' appended, anything else
    gets '.0'. So '9.5' becomes '9.50'; this is what existing ALTO output
    carries, switch it off with legacy=False.
    """
    raw = (raw or "").strip() or "0"
    if not legacy:
        try:
            return f"{float(raw):.1f}"
        except ValueError as e:
            raise MalformedSourceDocument("formatting/@fs is not a number", attribute="fs", value=raw) from e
    return raw + "0" if "." in raw else raw + ".0"


def style_id(sig: StyleSignature) -> str:
    flags = "".join(letter for letter, on in (
        ("b", sig.bold), ("i", sig.italic), ("s", sig.small_caps), ("a", not sig.serif),
    ) if on)
    return f"TS_{sig.font_size}_{flags}" if flags else f"TS_{sig.font_size}"


def font_style_text(sig: StyleSignature) -> str:
    tokens = ["bold" if sig.bold else "", "italics" if sig.italic else "", "smallcaps" if sig.small_caps else ""]
    return " ".join(t for t in tokens if t)


class StyleRegistry:
    """Deduplicated text styles of one output unit, in first-seen order."""

    def __init__(self, serif_families: Iterable[str] = ("Times New Roman",), legacy_font_size: bool = True):
        self.serif_families = frozenset(serif_families)
        self.legacy_font_size = legacy_font_size
        self._records: Dict[StyleSignature, StyleRecord] = {}

    def signature(self, run: FormattingRun) -> StyleSignature:
        return StyleSignature(
            font_size=normalize_font_size(run.font_size_raw, self.legacy_font_size),
            bold=run.bold,
            italic=run.italic,
            small_caps=run.small_caps,
            serif=run.font_family in self.serif_families,
        )

    def intern(self, run: FormattingRun) -> str:
        sig = self.signature(run)
        rec = self._records.get(sig)
        if rec is None:
            rec = StyleRecord(
                id=style_id(sig),
                font_size=sig.font_size,
                font_style=font_style_text(sig),
                font_type=SERIF if sig.serif else SANS_SERIF,
            )
            self._records[sig] = rec
        return rec.id

    def records(self) -> List[StyleRecord]:
        return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

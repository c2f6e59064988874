"""
Character stream -> word strings.

The walk is index based with one character of lookahead: a word closes when
the next character is missing or is a boundary (empty text or a single
space), and the boundary itself is consumed together with the close. Each
closed word yields a String segment followed by a synthesized SP segment;
source space geometry is never used.
"""
from typing import Callable, List, NamedTuple, Optional, Sequence

from .abbyyio import SourceCharacter
from .errors import MalformedCharacterStream
from .geometry import BoundingBox

STRING = "String"
SP = "SP"


class Segment(NamedTuple):
    kind: str
    box: BoundingBox
    content: str = ""


def _is_boundary(chars: Sequence[SourceCharacter], i: int) -> bool:
    # past the end counts as a boundary; never index beyond the stream
    return i >= len(chars) or chars[i].is_boundary


def _close_word(first: SourceCharacter, last: SourceCharacter, text: str, index: int) -> BoundingBox:
    box = BoundingBox(first.box.left, first.box.top, last.box.right, last.box.bottom)
    if not box.is_valid():
        raise MalformedCharacterStream(
            f"word {text!r} closes with negative extent {tuple(box)}", char_index=index)
    return box


def split_words(chars: Sequence[SourceCharacter],
                on_character: Optional[Callable[[float], None]] = None) -> List[Segment]:
    """Return the String segments of one character stream, in order."""
    words: List[Segment] = []
    first: Optional[SourceCharacter] = None
    text = ""
    i = 0
    while i < len(chars):
        ch = chars[i]
        if ch.is_boundary:
            # only reached when no word is open
            i += 1
            continue
        if ch.box is None:
            raise MalformedCharacterStream(f"character {ch.text!r} has no coordinates", char_index=i)
        if first is None:
            first = ch
        text += ch.text
        if on_character is not None:
            on_character(ch.confidence)
        if _is_boundary(chars, i + 1):
            words.append(Segment(STRING, _close_word(first, ch, text, i), text))
            first, text = None, ""
            i += 2  # consume the boundary
        else:
            i += 1
    return words


def segment(chars: Sequence[SourceCharacter],
            on_character: Optional[Callable[[float], None]] = None) -> List[Segment]:
    """Words of a stream, each followed by one SP reaching to the next word."""
    words = split_words(chars, on_character)
    out: List[Segment] = []
    for n, w in enumerate(words):
        nxt = words[n + 1] if n + 1 < len(words) else None
        gap = max(0, nxt.box.left - w.box.right) if nxt is not None else 0
        out.append(w)
        out.append(Segment(SP, BoundingBox(w.box.right, w.box.top, w.box.right + gap, w.box.bottom)))
    return out

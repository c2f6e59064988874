from typing import Iterable, NamedTuple

from .errors import EmptyGeometryError


class BoundingBox(NamedTuple):
    """Axis-aligned box given by two opposite corners, in source pixels."""
    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    def is_valid(self) -> bool:
        return self.right >= self.left and self.bottom >= self.top


NO_GEOMETRY = BoundingBox(0, 0, 0, 0)


def aggregate(boxes: Iterable[BoundingBox]) -> BoundingBox:
    """Smallest box enclosing every input box. Empty input is an error."""
    xs = list(boxes)
    if not xs:
        raise EmptyGeometryError("cannot aggregate an empty set of boxes")
    return BoundingBox(
        min(b.left for b in xs), min(b.top for b in xs),
        max(b.right for b in xs), max(b.bottom for b in xs),
    )

class ConfidenceAccumulator:
    """Running character confidence for one output unit."""

    def __init__(self):
        self.total = 0.0
        self.count = 0
        self._finalized = False

    def record(self, confidence: float) -> None:
        self.total += confidence
        self.count += 1

    def finalize(self) -> float:
        if self._finalized:
            raise RuntimeError("confidence already finalized for this unit; call reset() first")
        self._finalized = True
        if self.count == 0:
            return 0
        return round(self.total / self.count, 2)

    def reset(self) -> None:
        self.total = 0.0
        self.count = 0
        self._finalized = False


def format_confidence(value: float) -> str:
    return f"OCR Average Character Confidence {value:g}%"

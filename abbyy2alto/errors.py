from typing import Any, Dict


class ConversionError(Exception):
    """Base error for a conversion run; carries where in the source it happened."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context)

    def add_context(self, **context: Any) -> "ConversionError":
        # inner frames win: keep what was set closer to the fault
        for k, v in context.items():
            self.context.setdefault(k, v)
        return self

    def __str__(self) -> str:
        if not self.context:
            return self.message
        where = ", ".join(f"{k}={v}" for k, v in sorted(self.context.items()))
        return f"{self.message} ({where})"


class InputNotFound(ConversionError):
    pass


class MalformedSourceDocument(ConversionError):
    pass


class SchemaVariantUndetected(ConversionError):
    pass


class EmptyGeometryError(ConversionError):
    pass


class MalformedCharacterStream(ConversionError):
    pass

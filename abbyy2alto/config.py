import os
from typing import Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ENV_PREFIX = "ABBYY2ALTO_"


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class ConversionConfig(BaseModel):
    """Settings for one conversion run."""
    per_page: bool = Field(True, description="Emit one ALTO document per source page.")
    text_block_type: str = Field("Text", description="Source blockType that qualifies as a text block.")
    serif_families: Tuple[str, ...] = Field(("Times New Roman",), description="Font families classified as serif.")
    legacy_font_size: bool = Field(
        True, description="Keep the historical FONTSIZE suffix rule ('10.' -> '10.0', '9.5' -> '9.50')."
    )
    pretty_print: bool = Field(True, description="Indent the serialized ALTO XML.")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides) -> "ConversionConfig":
        load_dotenv(env_file)
        values = {
            "per_page": _env_flag("PER_PAGE", True),
            "legacy_font_size": _env_flag("LEGACY_FONT_SIZE", True),
            "pretty_print": _env_flag("PRETTY_PRINT", True),
        }
        block_type = os.getenv(ENV_PREFIX + "TEXT_BLOCK_TYPE")
        if block_type:
            values["text_block_type"] = block_type
        families = os.getenv(ENV_PREFIX + "SERIF_FAMILIES")
        if families:
            values["serif_families"] = tuple(f.strip() for f in families.split(",") if f.strip())
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

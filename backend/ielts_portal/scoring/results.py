from __future__ import annotations
from typing import Iterable, Optional, Tuple

from pydantic import BaseModel

from .bands import calculate_overall_band, get_band_description


class ModuleBands(BaseModel):
    listening: Optional[float] = None
    reading: Optional[float] = None
    writing: Optional[float] = None
    speaking: Optional[float] = None

    @property
    def overall(self) -> float:
        return calculate_overall_band(self.listening, self.reading, self.writing, self.speaking)

    def describe(self) -> dict:
        out = {}
        for name in ("listening", "reading", "writing", "speaking"):
            band = getattr(self, name)
            out[name] = None if band is None else {"band": band, "description": get_band_description(band)}
        overall = self.overall
        out["overall"] = {"band": overall, "description": get_band_description(overall)}
        return out


def aggregate_module_bands(submitted: Iterable[Tuple[str, Optional[float]]]) -> ModuleBands:
    """Collect one band per module type from ``(module_type, band)`` pairs.

    A ``None`` band (e.g. writing awaiting evaluation) leaves the module out.
    """
    bands = ModuleBands()
    for module_type, band in submitted:
        field = (module_type or "").lower()
        if field in ModuleBands.model_fields and band is not None:
            setattr(bands, field, float(band))
    return bands

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from ..errors import InvalidBitDepth


class BitDepth(str, Enum):
    PCM16 = "16"
    PCM24 = "24"
    FLOAT32 = "32f"

    @classmethod
    def parse(cls, value) -> "BitDepth":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        try:
            return cls(key)
        except ValueError:
            raise InvalidBitDepth(value) from None


class Container(str, Enum):
    WAV = "wav"
    MP3 = "mp3"
    AAC = "aac"


@dataclass(frozen=True)
class LoudnessMetrics:
    integrated_lufs: float
    lra_lu: float
    true_peak_dbfs: float
    short_term_max_lufs: float
    momentary_max_lufs: float

    def __post_init__(self):
        # finer-grained readings are best-effort context
        if not math.isfinite(self.short_term_max_lufs):
            object.__setattr__(self, "short_term_max_lufs", self.integrated_lufs)
        if not math.isfinite(self.momentary_max_lufs):
            object.__setattr__(self, "momentary_max_lufs", self.integrated_lufs)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class RenderSpec:
    input_path: Path
    output_path: Path
    bit_depth: BitDepth
    sample_rate: int
    filter_graph: Optional[str] = None


@dataclass(frozen=True)
class Attempt:
    attempt_number: int
    gain_db: float
    metrics: LoudnessMetrics
    passed_ceiling: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "gain_db": self.gain_db,
            "metrics": self.metrics.to_dict(),
            "passed_ceiling": self.passed_ceiling,
        }


@dataclass(frozen=True)
class GateResult:
    final_gain_db: float
    final_metrics: LoudnessMetrics
    attempts: Tuple[Attempt, ...]
    passes: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "final_gain_db": self.final_gain_db,
            "final_metrics": self.final_metrics.to_dict(),
            "attempts": [a.to_dict() for a in self.attempts],
            "passes": self.passes,
        }


@dataclass(frozen=True)
class ReleaseCheck:
    passes: bool
    metrics: LoudnessMetrics
    headroom_db: float

    def to_dict(self) -> Dict[str, Any]:
        return {"passes": self.passes, "metrics": self.metrics.to_dict(), "headroom_db": self.headroom_db}


@dataclass
class ReleaseReadyParams:
    input_path: Path
    output_path: Path
    bit_depth: BitDepth
    sample_rate: int
    true_peak_ceiling_db: float = -2.0
    max_attempts: int = 8
    # applied once after a float candidate passes but the quantized file does not
    requantize_reduction_db: float = 0.3

    def __post_init__(self):
        self.input_path = Path(self.input_path)
        self.output_path = Path(self.output_path)
        self.bit_depth = BitDepth.parse(self.bit_depth)
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not math.isfinite(self.true_peak_ceiling_db):
            raise ValueError(f"true_peak_ceiling_db must be finite, got {self.true_peak_ceiling_db}")
        if not math.isfinite(self.requantize_reduction_db):
            raise ValueError(f"requantize_reduction_db must be finite, got {self.requantize_reduction_db}")
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")


EXPORT_SAMPLE_RATES = (44100, 48000)
MP3_BITRATE_KBPS = 320
AAC_BITRATE_KBPS = 256


@dataclass
class ExportRequest:
    """Options of a release-ready export job."""

    bit_depth: BitDepth = BitDepth.PCM24
    sample_rate: int = 44100
    true_peak_ceiling_db: float = -2.0
    include_mp3: bool = True
    include_aac: bool = True

    def __post_init__(self):
        self.bit_depth = BitDepth.parse(self.bit_depth)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportRequest":
        data = dict(data or {})
        bit_depth = BitDepth.parse(data.pop("bit_depth", "24"))
        try:
            sample_rate = int(data.pop("sample_rate", 44100))
            ceiling = float(data.pop("true_peak_ceiling_db", data.pop("ceiling_db", -2.0)))
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid export option: {e}") from e
        if not math.isfinite(ceiling):
            raise ValueError(f"true_peak_ceiling_db must be finite, got {ceiling}")
        if sample_rate not in EXPORT_SAMPLE_RATES:
            raise ValueError(f"sample_rate must be one of {EXPORT_SAMPLE_RATES}, got {sample_rate}")
        if not -20.0 <= ceiling <= 0.0:
            raise ValueError(f"true_peak_ceiling_db must be within [-20, 0], got {ceiling}")
        flags = {}
        for key in ("include_mp3", "include_aac"):
            val = data.pop(key, True)
            if not isinstance(val, bool):
                raise ValueError(f"{key} must be a boolean")
            flags[key] = val
        return cls(bit_depth=bit_depth, sample_rate=sample_rate, true_peak_ceiling_db=ceiling, **flags)

"""EBU R128 loudness measurement through FFmpeg's ``ebur128`` filter.

The filter writes its report to stderr.  That text is meant for humans, so
each value is located by its label with a short list of patterns tried in
order; if none matches the measurement fails rather than guessing.  A typical
summary block looks like::

    [Parsed_ebur128_0 @ 0x5555555c8a40] Summary:

      Integrated loudness:
        I:         -12.6 LUFS
        Threshold: -23.0 LUFS

      Loudness range:
        LRA:         6.2 LU
        ...

      True peak:
        Peak:        -0.3 dBFS
"""

from __future__ import annotations

import math
import re
from pathlib import Path
from typing import Iterable, List, Optional

from .. import settings
from ..errors import MeasurementFailed, ParseFailed
from ..models.specs import LoudnessMetrics
from .ffmpeg import Runner, default_runner, require_ok

NUM = r"([-+]?\d+(?:\.\d+)?)"

INTEGRATED_PATTERNS = [
    re.compile(r"Integrated loudness:\s*I:\s*" + NUM + r"\s*LUFS", re.I),
    re.compile(r"^[ \t]*I:[ \t]*" + NUM, re.I | re.M),
]
LRA_PATTERNS = [
    re.compile(r"Loudness range:\s*LRA:\s*" + NUM + r"\s*LU\b", re.I),
    re.compile(r"^[ \t]*LRA:[ \t]*" + NUM, re.I | re.M),
]
PEAK_PATTERNS = [
    re.compile(r"True peak:\s*Peak:\s*" + NUM + r"\s*dB(?:FS|TP)", re.I),
    re.compile(r"^[ \t]*Peak:[ \t]*" + NUM, re.I | re.M),
]

SHORT_TERM_RE = re.compile(r"(?<![\w])S:\s*" + NUM)
MOMENTARY_RE = re.compile(r"(?<![\w])M:\s*" + NUM)
FRAME_LINE_RE = re.compile(r"^[^\n]*(?<![\w])t:[ \t]*\d[^\n]*$", re.M)


def summary_section(text: str) -> str:
    """Return the text the summary values are searched in.

    That is everything after the last ``Summary:`` marker.  Without a marker the
    per-frame lines are dropped so a running ``I:``/``LRA:`` reading can never be
    taken for the final value.
    """
    idx = text.rfind("Summary:")
    if idx != -1:
        return text[idx:]
    return FRAME_LINE_RE.sub("", text)


def parse_value(label: str, text: str, patterns: Iterable[re.Pattern]) -> float:
    for pattern in patterns:
        m = pattern.search(text)
        if not m:
            continue
        value = float(m.group(1))
        if math.isfinite(value):
            return value
    raise ParseFailed(label, text)


def max_reading(pattern: re.Pattern, text: str) -> Optional[float]:
    values = [float(v) for v in pattern.findall(text)]
    values = [v for v in values if math.isfinite(v)]
    return max(values) if values else None


def parse_ebur128(text: str) -> LoudnessMetrics:
    summary = summary_section(text)
    integrated = parse_value("integrated loudness", summary, INTEGRATED_PATTERNS)
    lra = parse_value("loudness range", summary, LRA_PATTERNS)
    peak = parse_value("true peak", summary, PEAK_PATTERNS)

    short_term = max_reading(SHORT_TERM_RE, text)
    momentary = max_reading(MOMENTARY_RE, text)
    return LoudnessMetrics(
        integrated_lufs=integrated,
        lra_lu=lra,
        true_peak_dbfs=peak,
        short_term_max_lufs=integrated if short_term is None else short_term,
        momentary_max_lufs=integrated if momentary is None else momentary,
    )


def _ebur128_args(path: Path, framelog: Optional[str] = None) -> List[str]:
    af = "ebur128=peak=true"
    if framelog:
        af += f":framelog={framelog}"
    return ["-hide_banner", "-nostats", "-i", str(path), "-af", af, "-f", "null", "-"]


def measure_ebur128(path: Path, runner: Optional[Runner] = None) -> LoudnessMetrics:
    """Measure integrated loudness, loudness range and true peak of ``path``."""
    runner = runner or default_runner()
    proc = runner.run(settings.FFMPEG_BIN, _ebur128_args(path), timeout=settings.MEASURE_TIMEOUT_S)
    require_ok(proc, "ffmpeg ebur128 measurement", error=MeasurementFailed)
    return parse_ebur128(proc.stderr)


def measure_true_peak(path: Path, runner: Optional[Runner] = None) -> float:
    """Quick true-peak check with per-frame logging suppressed.

    Only the peak is returned; the quiet frame log carries no short-term or
    momentary readings to report.
    """
    runner = runner or default_runner()
    proc = runner.run(settings.FFMPEG_BIN, _ebur128_args(path, "quiet"), timeout=settings.PEAK_TIMEOUT_S)
    require_ok(proc, "ffmpeg true peak measurement", error=MeasurementFailed)
    return parse_value("true peak", summary_section(proc.stderr), PEAK_PATTERNS)

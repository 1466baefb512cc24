"""Release-Ready gate.

Brings an export under a true-peak ceiling by gain alone (no limiting):

1. render a candidate at the current trial gain in 32-bit float so
   quantization noise does not disturb the peak reading;
2. measure it;
3. if the peak is within ``ceiling + CEILING_EPSILON`` render that candidate
   to the requested bit depth and re-measure the delivered file, since
   quantizing to 16/24-bit can push the peak up a little; one extra
   ``requantize_reduction_db`` step is taken when it does;
4. otherwise reduce the gain by the excess plus ``SAFETY_MARGIN`` (never below
   ``MIN_GAIN_DB``) and try again, up to ``max_attempts`` times.

When the budget runs out the last candidate is still delivered, with
``passes=False``.  Process failures (spawn, timeout, non-zero exit, parse)
abort the run; only the rendering is ever retried.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import List, Optional

from .. import settings
from ..models.specs import (
    Attempt,
    BitDepth,
    GateResult,
    LoudnessMetrics,
    ReleaseCheck,
    ReleaseReadyParams,
    RenderSpec,
)
from ..services.ffmpeg import Runner
from ..services.loudness import measure_ebur128
from ..services.render import gain_filter, render_wav
from ..utils.fs import scratch_dir

logger = logging.getLogger(__name__)

CEILING_EPSILON = 0.05
SAFETY_MARGIN = 0.2
MIN_GAIN_DB = -18.0


def within_ceiling(metrics: LoudnessMetrics, ceiling: float) -> bool:
    return metrics.true_peak_dbfs <= ceiling + CEILING_EPSILON


def next_gain(gain_db: float, peak: float, ceiling: float) -> float:
    """Gain for the next attempt after a candidate measured ``peak``."""
    gain_db -= (peak - ceiling) + SAFETY_MARGIN
    return max(gain_db, MIN_GAIN_DB)


def make_release_ready(
    params: ReleaseReadyParams,
    runner: Optional[Runner] = None,
    scratch_root: Optional[str] = None,
) -> GateResult:
    ceiling = params.true_peak_ceiling_db
    attempts: List[Attempt] = []
    gain_db = 0.0

    def deliver(candidate: Path) -> LoudnessMetrics:
        render_wav(
            RenderSpec(candidate, params.output_path, params.bit_depth, params.sample_rate),
            runner=runner,
        )
        return measure_ebur128(params.output_path, runner=runner)

    with scratch_dir(root=scratch_root or settings.SCRATCH_DIR) as work_dir:
        candidate = None
        for i in range(params.max_attempts):
            candidate = work_dir / f"candidate_{i}.wav"
            render_wav(
                RenderSpec(params.input_path, candidate, BitDepth.FLOAT32, params.sample_rate, gain_filter(gain_db)),
                runner=runner,
            )
            metrics = measure_ebur128(candidate, runner=runner)
            passed = within_ceiling(metrics, ceiling)
            attempts.append(Attempt(i + 1, gain_db, metrics, passed))
            logger.info(
                "attempt %d: gain=%.3f dB peak=%.2f dBTP ceiling=%.2f %s",
                i + 1, gain_db, metrics.true_peak_dbfs, ceiling, "pass" if passed else "over",
            )

            if passed:
                final_metrics = deliver(candidate)
                final_passes = within_ceiling(final_metrics, ceiling)
                if not final_passes and params.bit_depth is not BitDepth.FLOAT32:
                    logger.info(
                        "quantized %s-bit output peaks at %.2f dBTP, reducing %.2f dB",
                        params.bit_depth.value, final_metrics.true_peak_dbfs, params.requantize_reduction_db,
                    )
                    gain_db = max(gain_db - params.requantize_reduction_db, MIN_GAIN_DB)
                    continue
                return GateResult(gain_db, final_metrics, tuple(attempts), final_passes)

            gain_db = next_gain(gain_db, metrics.true_peak_dbfs, ceiling)

        logger.warning(
            "ceiling %.2f dBTP not met after %d attempts, delivering best effort",
            ceiling, params.max_attempts,
        )
        final_metrics = deliver(candidate)
        return GateResult(attempts[-1].gain_db, final_metrics, tuple(attempts), False)


def check_release_ready(
    path: Path,
    ceiling: float = settings.DEFAULT_CEILING_DB,
    runner: Optional[Runner] = None,
) -> ReleaseCheck:
    """One-shot compliance check; nothing is rendered."""
    if not math.isfinite(ceiling):
        raise ValueError(f"ceiling must be finite, got {ceiling}")
    metrics = measure_ebur128(path, runner=runner)
    return ReleaseCheck(within_ceiling(metrics, ceiling), metrics, ceiling - metrics.true_peak_dbfs)

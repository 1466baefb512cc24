"""Release-ready export job.

Runs the gate on one source file, optionally derives MP3/AAC deliverables
from the compliant WAV and writes a QC report plus a checksum manifest next
to the outputs.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .engine.release_ready import make_release_ready
from .errors import EngineError
from .models.specs import AAC_BITRATE_KBPS, MP3_BITRATE_KBPS, ExportRequest, ReleaseReadyParams
from .services.ffmpeg import Runner, probe_duration
from .services.render import render_aac, render_mp3
from .utils.fs import add_output, sha256_and_size, write_json_atomic, write_manifest

logger = logging.getLogger(__name__)

QC_REPORT = "qc-report.json"


def _duration(path: Path, runner: Optional[Runner]) -> Optional[float]:
    # informational only; a missing ffprobe must not fail the export
    try:
        return probe_duration(path, runner=runner)
    except EngineError as e:
        logger.warning("ffprobe unavailable for %s: %s", path.name, e)
        return None


def run_export(
    src_path,
    out_dir,
    request: Optional[ExportRequest] = None,
    runner: Optional[Runner] = None,
    scratch_root: Optional[str] = None,
) -> Dict[str, Any]:
    request = request or ExportRequest()
    src_path = Path(src_path)
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    manifest: Dict[str, Any] = {}

    input_sha256, _ = sha256_and_size(src_path)

    logger.info("export %s: release-ready gate (ceiling %.2f dBTP)", src_path.name, request.true_peak_ceiling_db)
    wav_path = out_dir / f"release-ready-{request.bit_depth.value}bit.wav"
    result = make_release_ready(
        ReleaseReadyParams(
            input_path=src_path,
            output_path=wav_path,
            bit_depth=request.bit_depth,
            sample_rate=request.sample_rate,
            true_peak_ceiling_db=request.true_peak_ceiling_db,
        ),
        runner=runner,
        scratch_root=scratch_root,
    )
    sha, _ = add_output(manifest, wav_path.name, wav_path)
    outputs: Dict[str, Any] = {
        "wav": {
            "file": wav_path.name,
            "sha256": sha,
            "bit_depth": request.bit_depth.value,
            "sample_rate": request.sample_rate,
        }
    }

    if request.include_mp3:
        mp3_path = out_dir / "release-ready.mp3"
        render_mp3(wav_path, mp3_path, request.sample_rate, MP3_BITRATE_KBPS, runner=runner)
        sha, _ = add_output(manifest, mp3_path.name, mp3_path)
        outputs["mp3"] = {"file": mp3_path.name, "sha256": sha, "bitrate": MP3_BITRATE_KBPS}

    if request.include_aac:
        aac_path = out_dir / "release-ready.m4a"
        render_aac(wav_path, aac_path, request.sample_rate, AAC_BITRATE_KBPS, runner=runner)
        sha, _ = add_output(manifest, aac_path.name, aac_path)
        outputs["aac"] = {"file": aac_path.name, "sha256": sha, "bitrate": AAC_BITRATE_KBPS}

    report = {
        "input_sha256": input_sha256,
        "release_ready_passes": result.passes,
        "final_gain_db": result.final_gain_db,
        "true_peak_ceiling_db": request.true_peak_ceiling_db,
        "metrics": result.final_metrics.to_dict(),
        "attempts": [a.to_dict() for a in result.attempts],
        "outputs": outputs,
        "duration_s": _duration(wav_path, runner),
        "processed_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
    qc_path = out_dir / QC_REPORT
    write_json_atomic(qc_path, report)
    add_output(manifest, QC_REPORT, qc_path)
    write_manifest(out_dir, manifest)

    logger.info("export %s done: passes=%s gain=%.3f dB", src_path.name, result.passes, result.final_gain_db)
    return report

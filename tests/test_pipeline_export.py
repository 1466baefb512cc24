import hashlib
import json

import pytest

from peakgate.errors import SpawnFailed
from peakgate.models.specs import BitDepth, ExportRequest
from peakgate.pipeline import run_export

from conftest import FakeEngine


def _src(tmp_path):
    src = tmp_path / "input.wav"
    src.write_bytes(b"RIFF-source")
    return src


def test_export_writes_outputs_report_and_manifest(tmp_path):
    src = _src(tmp_path)
    out = tmp_path / "out"
    report = run_export(src, out, ExportRequest(), runner=FakeEngine(), scratch_root=str(tmp_path))

    assert report["release_ready_passes"] is True
    assert report["input_sha256"] == hashlib.sha256(b"RIFF-source").hexdigest()
    assert report["final_gain_db"] == pytest.approx(-1.9)
    assert report["true_peak_ceiling_db"] == -2.0
    assert report["duration_s"] == pytest.approx(12.5)
    assert [a["attempt_number"] for a in report["attempts"]] == [1, 2]
    assert report["outputs"]["wav"]["file"] == "release-ready-24bit.wav"
    assert report["outputs"]["mp3"]["bitrate"] == 320
    assert report["outputs"]["aac"]["bitrate"] == 256
    assert report["processed_at"].endswith("Z")

    on_disk = json.loads((out / "qc-report.json").read_text())
    assert on_disk == report

    manifest = json.loads((out / "manifest.json").read_text())
    assert set(manifest) == {"release-ready-24bit.wav", "release-ready.mp3", "release-ready.m4a", "qc-report.json"}
    for meta in manifest.values():
        data = (out / meta["filename"]).read_bytes()
        assert meta["sha256"] == hashlib.sha256(data).hexdigest()
        assert meta["bytes"] == len(data)


def test_lossy_outputs_are_optional(tmp_path):
    engine = FakeEngine()
    report = run_export(
        _src(tmp_path),
        tmp_path / "out",
        ExportRequest(bit_depth=BitDepth.PCM16, include_mp3=False, include_aac=False),
        runner=engine,
        scratch_root=str(tmp_path),
    )
    assert set(report["outputs"]) == {"wav"}
    assert report["outputs"]["wav"]["bit_depth"] == "16"
    codecs = {r[r.index("-c:a") + 1] for r in engine.renders()}
    assert "libmp3lame" not in codecs and "aac" not in codecs


def test_lossy_renders_start_from_delivered_wav(tmp_path):
    engine = FakeEngine()
    run_export(_src(tmp_path), tmp_path / "out", runner=engine, scratch_root=str(tmp_path))
    mp3 = [r for r in engine.renders() if "libmp3lame" in r][0]
    assert mp3[mp3.index("-i") + 1].endswith("release-ready-24bit.wav")


def test_missing_ffprobe_leaves_duration_empty(tmp_path):
    def fail_on(cmd, args):
        if "ffprobe" in str(cmd):
            return SpawnFailed([cmd, *args], FileNotFoundError(2, "No such file"))
        return None

    report = run_export(_src(tmp_path), tmp_path / "out", runner=FakeEngine(fail_on=fail_on), scratch_root=str(tmp_path))
    assert report["duration_s"] is None


def test_export_request_defaults():
    req = ExportRequest.from_dict({})
    assert req.bit_depth is BitDepth.PCM24
    assert req.sample_rate == 44100
    assert req.true_peak_ceiling_db == -2.0
    assert req.include_mp3 is True and req.include_aac is True


def test_export_request_custom():
    req = ExportRequest.from_dict(
        {"bit_depth": "16", "sample_rate": 48000, "true_peak_ceiling_db": -1.5, "include_mp3": False}
    )
    assert (req.bit_depth, req.sample_rate, req.true_peak_ceiling_db, req.include_mp3, req.include_aac) == (
        BitDepth.PCM16, 48000, -1.5, False, True,
    )


@pytest.mark.parametrize("data", [
    {"bit_depth": "8"},
    {"bit_depth": "48"},
    {"sample_rate": 22050},
    {"sample_rate": 96000},
    {"true_peak_ceiling_db": 0.5},
    {"true_peak_ceiling_db": -25},
    {"include_aac": "yes"},
])
def test_export_request_rejects(data):
    with pytest.raises(ValueError):
        ExportRequest.from_dict(data)

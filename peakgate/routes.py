import math
from pathlib import Path

from flask import Blueprint, current_app, jsonify, request

from .engine import release_ready
from .errors import EngineError, ParseFailed, ProcessTimeout
from .models.specs import BitDepth, Container, ExportRequest, ReleaseReadyParams, RenderSpec
from .pipeline import run_export
from .services import ffmpeg, loudness, render
from .utils.fs import resolve_within

bp = Blueprint("main", __name__)


class InvalidRequest(ValueError):
    pass


def _runner():
    return current_app.config.get("ENGINE_RUNNER")


def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest("expected a JSON object body")
    return data


def _required(data: dict, key: str):
    value = data.get(key)
    if value is None or value == "":
        raise InvalidRequest(f"missing '{key}'")
    return value


def _number(data: dict, key: str, default=None) -> float:
    value = data.get(key, default) if default is not None else _required(data, key)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"'{key}' must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise InvalidRequest(f"'{key}' must be finite, got {value!r}")
    return number


def _integer(data: dict, key: str, default=None) -> int:
    value = data.get(key, default) if default is not None else _required(data, key)
    if isinstance(value, bool):
        raise InvalidRequest(f"'{key}' must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"'{key}' must be an integer, got {value!r}") from None


def _path(data: dict, key: str) -> Path:
    value = _required(data, key)
    return resolve_within(current_app.config["WORK_DIR"], value)


def _existing(data: dict, key: str) -> Path:
    p = _path(data, key)
    if not p.is_file():
        raise InvalidRequest(f"'{key}' does not exist: {data[key]}")
    return p


def _ceiling(data: dict) -> float:
    return _number(data, "ceiling_db", current_app.config["DEFAULT_CEILING_DB"])


@bp.get("/healthz")
def healthz():
    runner = _runner()
    return jsonify(
        {
            "status": "ok",
            "ffmpeg": ffmpeg.check_ffmpeg(runner),
            "ffprobe": ffmpeg.check_ffprobe(runner),
            "version": ffmpeg.ffmpeg_version(runner),
        }
    )


@bp.post("/measure")
def measure():
    data = _payload()
    metrics = loudness.measure_ebur128(_existing(data, "path"), runner=_runner())
    return jsonify({"ok": True, "metrics": metrics.to_dict()})


@bp.post("/check")
def check():
    data = _payload()
    result = release_ready.check_release_ready(_existing(data, "path"), _ceiling(data), runner=_runner())
    return jsonify({"ok": True, **result.to_dict()})


@bp.post("/render")
def render_route():
    data = _payload()
    container = Container(data.get("container", "wav"))
    spec = RenderSpec(
        _existing(data, "input"),
        _path(data, "output"),
        BitDepth.parse(data.get("bit_depth", "24")),
        _integer(data, "sample_rate"),
        render.gain_filter(_number(data, "gain_db", 0.0)),
    )
    bitrate = _integer(data, "bitrate_kbps") if "bitrate_kbps" in data else None
    render.render(spec, container, bitrate, runner=_runner())
    return jsonify({"ok": True, "output": str(spec.output_path)})


@bp.post("/release-ready")
def make_release_ready():
    data = _payload()
    params = ReleaseReadyParams(
        input_path=_existing(data, "input"),
        output_path=_path(data, "output"),
        bit_depth=data.get("bit_depth", "24"),
        sample_rate=_integer(data, "sample_rate"),
        true_peak_ceiling_db=_ceiling(data),
        max_attempts=_integer(data, "max_attempts", current_app.config["MAX_ATTEMPTS"]),
    )
    result = release_ready.make_release_ready(
        params, runner=_runner(), scratch_root=current_app.config.get("SCRATCH_DIR")
    )
    return jsonify({"ok": True, **result.to_dict()})


@bp.post("/export")
def export():
    data = _payload()
    src = _existing(data, "input")
    out_dir = _path(data, "out_dir")
    options = {k: v for k, v in data.items() if k not in ("input", "out_dir")}
    report = run_export(
        src,
        out_dir,
        ExportRequest.from_dict(options),
        runner=_runner(),
        scratch_root=current_app.config.get("SCRATCH_DIR"),
    )
    return jsonify({"ok": True, "report": report})


@bp.app_errorhandler(EngineError)
def engine_error(e):
    if isinstance(e, ProcessTimeout):
        status = 504
    elif isinstance(e, ParseFailed):
        status = 422
    else:
        status = 502
    return jsonify({"ok": False, "stage": e.stage, "error": str(e)}), status


@bp.app_errorhandler(ValueError)
def bad_request(e):
    return jsonify({"ok": False, "error": str(e)}), 400

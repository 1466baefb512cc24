"""Rendering with explicit FFmpeg codec parameters.

Output encoding is never left to FFmpeg defaults: every invocation names the
sample rate, the filter chain (``anull`` when there is nothing to do), the
codec and the muxer.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from .. import settings
from ..errors import RenderFailed
from ..models.specs import MP3_BITRATE_KBPS, AAC_BITRATE_KBPS, BitDepth, Container, RenderSpec
from .ffmpeg import Runner, default_runner, require_ok

DITHER_FILTER = "aresample=dither_method=triangular"

_WAV_CODECS = {
    BitDepth.PCM16: "pcm_s16le",
    BitDepth.PCM24: "pcm_s24le",
    BitDepth.FLOAT32: "pcm_f32le",
}
_BITS = {BitDepth.PCM16: 16, BitDepth.PCM24: 24, BitDepth.FLOAT32: 32}


def wav_codec(bit_depth) -> str:
    return _WAV_CODECS[BitDepth.parse(bit_depth)]


def bits_per_sample(bit_depth) -> int:
    return _BITS[BitDepth.parse(bit_depth)]


def gain_filter(gain_db: float) -> Optional[str]:
    if gain_db == 0:
        return None
    return f"volume={gain_db:.3f}dB"


def build_filter_chain(filter_graph: Optional[str], bit_depth: Optional[BitDepth] = None) -> str:
    filters = []
    if filter_graph:
        filters.append(filter_graph)
    # dither only when reducing to 16-bit
    if bit_depth is not None and BitDepth.parse(bit_depth) is BitDepth.PCM16:
        filters.append(DITHER_FILTER)
    return ",".join(filters) if filters else "anull"


def _render(context: str, in_path: Path, out_path: Path, codec_args: List[str], runner: Optional[Runner]) -> None:
    """Invoke ffmpeg writing to ``out_path`` via ``.part`` then atomically move."""
    runner = runner or default_runner()
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    part = out_path.with_name(out_path.name + ".part")
    args = ["-hide_banner", "-nostdin", "-y", "-i", str(in_path), *codec_args, str(part)]
    try:
        proc = runner.run(settings.FFMPEG_BIN, args, timeout=settings.RENDER_TIMEOUT_S)
        require_ok(proc, context, error=RenderFailed)
        if not part.exists() or part.stat().st_size == 0:
            raise RenderFailed(context, proc.code, proc.stdout, proc.stderr + "\nffmpeg produced no output")
        os.replace(part, out_path)
    finally:
        if part.exists():
            part.unlink()


def render_wav(spec: RenderSpec, runner: Optional[Runner] = None) -> None:
    """Render ``spec`` to WAV at its explicit bit depth and sample rate."""
    codec = wav_codec(spec.bit_depth)
    _render(
        "ffmpeg render_wav",
        spec.input_path,
        spec.output_path,
        [
            "-vn",
            "-ar",
            str(int(spec.sample_rate)),
            "-af",
            build_filter_chain(spec.filter_graph, spec.bit_depth),
            "-c:a",
            codec,
            "-f",
            "wav",
        ],
        runner,
    )


def render_mp3(
    in_path: Path,
    out_path: Path,
    sample_rate: int,
    bitrate_kbps: int = MP3_BITRATE_KBPS,
    filter_graph: Optional[str] = None,
    runner: Optional[Runner] = None,
) -> None:
    _render(
        "ffmpeg render_mp3",
        in_path,
        out_path,
        [
            "-vn",
            "-ar",
            str(int(sample_rate)),
            "-af",
            build_filter_chain(filter_graph),
            "-c:a",
            "libmp3lame",
            "-b:a",
            f"{int(bitrate_kbps)}k",
            "-f",
            "mp3",
        ],
        runner,
    )


def render_aac(
    in_path: Path,
    out_path: Path,
    sample_rate: int,
    bitrate_kbps: int = AAC_BITRATE_KBPS,
    filter_graph: Optional[str] = None,
    runner: Optional[Runner] = None,
) -> None:
    _render(
        "ffmpeg render_aac",
        in_path,
        out_path,
        [
            "-vn",
            "-ar",
            str(int(sample_rate)),
            "-af",
            build_filter_chain(filter_graph),
            "-c:a",
            "aac",
            "-b:a",
            f"{int(bitrate_kbps)}k",
            # moov atom up front so playback can start before the download ends
            "-movflags",
            "+faststart",
            "-f",
            "mp4",
        ],
        runner,
    )


def render(
    spec: RenderSpec,
    container: Container = Container.WAV,
    bitrate_kbps: Optional[int] = None,
    runner: Optional[Runner] = None,
) -> None:
    container = Container(container)
    if container is Container.WAV:
        render_wav(spec, runner=runner)
    elif container is Container.MP3:
        render_mp3(
            spec.input_path,
            spec.output_path,
            spec.sample_rate,
            bitrate_kbps or MP3_BITRATE_KBPS,
            spec.filter_graph,
            runner=runner,
        )
    else:
        render_aac(
            spec.input_path,
            spec.output_path,
            spec.sample_rate,
            bitrate_kbps or AAC_BITRATE_KBPS,
            spec.filter_graph,
            runner=runner,
        )


def apply_gain(
    in_path: Path,
    out_path: Path,
    gain_db: float,
    bit_depth: BitDepth = BitDepth.FLOAT32,
    sample_rate: int = 44100,
    runner: Optional[Runner] = None,
) -> None:
    render_wav(
        RenderSpec(Path(in_path), Path(out_path), BitDepth.parse(bit_depth), sample_rate, gain_filter(gain_db)),
        runner=runner,
    )

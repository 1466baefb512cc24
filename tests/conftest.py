import os
import re
import sys
from pathlib import Path

import numpy as np
import soundfile as sf
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from peakgate import create_app
from peakgate.services.ffmpeg import ProcessResult


EBUR128_FRAMES = """\
[Parsed_ebur128_0 @ 0x5555555c8a40] t: 0.099992   TARGET:-23 LUFS    M: -21.3 S: -21.3     I: -21.3 LUFS       LRA:   0.0 LU  FTPK: -12.1 -12.1 dBFS  TPK: -12.1 -12.1 dBFS
[Parsed_ebur128_0 @ 0x5555555c8a40] t: 0.199983   TARGET:-23 LUFS    M: -18.5 S: -19.9     I: -19.9 LUFS       LRA:   0.0 LU  FTPK:  -8.3  -8.3 dBFS  TPK:  -8.3  -8.3 dBFS
[Parsed_ebur128_0 @ 0x5555555c8a40] t: 0.299975   TARGET:-23 LUFS    M: -16.2 S: -18.3     I: -18.2 LUFS       LRA:   0.0 LU  FTPK:  -5.1  -5.1 dBFS  TPK:  -5.1  -5.1 dBFS
"""


def ebur128_summary(integrated=-12.6, lra=6.2, peak=-0.3):
    return f"""\
[Parsed_ebur128_0 @ 0x5555555c8a40] Summary:

  Integrated loudness:
    I:         {integrated:.1f} LUFS
    Threshold: -23.0 LUFS

  Loudness range:
    LRA:         {lra:.1f} LU
    Threshold:  -33.2 LUFS
    LRA low:    -18.5 LUFS
    LRA high:   -12.3 LUFS

  True peak:
    Peak:        {peak:.1f} dBFS
"""


VOLUME_RE = re.compile(r"volume=(-?\d+(?:\.\d+)?)dB")


class FakeEngine:
    """Stand-in for ffmpeg/ffprobe that tracks a true peak per rendered file.

    Rendering adds ``gain * response`` to the input's peak, plus
    ``overshoot`` keyed by output codec or output file name; measuring reports the tracked
    peak in an ebur128 summary.
    """

    def __init__(self, source_peak=-0.3, response=1.0, overshoot=None, fail_on=None):
        self.source_peak = source_peak
        self.response = response
        self.overshoot = overshoot or {}
        self.fail_on = fail_on
        self.peaks = {}
        self.calls = []

    def run(self, cmd, args, cwd=None, env=None, timeout=None):
        args = [str(a) for a in args]
        self.calls.append((cmd, args))
        if self.fail_on is not None:
            exc = self.fail_on(cmd, args)
            if exc is not None:
                raise exc
        if args == ["-version"]:
            return ProcessResult(0, f"{cmd} version 6.1 Copyright (c) the FFmpeg developers\n", "")
        if "ffprobe" in str(cmd):
            return ProcessResult(0, "12.500000\n", "")
        src = args[args.index("-i") + 1]
        peak = self.peaks.get(src, self.source_peak)
        if args[-1] == "-":
            return ProcessResult(0, "", EBUR128_FRAMES + ebur128_summary(peak=peak))
        out = args[-1]
        m = VOLUME_RE.search(args[args.index("-af") + 1])
        gain = float(m.group(1)) if m else 0.0
        codec = args[args.index("-c:a") + 1]
        Path(out).write_bytes(b"RIFF" + codec.encode())
        final = out[: -len(".part")] if out.endswith(".part") else out
        extra = self.overshoot.get(codec, 0.0) + self.overshoot.get(Path(final).name, 0.0)
        self.peaks[final] = peak + gain * self.response + extra
        return ProcessResult(0, "", "size=N/A time=00:00:12.50\n")

    def renders(self):
        return [a for _, a in self.calls if a and a[-1] != "-" and a != ["-version"] and "-c:a" in a]


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def client(tmp_path):
    app = create_app()
    app.config['TESTING'] = True
    work = tmp_path / 'work'
    work.mkdir()
    app.config['WORK_DIR'] = work
    app.config['SCRATCH_DIR'] = str(tmp_path / 'scratch')
    return app.test_client()


@pytest.fixture
def sine_file(tmp_path):
    sr = 48000
    t = np.linspace(0, 2.0, sr * 2, False)
    wave = 0.5 * np.sin(2 * np.pi * 440 * t)
    path = tmp_path / 'tone.wav'
    sf.write(path, np.column_stack((wave, wave)), sr, subtype='PCM_24')
    return path

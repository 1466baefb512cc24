import os
import tempfile

FFMPEG_BIN = os.getenv("FFMPEG_BIN", "ffmpeg")
FFPROBE_BIN = os.getenv("FFPROBE_BIN", "ffprobe")

PROCESS_TIMEOUT_S = float(os.getenv("PROCESS_TIMEOUT_S", "600"))
MEASURE_TIMEOUT_S = float(os.getenv("MEASURE_TIMEOUT_S", "600"))
PEAK_TIMEOUT_S = float(os.getenv("PEAK_TIMEOUT_S", "300"))
RENDER_TIMEOUT_S = float(os.getenv("RENDER_TIMEOUT_S", "1800"))
PROBE_TIMEOUT_S = float(os.getenv("PROBE_TIMEOUT_S", "5"))

# Root for the HTTP surface; Gate scratch dirs go under SCRATCH_DIR (temp root when unset).
WORK_DIR = os.getenv("WORK_DIR", os.path.join(tempfile.gettempdir(), "peakgate"))
SCRATCH_DIR = os.getenv("SCRATCH_DIR") or None

DEFAULT_CEILING_DB = float(os.getenv("DEFAULT_CEILING_DB", "-2.0"))
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", "8"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

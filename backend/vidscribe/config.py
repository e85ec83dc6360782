# backend/vidscribe/config.py
import logging
import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# --- STORAGE ---
STORAGE_DIR = os.environ.get("STORAGE_DIR", os.path.join(BASE_DIR, "storage"))

# --- TRANSCODER / FRAME COUNTER ---
FFMPEG_BINARY = os.environ.get("FFMPEG_BINARY", "ffmpeg")
FFPROBE_BINARY = os.environ.get("FFPROBE_BINARY", "ffprobe")
FRAME_COUNT_FALLBACK = int(os.environ.get("FRAME_COUNT_FALLBACK", "1000"))
FRAME_COUNT_TIMEOUT = float(os.environ.get("FRAME_COUNT_TIMEOUT", "30"))

# --- PROGRESS DELIVERY ---
PROGRESS_INTERVAL = float(os.environ.get("PROGRESS_INTERVAL", "0.5"))
PROGRESS_LINGER = float(os.environ.get("PROGRESS_LINGER", "2.0"))
JOB_RETENTION = float(os.environ.get("JOB_RETENTION", "2.0"))

# --- RECOGNITION SERVICE ---
DEEPGRAM_API_KEY = os.environ.get("DEEPGRAM_API_KEY")
DEEPGRAM_URL = os.environ.get("DEEPGRAM_URL", "https://api.deepgram.com/v1/listen")
DEEPGRAM_MODEL = os.environ.get("DEEPGRAM_MODEL", "nova-2")
RECOGNITION_TIMEOUT = float(os.environ.get("RECOGNITION_TIMEOUT", "300"))

# --- HTTP ---
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def configure_logging(level=None):
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

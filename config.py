import os
from dotenv import load_dotenv
from google import genai
from google.genai import types

load_dotenv()

TEXT_MODEL = os.environ.get("ARCHITECT_TEXT_MODEL", "gemini-3-flash-preview")
IMAGE_MODEL = os.environ.get("ARCHITECT_IMAGE_MODEL", "gemini-2.5-flash-image")
VOICE_MODEL = os.environ.get(
    "ARCHITECT_VOICE_MODEL", "gemini-2.5-flash-native-audio-preview-12-2025"
)
VOICE_NAME = os.environ.get("ARCHITECT_VOICE_NAME", "Zephyr")

REQUEST_TIMEOUT_MS = 300_000

SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "imaginebuild-dev")
PORT = int(os.environ.get("PORT", "5001"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# in-memory sessions: dropped after this much idle time, oldest first past the cap
WORKSPACE_IDLE_SECONDS = int(os.environ.get("WORKSPACE_IDLE_SECONDS", "3600"))
MAX_WORKSPACES = int(os.environ.get("MAX_WORKSPACES", "200"))


def create_client():
    return genai.Client(
        api_key=os.environ["GEMINI_API_KEY"],
        http_options=types.HttpOptions(timeout=REQUEST_TIMEOUT_MS),
    )

# livequiz_bot/config.py

import os
from dotenv import load_dotenv

# Load .env file if present (local development)
load_dotenv()

BOT_TOKEN = os.getenv("BOT_TOKEN")
WIDGET_BASE_URL = os.getenv("WIDGET_BASE_URL", "https://tikfinity.zerody.one")
WIDGET_CHANNEL_ID = os.getenv("WIDGET_CHANNEL_ID")
FALLBACK_TIMEOUT_MS = int(os.getenv("FALLBACK_TIMEOUT_MS", "7000"))
DEMO_MODE = os.getenv("DEMO_MODE", "0").lower() in ("1", "true", "yes")
PREFERENCES_PATH = os.getenv("PREFERENCES_PATH", "preferences.json")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

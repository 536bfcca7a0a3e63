# config.py

import os
from dotenv import load_dotenv

load_dotenv()

# RobotEvents API v2
ROBOTEVENTS_API_BASE = "https://www.robotevents.com/api/v2"

# Firebase service account (loaded from .env locally, repo secrets in CI)
FIREBASE_PROJECT_ID = os.environ.get("FIREBASE_PROJECT_ID", "robostemdb")
FIREBASE_CLIENT_EMAIL = os.environ.get("FIREBASE_CLIENT_EMAIL", "")
FIREBASE_PRIVATE_KEY = os.environ.get("FIREBASE_PRIVATE_KEY", "").replace("\\n", "\n")
FIREBASE_DATABASE_URL = os.environ.get(
    "FIREBASE_DATABASE_URL",
    f"https://{FIREBASE_PROJECT_ID}-default-rtdb.firebaseio.com",
)

# "changed" reads RTDB before writing, "blind" writes every record
LIVE_PUBLISH_STRATEGY = os.environ.get("LIVE_PUBLISH_STRATEGY", "changed").strip().lower()


def parse_api_keys(raw: str) -> list[str]:
    """Split a comma/newline separated key list, dropping blanks and repeats."""
    keys: list[str] = []
    for chunk in raw.replace("\n", ",").split(","):
        key = chunk.strip()
        if key and key not in keys:
            keys.append(key)
    return keys


def get_api_keys() -> list[str]:
    return parse_api_keys(os.environ.get("ROBOTEVENTS_API_KEYS", ""))


def get_target_season_id() -> int | None:
    raw = os.environ.get("TARGET_SEASON_ID", "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"TARGET_SEASON_ID must be an integer, got {raw!r}")

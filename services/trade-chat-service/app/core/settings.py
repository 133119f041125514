import os
from dataclasses import dataclass


@dataclass
class Settings:
    recognizer_url: str
    recognizer_app_id: str
    recognizer_key: str
    recognizer_timeout_ms: int
    bot_id: str
    state_redis_url: str
    state_ttl_sec: int
    confirm_url_base: str
    confirm_url_path: str
    card_legacy_encoding: str


def load_settings() -> Settings:
    return Settings(
        recognizer_url=os.getenv("TS_RECOGNIZER_URL", "http://localhost:8020").rstrip("/"),
        recognizer_app_id=os.getenv("TS_RECOGNIZER_APP_ID", "trade-bot").strip(),
        recognizer_key=os.getenv("TS_RECOGNIZER_KEY", ""),
        recognizer_timeout_ms=max(50, int(os.getenv("TS_RECOGNIZER_TIMEOUT_MS", "3000"))),
        bot_id=os.getenv("TS_BOT_ID", "trade-bot").strip(),
        state_redis_url=os.getenv("TS_STATE_REDIS_URL", "").strip(),
        state_ttl_sec=max(60, int(os.getenv("TS_STATE_TTL_SEC", "86400"))),
        confirm_url_base=os.getenv("TS_CONFIRM_URL_BASE", "ns://webpop.shinhaninvest.com").rstrip("/"),
        confirm_url_path=os.getenv("TS_CONFIRM_URL_PATH", "naev850003").strip(),
        card_legacy_encoding=os.getenv("TS_CARD_LEGACY_ENCODING", "").strip().lower(),
    )


SETTINGS = load_settings()

import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Admin API
    ADMIN_TOKEN = os.environ.get("ADMIN_TOKEN", "")

    # Reverse proxy headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Duel sessions
    MAX_SESSIONS = int(os.environ.get("MAX_SESSIONS", "1000"))
    READY_DELAY_SEC = float(os.environ.get("READY_DELAY_SEC", "2"))
    IDLE_WAITING_SEC = int(os.environ.get("IDLE_WAITING_SEC", "600"))
    COMPLETED_RETENTION_SEC = int(os.environ.get("COMPLETED_RETENTION_SEC", "300"))
    DEFAULT_TIME_LIMIT_MIN = int(os.environ.get("DEFAULT_TIME_LIMIT_MIN", "30"))
    PAUSE_ON_DISCONNECT = os.environ.get("PAUSE_ON_DISCONNECT", "0") == "1"
    CHAT_HISTORY_LIMIT = int(os.environ.get("CHAT_HISTORY_LIMIT", "200"))
    HISTORY_LIMIT = int(os.environ.get("HISTORY_LIMIT", "10000"))

    # Anti-cheat
    FOCUS_GRACE_MS = int(os.environ.get("FOCUS_GRACE_MS", "3000"))
    # 0 keeps violations informational only.
    VIOLATION_LIMIT = int(os.environ.get("VIOLATION_LIMIT", "0"))

    # Client polling staleness bounds
    LEADERBOARD_POLL_MS = int(os.environ.get("LEADERBOARD_POLL_MS", "30000"))
    SUBMISSIONS_POLL_MS = int(os.environ.get("SUBMISSIONS_POLL_MS", "2000"))
    STATUS_POLL_MS = int(os.environ.get("STATUS_POLL_MS", "60000"))

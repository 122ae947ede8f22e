# companion_server/state/redis_keys.py

"""
Single contract for the Redis keys used by the companion server.

Never hardcode key strings outside this file.
"""

# =========================
# PAIRING GATE
# =========================

# Fernet token of the string "true" while the gate is armed
PAIRING_GATE_ENABLED_KEY = "companion:pairing_gate:enabled"

# Fernet token of the ISO-8601 UTC timestamp the gate was armed at
PAIRING_GATE_ENABLED_AT_KEY = "companion:pairing_gate:enabled_at"

# =========================
# AUTH TOKENS
# =========================

# Hash: sha256(token) -> {appName: str, issuedAt: str}
AUTH_TOKENS_KEY = "companion:auth_tokens"

# =========================
# RESUME POINT
# =========================

# Last known page/video/playlist, read back by the desktop shell on start
RESUME_LAST_URL_KEY = "companion:resume:last_url"
RESUME_LAST_VIDEO_ID_KEY = "companion:resume:last_video_id"
RESUME_LAST_PLAYLIST_ID_KEY = "companion:resume:last_playlist_id"

"""Storage key names shared with the web dashboard."""

NOTIFICATIONS_KEY = "docsynth_notifications"
TOKEN_KEY = "docsynth_token"
RECENT_COMMANDS_KEY = "docsynth_recent_commands"
RECENT_SEARCHES_KEY = "docsynth_recent_searches"
RECENT_CHAT_SESSIONS_KEY = "docsynth_recent_chat_sessions"
ONBOARDING_KEY = "docsynth_onboarding_complete"
LANGUAGE_KEY = "docsynth_language"


def recent_queries_key(repository_id: str) -> str:
    """Return the per-repository recent search queries key."""
    return f"docsynth_recent_queries_{repository_id}"

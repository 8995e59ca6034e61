"""Response languages selectable from the chat client."""

DEFAULT_LANGUAGE = "en"

LANGUAGE_LABELS: dict[str, str] = {
    "sp": "Española",
    "gr": "Deutsche",
    "it": "Italiana",
    "rs": "русский",
    "en": "English",
    "cn": "中国人",
    "fr": "français",
    "ar": "Arabic",
    "jp": "日本語",
    "gu": "ગુજરાતી",
    "hi": "हिन्दी",
    "mr": "मराठी",
    "te": "తెలుగు",
    "ta": "தமிழ்",
}


def language_label(code: str | None) -> str:
    """Label for a language code; unknown or missing codes fall back to English."""
    return LANGUAGE_LABELS.get(code or DEFAULT_LANGUAGE, LANGUAGE_LABELS[DEFAULT_LANGUAGE])

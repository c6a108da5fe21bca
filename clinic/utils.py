"""Small helpers shared by views, services and templates."""

from __future__ import annotations

SUPPORTED_LANGUAGES = ('en', 'es')
DEFAULT_LANGUAGE = 'en'


def localise_text(lang: str, en: str, es: str) -> str:
    """Return the Spanish text when ``lang`` is ``es`` and English otherwise."""

    return es if lang == 'es' else en


def get_lang(request) -> str:
    lang = request.session.get('lang', DEFAULT_LANGUAGE)
    return lang if lang in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE

"""
Voice setting normalisation and on-device voice selection.
"""

from typing import Any, Iterable, Optional


SUPPORTED_GENDERS = ('female', 'male')
SUPPORTED_STYLES = ('calm', 'friendly', 'professional')

# Locale the on-device engine is asked for when the service falls back
FALLBACK_VOICE_IDS = {
    'en': 'en-US',
    'es': 'es-ES',
    'ar': 'ar',
    'fr': 'fr-FR',
    'de': 'de-DE',
}

LANGUAGE_ALIASES = {
    'english': 'en',
    'spanish': 'es',
    'español': 'es',
    'arabic': 'ar',
    'french': 'fr',
    'français': 'fr',
    'german': 'de',
    'deutsch': 'de',
}

STYLE_ALIASES = {
    'neutral': 'calm',
    'default': 'calm',
    'warm': 'friendly',
    'formal': 'professional',
}


def normalize_language(language: Optional[str]) -> str:
    """``English`` → ``en``, ``en-US`` → ``en``; empty → ``en``."""
    if not language:
        return 'en'
    value = language.strip().lower().replace('_', '-')
    if value in LANGUAGE_ALIASES:
        return LANGUAGE_ALIASES[value]
    return value.split('-')[0] or 'en'


def normalize_gender(gender: Optional[str]) -> str:
    value = (gender or '').strip().lower()
    return value if value in SUPPORTED_GENDERS else 'female'


def normalize_style(style: Optional[str]) -> str:
    value = (style or '').strip().lower()
    value = STYLE_ALIASES.get(value, value)
    return value if value in SUPPORTED_STYLES else 'calm'


def fallback_voice_id(language: Optional[str]) -> str:
    return FALLBACK_VOICE_IDS.get(normalize_language(language), 'en-US')


def _voice_languages(voice: Any) -> list:
    languages = []
    for lang in getattr(voice, 'languages', None) or []:
        if isinstance(lang, bytes):
            # Some engines report languages as raw bytes with a length prefix
            lang = lang.decode('utf-8', errors='ignore').lstrip('\x05').strip('\x00')
        languages.append(normalize_language(str(lang)))
    voice_id = str(getattr(voice, 'id', '') or '')
    name = str(getattr(voice, 'name', '') or '')
    for token in (voice_id, name):
        lowered = token.lower()
        for alias, code in LANGUAGE_ALIASES.items():
            if alias in lowered:
                languages.append(code)
    return languages


def _voice_gender(voice: Any) -> Optional[str]:
    gender = getattr(voice, 'gender', None)
    if not gender:
        return None
    gender = str(gender).lower()
    if gender.startswith('f') or 'female' in gender:
        return 'female'
    if gender.startswith('m') or 'male' in gender:
        return 'male'
    return None


def select_device_voice(voices: Iterable[Any],
                        language: Optional[str],
                        gender: Optional[str] = None) -> Optional[Any]:
    """
    Pick an on-device voice: first by language, then by gender within it.

    ``voices`` are engine voice objects exposing ``id``, ``name`` and
    optionally ``languages`` and ``gender`` (pyttsx3 shape). Returns None
    when no voice speaks the language.
    """
    wanted_language = normalize_language(language)
    wanted_gender = normalize_gender(gender) if gender else None

    matches = [v for v in voices if wanted_language in _voice_languages(v)]
    if not matches:
        return None

    if wanted_gender:
        for voice in matches:
            if _voice_gender(voice) == wanted_gender:
                return voice
    return matches[0]

"""Language tags: normalisation, statistical detection and text direction."""

from __future__ import annotations

import logging

from clipextract import settings

logger = logging.getLogger(__name__)

# langdetect is unreliable below this many characters
_MIN_SAMPLE = 40
_MAX_SAMPLE = 5000


def primary_subtag(lang: str) -> str:
    """``"pt_BR"`` / ``"pt-BR"`` -> ``"pt"``."""
    return lang.replace("_", "-").split("-")[0].strip().lower()


def normalize_language(lang: str | None) -> str:
    """Trim a declared language tag; ``""`` when nothing usable is declared."""
    if not lang:
        return ""
    return lang.strip().replace("_", "-")[:10]


def detect_language(text: str) -> str | None:
    """Guess the language code of *text* with langdetect (deterministic seed)."""
    if not text:
        return None
    sample = text.strip()[:_MAX_SAMPLE]
    if len(sample) < _MIN_SAMPLE:
        return None
    try:
        from langdetect import DetectorFactory, detect

        DetectorFactory.seed = 0
        code = detect(sample)
    except Exception as exc:
        logger.debug("Language detection failed: %s", exc)
        return None
    return code if code else None


def text_direction(lang: str, declared: str = "") -> str:
    """Explicit ``dir`` wins; otherwise ``rtl`` for right-to-left languages."""
    declared = declared.strip().lower()
    if declared in {"rtl", "ltr"}:
        return declared
    return "rtl" if primary_subtag(lang) in settings.RTL_LANGUAGES else "ltr"

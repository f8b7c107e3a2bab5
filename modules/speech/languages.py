"""
Supported output languages and their BCP-47 tags for voice selection.
"""

DEFAULT_LANGUAGE = "en"

LANGUAGES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "pt": "Portuguese",
    "it": "Italian",
    "ru": "Russian",
    "ar": "Arabic",
    "nl": "Dutch",
    "pl": "Polish",
    "tr": "Turkish",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "hi": "Hindi",
    "id": "Indonesian",
    "sv": "Swedish",
    "cs": "Czech",
    "el": "Greek",
    "hu": "Hungarian",
    "ro": "Romanian",
    "bg": "Bulgarian",
    "uk": "Ukrainian",
    "fi": "Finnish",
    "da": "Danish",
}

BCP47_TAGS = {
    "en": "en-US", "es": "es-ES", "fr": "fr-FR", "de": "de-DE",
    "zh": "zh-CN", "ja": "ja-JP", "ko": "ko-KR", "hi": "hi-IN",
    "id": "id-ID", "pt": "pt-BR", "it": "it-IT", "ru": "ru-RU",
    "nl": "nl-NL", "sv": "sv-SE", "pl": "pl-PL", "tr": "tr-TR",
    "cs": "cs-CZ", "el": "el-GR", "hu": "hu-HU", "ro": "ro-RO",
    "bg": "bg-BG", "uk": "uk-UA", "fi": "fi-FI", "da": "da-DK",
    "ar": "ar-SA",
}

# Codes the Google translation endpoint spells differently
TRANSLATION_CODES = {
    "zh": "zh-CN",
}


def bcp47_tag(code: str) -> str:
    return BCP47_TAGS.get(code, code)


def is_supported(code: str) -> bool:
    return code in LANGUAGES

# -*- coding: utf-8 -*-
"""
Persistent user preferences.

Preferences are a flat key/value mapping. ``JsonPreferenceStore`` keeps them
in a JSON file and rewrites it on every ``set``; ``MemoryPreferenceStore`` is
used when nothing should touch the disk.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING

from .ocr_engine import DEFAULT_LANGUAGES, DEFAULT_MINIMUM_TEXT_HEIGHT, normalize_languages

if TYPE_CHECKING:
    from .recognizer import TextRecognizer

logger = logging.getLogger(__name__)

KEY_SELECTED_LANGUAGES = "selectedLanguages"
KEY_MINIMUM_TEXT_HEIGHT = "minimumTextHeight"
KEY_USE_LANGUAGE_CORRECTION = "useLanguageCorrection"
KEY_AUTO_DETECT_LANGUAGE = "autoDetectLanguage"
KEY_DARK_MODE = "isDarkMode"
KEY_ENGINE = "engine"

DEFAULT_ENGINE = "paddle"
DEFAULT_PREFERENCES_PATH = Path.home() / ".text_extractor" / "preferences.json"

# Range offered by the settings slider.
MIN_TEXT_HEIGHT_RANGE = (0.01, 0.5)


class PreferenceStore:
    """Interface: ``get(key, default=None)`` and ``set(key, value)``."""

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def contains(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryPreferenceStore(PreferenceStore):
    def __init__(self, values: Optional[Dict[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = dict(values or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value


class JsonPreferenceStore(PreferenceStore):
    """Preferences backed by a JSON file, loaded once and saved on every change."""

    def __init__(self, path: Optional[os.PathLike] = None) -> None:
        self.path = Path(path or os.getenv("TEXT_EXTRACTOR_PREFERENCES") or DEFAULT_PREFERENCES_PATH)
        self._values = self._load()

    def _load(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
            # Corrupt or unreadable file: start from defaults.
            logger.warning("Ignoring unreadable preferences file %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring preferences file %s: not a JSON object", self.path)
            return {}
        return data

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value
        self._save()

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._values, f, indent=4)


def _read_bool(store: PreferenceStore, key: str, default: bool) -> bool:
    value = store.get(key)
    return value if isinstance(value, bool) else default


def read_languages(store: PreferenceStore, fallback: Optional[Sequence[str]] = None) -> List[str]:
    """Stored languages, or ``fallback`` (then ``["en-US"]``) when unset or empty."""
    value = store.get(KEY_SELECTED_LANGUAGES)
    if isinstance(value, list) and any(isinstance(tag, str) and tag.strip() for tag in value):
        return normalize_languages(tag for tag in value if isinstance(tag, str))
    return normalize_languages(fallback or DEFAULT_LANGUAGES)


def read_minimum_text_height(store: PreferenceStore) -> float:
    value = store.get(KEY_MINIMUM_TEXT_HEIGHT)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_MINIMUM_TEXT_HEIGHT
    return float(value) if 0 < value <= 1 else DEFAULT_MINIMUM_TEXT_HEIGHT


def read_use_language_correction(store: PreferenceStore) -> bool:
    return _read_bool(store, KEY_USE_LANGUAGE_CORRECTION, True)


def read_auto_detect_language(store: PreferenceStore) -> bool:
    return _read_bool(store, KEY_AUTO_DETECT_LANGUAGE, True)


@dataclass
class OCRSettings:
    """Holds everything shown on the settings dialog."""
    selected_languages: List[str] = field(default_factory=lambda: list(DEFAULT_LANGUAGES))
    minimum_text_height: float = DEFAULT_MINIMUM_TEXT_HEIGHT
    use_language_correction: bool = True
    auto_detect_language: bool = True
    dark_mode: bool = False
    engine: str = DEFAULT_ENGINE

    @classmethod
    def load(cls, store: PreferenceStore, fallback_languages: Optional[Sequence[str]] = None) -> "OCRSettings":
        engine = store.get(KEY_ENGINE)
        return cls(
            selected_languages=read_languages(store, fallback_languages),
            minimum_text_height=read_minimum_text_height(store),
            use_language_correction=read_use_language_correction(store),
            auto_detect_language=read_auto_detect_language(store),
            dark_mode=_read_bool(store, KEY_DARK_MODE, False),
            engine=engine if isinstance(engine, str) and engine else DEFAULT_ENGINE,
        )

    def save(self, store: PreferenceStore) -> None:
        store.set(KEY_SELECTED_LANGUAGES, list(self.selected_languages))
        store.set(KEY_MINIMUM_TEXT_HEIGHT, float(self.minimum_text_height))
        store.set(KEY_USE_LANGUAGE_CORRECTION, bool(self.use_language_correction))
        store.set(KEY_AUTO_DETECT_LANGUAGE, bool(self.auto_detect_language))
        store.set(KEY_DARK_MODE, bool(self.dark_mode))
        store.set(KEY_ENGINE, self.engine)

    def apply_to(self, recognizer: "TextRecognizer") -> None:
        """Push languages and recognition options into the recognizer (which persists them)."""
        recognizer.set_recognition_languages(self.selected_languages)
        recognizer.update_configuration(
            minimum_text_height=self.minimum_text_height,
            use_language_correction=self.use_language_correction,
            automatically_detects_language=self.auto_detect_language,
        )

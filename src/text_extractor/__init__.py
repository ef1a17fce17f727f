# -*- coding: utf-8 -*-
"""
Text Extractor - capture or import an image, recognize its text and work with it.

The recognition pipeline (preprocessing, engine call, result reduction) has
no GUI dependency apart from the Qt thread used by ``TextRecognizer``.
"""

__version__ = "1.0.0"

from .ocr_engine import (
    ImageProcessingFailedError,
    InvalidImageError,
    LowConfidenceError,
    NoTextFoundError,
    OCREngine,
    OCREngineError,
    OCRError,
    RecognitionBusyError,
    RecognitionConfiguration,
    RecognitionLevel,
    TextObservation,
    create_engine,
)
from .postprocess import RecognitionResult, filter_lines, reduce_observations
from .preprocess import preprocess_image
from .settings import JsonPreferenceStore, MemoryPreferenceStore, OCRSettings, PreferenceStore

__all__ = [
    "ImageProcessingFailedError",
    "InvalidImageError",
    "LowConfidenceError",
    "NoTextFoundError",
    "OCREngine",
    "OCREngineError",
    "OCRError",
    "RecognitionBusyError",
    "RecognitionConfiguration",
    "RecognitionLevel",
    "TextObservation",
    "create_engine",
    "RecognitionResult",
    "filter_lines",
    "reduce_observations",
    "preprocess_image",
    "JsonPreferenceStore",
    "MemoryPreferenceStore",
    "OCRSettings",
    "PreferenceStore",
]

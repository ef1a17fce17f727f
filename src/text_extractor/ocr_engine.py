from __future__ import annotations

import enum
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

os.environ.setdefault("PADDLE_DISABLE_ONEDNN", "1")
os.environ.setdefault("FLAGS_use_mkldnn", "0")
os.environ.setdefault("FLAGS_enable_onednn", "0")
os.environ.setdefault("FLAGS_enable_pir_api", "0")
os.environ.setdefault("FLAGS_enable_pir_in_executor", "0")

import cv2
import numpy as np
import pytesseract

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGES: Tuple[str, ...] = ("en-US",)
DEFAULT_MINIMUM_TEXT_HEIGHT = 0.1

SUPPORTED_LANGUAGES: Dict[str, str] = {
    "en-US": "English",
    "fr-FR": "French",
    "es-ES": "Spanish",
    "de-DE": "German",
    "it-IT": "Italian",
    "pt-BR": "Portuguese",
    "zh-Hans": "Simplified Chinese",
    "zh-Hant": "Traditional Chinese",
    "ja-JP": "Japanese",
    "ko-KR": "Korean",
}


class OCRError(RuntimeError):
    """Base class for every failure surfaced by the recognition pipeline."""

    message = "Text recognition failed"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)


class InvalidImageError(OCRError):
    message = "The provided image is invalid"


class ImageProcessingFailedError(OCRError):
    message = "Failed to process the image"


class NoTextFoundError(OCRError):
    message = "No text was found in the image"


class LowConfidenceError(OCRError):
    """Reserved. Nothing in the pipeline raises it."""

    message = "The text recognition confidence is too low"


class RecognitionBusyError(OCRError):
    message = "A recognition is already in progress"


class OCREngineError(OCRError):
    """Raised when OCR initialization or recognition fails."""


class RecognitionLevel(str, enum.Enum):
    FAST = "fast"
    ACCURATE = "accurate"


@dataclass(frozen=True)
class TextObservation:
    text: str
    confidence: float


@dataclass
class RecognitionConfiguration:
    """Options handed to the engine for every recognition call."""

    minimum_text_height: float = DEFAULT_MINIMUM_TEXT_HEIGHT
    recognition_level: RecognitionLevel = RecognitionLevel.ACCURATE
    use_language_correction: bool = True
    custom_words: List[str] = field(default_factory=list)
    automatically_detects_language: bool = True
    recognition_languages: List[str] = field(default_factory=lambda: list(DEFAULT_LANGUAGES))

    def update(
        self,
        minimum_text_height: Optional[float] = None,
        recognition_level: Optional[RecognitionLevel] = None,
        use_language_correction: Optional[bool] = None,
        custom_words: Optional[Sequence[str]] = None,
        automatically_detects_language: Optional[bool] = None,
        recognition_languages: Optional[Sequence[str]] = None,
    ) -> None:
        """Change only the supplied fields; ``None`` keeps the current value."""
        if minimum_text_height is not None:
            height = float(minimum_text_height)
            if not 0.0 < height <= 1.0:
                raise ValueError(f"minimum_text_height must be in (0, 1], got {height}")
            self.minimum_text_height = height
        if recognition_level is not None:
            self.recognition_level = RecognitionLevel(recognition_level)
        if use_language_correction is not None:
            self.use_language_correction = bool(use_language_correction)
        if custom_words is not None:
            self.custom_words = [str(word) for word in custom_words]
        if automatically_detects_language is not None:
            self.automatically_detects_language = bool(automatically_detects_language)
        if recognition_languages is not None:
            self.recognition_languages = normalize_languages(recognition_languages)

    def snapshot(self) -> "RecognitionConfiguration":
        """Return an independent copy, safe to hand to a worker thread."""
        return replace(
            self,
            custom_words=list(self.custom_words),
            recognition_languages=list(self.recognition_languages),
        )


def normalize_languages(languages: Optional[Iterable[str]]) -> List[str]:
    """Drop blanks and duplicates, keeping order. Never returns an empty list."""
    result: List[str] = []
    for tag in languages or ():
        tag = str(tag).strip()
        if tag and tag not in result:
            result.append(tag)
    return result or list(DEFAULT_LANGUAGES)


class OCREngine:
    """Interface of an external recognizer.

    ``recognize`` receives an RGB ``uint8`` array of shape (h, w, 3) and
    returns one observation per detected text line, in engine order.
    """

    name = "base"

    def __init__(self, logger: Optional[Any] = None) -> None:
        self._logger = logger

    def initialize(self, config: Optional[RecognitionConfiguration] = None) -> float:
        return 0.0

    def recognize(self, pixels: np.ndarray, config: RecognitionConfiguration) -> List[TextObservation]:
        raise NotImplementedError

    def _log_info(self, message: str) -> None:
        (self._logger or logger).info(message)

    def _log_warning(self, message: str) -> None:
        (self._logger or logger).warning(message)

    def _log_debug(self, message: str) -> None:
        (self._logger or logger).debug(message)


# Recognition languages understood by PaddleOCR, keyed by BCP-47 tag.
PADDLE_LANGUAGES: Dict[str, str] = {
    "en-US": "en",
    "fr-FR": "fr",
    "es-ES": "es",
    "de-DE": "german",
    "it-IT": "it",
    "pt-BR": "pt",
    "zh-Hans": "ch",
    "zh-Hant": "chinese_cht",
    "ja-JP": "japan",
    "ko-KR": "korean",
}


def paddle_language(languages: Sequence[str]) -> str:
    """PaddleOCR loads one recognition model per language; use the first one it knows."""
    for tag in languages:
        if tag in PADDLE_LANGUAGES:
            return PADDLE_LANGUAGES[tag]
        prefix = tag.split("-")[0]
        for known, code in PADDLE_LANGUAGES.items():
            if known.split("-")[0] == prefix:
                return code
    return "en"


class PaddleOCREngine(OCREngine):
    """PaddleOCR wrapper for CPU-only usage.

    One pipeline is built per (language, recognition level) pair and reused.
    ``ACCURATE`` uses the default server models with text-line orientation
    classification, ``FAST`` the lightweight PP-OCRv3 mobile models.
    Custom words, language correction and language auto-detection have no
    PaddleOCR counterpart and are ignored.
    """

    name = "paddle"

    def __init__(self, logger: Optional[Any] = None, padding: int = 20) -> None:
        super().__init__(logger)
        self._padding = padding
        self._pipelines: Dict[Tuple[str, RecognitionLevel], Any] = {}

    def initialize(self, config: Optional[RecognitionConfiguration] = None) -> float:
        """Build the pipeline for ``config`` once and return elapsed seconds."""
        config = config or RecognitionConfiguration()
        key = (paddle_language(config.recognition_languages), config.recognition_level)
        if key in self._pipelines:
            return 0.0

        start = time.perf_counter()
        try:
            import paddle
            from paddleocr import PaddleOCR

            self._set_paddle_flags(paddle)
            paddle.set_device("cpu")
            self._pipelines[key] = PaddleOCR(**self._pipeline_params(*key))
        except Exception as exc:
            raise OCREngineError(f"Failed to initialize PaddleOCR: {exc}") from exc

        elapsed = time.perf_counter() - start
        self._log_info(f"PaddleOCR ({key[0]}, {key[1].value}) initialized in {elapsed:.3f}s")
        return elapsed

    @staticmethod
    def _pipeline_params(lang: str, level: RecognitionLevel) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "lang": lang,
            "use_doc_orientation_classify": False,
            "use_doc_unwarping": False,
        }
        if level is RecognitionLevel.FAST:
            params["ocr_version"] = "PP-OCRv3"
            params["use_textline_orientation"] = False
        else:
            params["use_textline_orientation"] = True
        return params

    def recognize(self, pixels: np.ndarray, config: RecognitionConfiguration) -> List[TextObservation]:
        self.initialize(config)
        key = (paddle_language(config.recognition_languages), config.recognition_level)
        pipeline = self._pipelines[key]

        image_bgr = self._add_padding(cv2.cvtColor(pixels, cv2.COLOR_RGB2BGR))
        start = time.perf_counter()
        try:
            raw = pipeline.predict(image_bgr)
        except Exception as exc:
            raise OCREngineError(f"OCR recognition failed: {exc}") from exc
        elapsed = time.perf_counter() - start

        min_height = config.minimum_text_height * pixels.shape[0]
        observations = [
            TextObservation(text, score)
            for text, score, height in self._extract_lines(raw)
            if height >= min_height
        ]
        self._log_info(f"OCR recognize finished in {elapsed:.3f}s, {len(observations)} lines")
        return observations

    def _add_padding(self, image: np.ndarray) -> np.ndarray:
        """Add a white border to the image to help detect text near edges."""
        if self._padding <= 0:
            return image
        return cv2.copyMakeBorder(
            image,
            self._padding,
            self._padding,
            self._padding,
            self._padding,
            cv2.BORDER_CONSTANT,
            value=[255, 255, 255],
        )

    @staticmethod
    def _extract_lines(raw: Any) -> List[Tuple[str, float, float]]:
        """Flatten the dictionary-based PaddleOCR result into (text, score, height)."""
        if not isinstance(raw, list) or not all(isinstance(page, Mapping) for page in raw):
            raise NoTextFoundError()

        lines: List[Tuple[str, float, float]] = []
        for page in raw:
            texts = page.get("rec_texts") or []
            scores = page.get("rec_scores") or []
            polys = page.get("rec_polys")
            if polys is None:
                polys = [None] * len(texts)
            if len(texts) != len(scores) or len(texts) != len(polys):
                raise NoTextFoundError()
            for text, score, poly in zip(texts, scores, polys):
                height = float("inf")
                if poly is not None and len(poly):
                    ys = [float(point[1]) for point in poly]
                    height = max(ys) - min(ys)
                lines.append((str(text), min(max(float(score), 0.0), 1.0), height))
        return lines

    @staticmethod
    def _set_paddle_flags(paddle_module: Any) -> None:
        flags = {
            "FLAGS_use_mkldnn": False,
            "FLAGS_enable_onednn": False,
            "FLAGS_enable_new_ir": False,
            "FLAGS_enable_new_executor": False,
            "FLAGS_enable_pir_api": False,
            "FLAGS_enable_pir_in_executor": False,
        }
        for name, value in flags.items():
            try:
                paddle_module.set_flags({name: value})
            except Exception:
                # Not every paddle build knows every flag.
                logger.debug("paddle flag %s not supported", name)


TESSERACT_LANGUAGES: Dict[str, str] = {
    "en-US": "eng",
    "fr-FR": "fra",
    "es-ES": "spa",
    "de-DE": "deu",
    "it-IT": "ita",
    "pt-BR": "por",
    "zh-Hans": "chi_sim",
    "zh-Hant": "chi_tra",
    "ja-JP": "jpn",
    "ko-KR": "kor",
}


def tesseract_languages(languages: Sequence[str]) -> str:
    codes: List[str] = []
    for tag in languages:
        code = TESSERACT_LANGUAGES.get(tag)
        if code and code not in codes:
            codes.append(code)
    return "+".join(codes) or "eng"


class TesseractEngine(OCREngine):
    """pytesseract wrapper grouping word boxes into lines.

    Language correction maps to Tesseract's dictionary (``*_dawg``) files,
    custom words to ``--user-words``. ``FAST`` skips page layout analysis by
    treating the image as one uniform block of text.
    """

    name = "tesseract"

    def __init__(self, logger: Optional[Any] = None, tesseract_cmd: Optional[str] = None) -> None:
        super().__init__(logger)
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def initialize(self, config: Optional[RecognitionConfiguration] = None) -> float:
        start = time.perf_counter()
        try:
            version = pytesseract.get_tesseract_version()
        except Exception as exc:
            raise OCREngineError(f"Failed to initialize Tesseract: {exc}") from exc
        elapsed = time.perf_counter() - start
        self._log_info(f"Tesseract {version} available")
        return elapsed

    @staticmethod
    def build_config(config: RecognitionConfiguration, user_words_path: Optional[str] = None) -> str:
        psm = 6 if config.recognition_level is RecognitionLevel.FAST else 3
        options = [f"--oem 1 --psm {psm}"]
        if not config.use_language_correction:
            options.append("-c load_system_dawg=0 -c load_freq_dawg=0")
        if user_words_path:
            options.append(f"--user-words {user_words_path}")
        return " ".join(options)

    def recognize(self, pixels: np.ndarray, config: RecognitionConfiguration) -> List[TextObservation]:
        lang = tesseract_languages(config.recognition_languages)
        user_words_path = None
        start = time.perf_counter()
        try:
            if config.custom_words:
                with tempfile.NamedTemporaryFile("w", suffix=".user-words", delete=False, encoding="utf-8") as handle:
                    handle.write("\n".join(config.custom_words) + "\n")
                    user_words_path = handle.name
            data = pytesseract.image_to_data(
                pixels,
                lang=lang,
                config=self.build_config(config, user_words_path),
                output_type=pytesseract.Output.DICT,
            )
        except Exception as exc:
            raise OCREngineError(f"OCR recognition failed: {exc}") from exc
        finally:
            if user_words_path:
                os.remove(user_words_path)
        elapsed = time.perf_counter() - start

        min_height = config.minimum_text_height * pixels.shape[0]
        observations = [
            TextObservation(text, confidence)
            for text, confidence, height in self.group_lines(data)
            if height >= min_height
        ]
        self._log_info(f"OCR recognize finished in {elapsed:.3f}s, {len(observations)} lines")
        return observations

    @staticmethod
    def group_lines(data: Any) -> List[Tuple[str, float, float]]:
        """Join word entries of ``image_to_data`` into (text, confidence, height) lines."""
        if not isinstance(data, Mapping) or "text" not in data:
            raise NoTextFoundError()

        lines: Dict[Tuple[int, int, int], Dict[str, Any]] = {}
        for i, word in enumerate(data["text"]):
            word = (word or "").strip()
            if not word:
                continue
            try:
                conf = float(data["conf"][i])
            except (KeyError, IndexError, TypeError, ValueError):
                conf = -1.0
            if conf < 0:
                continue
            key = (int(data["block_num"][i]), int(data["par_num"][i]), int(data["line_num"][i]))
            line = lines.setdefault(key, {"words": [], "confs": [], "height": 0.0})
            line["words"].append(word)
            line["confs"].append(conf / 100.0)
            line["height"] = max(line["height"], float(data["height"][i]))

        return [
            (" ".join(line["words"]), min(sum(line["confs"]) / len(line["confs"]), 1.0), line["height"])
            for line in lines.values()
        ]


ENGINES = {
    PaddleOCREngine.name: PaddleOCREngine,
    TesseractEngine.name: TesseractEngine,
}


def create_engine(name: Optional[str] = None, logger: Optional[Any] = None) -> OCREngine:
    """Create the engine named ``name``; ``TEXT_EXTRACTOR_ENGINE`` takes precedence."""
    selected = (os.getenv("TEXT_EXTRACTOR_ENGINE") or name or PaddleOCREngine.name).strip().lower()
    try:
        engine_cls = ENGINES[selected]
    except KeyError:
        raise OCREngineError(
            f"Unknown OCR engine '{selected}'. Supported: {', '.join(sorted(ENGINES))}"
        ) from None
    return engine_cls(logger=logger)

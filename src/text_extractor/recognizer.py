# -*- coding: utf-8 -*-
"""
Recognition invoker and the observable state the UI binds to.

``TextRecognizer`` owns the recognition configuration and the published
result (text, edited text, confidence, processing flag). A recognition runs
image enhancement and the engine on a ``RecognitionWorker`` thread;
completion arrives through the thread's ``finished`` signal, which Qt
delivers on the thread owning the recognizer, so published state only ever
changes there.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Sequence

from PIL import Image
from PySide6.QtCore import QObject, QThread, Signal, Slot

from . import capture, postprocess, preprocess
from .ocr_engine import (
    OCREngine,
    OCRError,
    RecognitionBusyError,
    RecognitionConfiguration,
    RecognitionLevel,
    SUPPORTED_LANGUAGES,
    create_engine,
    normalize_languages,
)
from .postprocess import RecognitionResult
from .settings import (
    KEY_AUTO_DETECT_LANGUAGE,
    KEY_MINIMUM_TEXT_HEIGHT,
    KEY_SELECTED_LANGUAGES,
    KEY_USE_LANGUAGE_CORRECTION,
    MemoryPreferenceStore,
    PreferenceStore,
    read_auto_detect_language,
    read_languages,
    read_minimum_text_height,
    read_use_language_correction,
)

logger = logging.getLogger(__name__)

# Called with (result, None) on success or (None, error) on failure.
Completion = Callable[[Optional[RecognitionResult], Optional[BaseException]], None]


class RecognitionWorker(QThread):
    """Runs preprocessing, the engine call and the reduction off the GUI thread.

    The outcome is left in ``result`` or ``error`` for whoever handles the
    thread's ``finished`` signal.
    """

    def __init__(self, engine: OCREngine, image: Image.Image, config: RecognitionConfiguration, parent=None):
        super().__init__(parent)
        self.engine = engine
        self.image = image
        self.config = config
        self.result: Optional[RecognitionResult] = None
        self.error: Optional[BaseException] = None

    def run(self):
        try:
            processed = preprocess.preprocess_image(self.image)
            pixels = preprocess.to_pixel_buffer(processed)
            observations = self.engine.recognize(pixels, self.config)
            self.result = postprocess.reduce_observations(observations)
        except Exception as exc:
            self.error = exc


class TextRecognizer(QObject):
    extracted_text_changed = Signal(str)
    edited_text_changed = Signal(str)
    confidence_changed = Signal(float)
    processing_changed = Signal(bool)
    languages_changed = Signal(list)
    finished = Signal(object)  # RecognitionResult
    failed = Signal(object)  # exception

    supported_languages = SUPPORTED_LANGUAGES

    def __init__(
        self,
        engine: Optional[OCREngine] = None,
        store: Optional[PreferenceStore] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._store = store if store is not None else MemoryPreferenceStore()
        self._engine = engine

        languages = read_languages(self._store)
        if not self._store.contains(KEY_SELECTED_LANGUAGES):
            self._store.set(KEY_SELECTED_LANGUAGES, list(languages))

        self._config = RecognitionConfiguration(
            minimum_text_height=read_minimum_text_height(self._store),
            recognition_level=RecognitionLevel.ACCURATE,
            use_language_correction=read_use_language_correction(self._store),
            custom_words=[],
            automatically_detects_language=read_auto_detect_language(self._store),
            recognition_languages=languages,
        )

        self._extracted_text = ""
        self._edited_text = ""
        self._confidence = 0.0
        self._is_processing = False
        self._worker: Optional[RecognitionWorker] = None
        self._completion: Optional[Completion] = None

    # -- published state ---------------------------------------------------

    @property
    def extracted_text(self) -> str:
        return self._extracted_text

    @property
    def edited_text(self) -> str:
        return self._edited_text

    @property
    def confidence(self) -> float:
        return self._confidence

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def recognition_languages(self) -> List[str]:
        return list(self._config.recognition_languages)

    @property
    def configuration(self) -> RecognitionConfiguration:
        """A copy; use ``update_configuration`` to change it."""
        return self._config.snapshot()

    @property
    def engine(self) -> OCREngine:
        if self._engine is None:
            self._engine = create_engine()
        return self._engine

    def set_engine(self, engine: OCREngine) -> None:
        """Takes effect from the next recognition; a running one keeps its engine."""
        self._engine = engine

    def set_edited_text(self, text: str) -> None:
        if text != self._edited_text:
            self._edited_text = text
            self.edited_text_changed.emit(text)

    def _set_processing(self, value: bool) -> None:
        if value != self._is_processing:
            self._is_processing = value
            self.processing_changed.emit(value)

    def _publish(self, result: RecognitionResult) -> None:
        self._confidence = result.average_confidence
        self.confidence_changed.emit(self._confidence)
        self._extracted_text = result.combined_text
        self.extracted_text_changed.emit(self._extracted_text)
        self._edited_text = result.combined_text
        self.edited_text_changed.emit(self._edited_text)

    # -- configuration -----------------------------------------------------

    def set_recognition_languages(self, languages: Sequence[str]) -> None:
        languages = normalize_languages(languages)
        self._config.update(recognition_languages=languages)
        self._store.set(KEY_SELECTED_LANGUAGES, list(languages))
        self.languages_changed.emit(list(languages))

    def update_configuration(
        self,
        minimum_text_height: Optional[float] = None,
        recognition_level: Optional[RecognitionLevel] = None,
        use_language_correction: Optional[bool] = None,
        custom_words: Optional[Sequence[str]] = None,
        automatically_detects_language: Optional[bool] = None,
    ) -> None:
        """Partial update. Height, correction and auto-detect are also persisted."""
        self._config.update(
            minimum_text_height=minimum_text_height,
            recognition_level=recognition_level,
            use_language_correction=use_language_correction,
            custom_words=custom_words,
            automatically_detects_language=automatically_detects_language,
        )
        if minimum_text_height is not None:
            self._store.set(KEY_MINIMUM_TEXT_HEIGHT, self._config.minimum_text_height)
        if use_language_correction is not None:
            self._store.set(KEY_USE_LANGUAGE_CORRECTION, self._config.use_language_correction)
        if automatically_detects_language is not None:
            self._store.set(KEY_AUTO_DETECT_LANGUAGE, self._config.automatically_detects_language)

    # -- recognition -------------------------------------------------------

    def recognize_text(self, image: Any, completion: Optional[Completion] = None) -> bool:
        """Start recognizing ``image``.

        Decoding happens here; enhancement and the engine call run on the
        worker. Returns True when the worker was started. Every outcome,
        including failures detected before dispatch, is reported through
        ``finished``/``failed`` and ``completion``.
        """
        if self._is_processing:
            self._report_failure(RecognitionBusyError(), completion)
            return False

        try:
            source = capture.load_image(image)
            preprocess.ensure_pixels(source)
            engine = self.engine
        except OCRError as exc:
            logger.warning("Recognition not started: %s", exc)
            self._report_failure(exc, completion)
            return False

        config = self._config.snapshot()
        logger.info(
            "Recognizing %dx%d image (%s, languages=%s)",
            source.width,
            source.height,
            config.recognition_level.value,
            ",".join(config.recognition_languages),
        )
        self._completion = completion
        self._set_processing(True)
        self._worker = RecognitionWorker(engine, source, config, parent=self)
        self._worker.finished.connect(self._on_worker_finished)
        self._worker.start()
        return True

    @Slot()
    def _on_worker_finished(self):
        worker, self._worker = self._worker, None
        completion, self._completion = self._completion, None
        if worker is None:
            return
        worker.wait()
        worker.deleteLater()

        if worker.error is not None:
            logger.warning("Recognition failed: %s", worker.error)
            self._set_processing(False)
            self.failed.emit(worker.error)
            if completion is not None:
                completion(None, worker.error)
            return

        result = worker.result
        self._publish(result)
        self._set_processing(False)
        logger.info(
            "Recognized %d line(s), average confidence %s",
            len(result.combined_text.splitlines()),
            postprocess.format_confidence(result.average_confidence),
        )
        self.finished.emit(result)
        if completion is not None:
            completion(result, None)

    def _report_failure(self, error: BaseException, completion: Optional[Completion]) -> None:
        self.failed.emit(error)
        if completion is not None:
            completion(None, error)

    def shutdown(self, msecs: int = 10000) -> bool:
        """Block until a running recognition ends (there is no cancellation)."""
        if self._worker is None:
            return True
        return self._worker.wait(msecs)

# -*- coding: utf-8 -*-
"""
Tests for TextRecognizer (recognizer.py).

The engine is the scripted fake from conftest.py, so every test drives the real
pipeline (decode, preprocess, worker thread, reduction) without a model.
"""

import io
import threading
from unittest.mock import patch

import pytest
from PIL import Image, ImageDraw

from text_extractor import preprocess
from text_extractor.ocr_engine import (
    ImageProcessingFailedError,
    InvalidImageError,
    OCREngineError,
    RecognitionBusyError,
    RecognitionLevel,
    TextObservation,
)
from text_extractor.postprocess import RecognitionResult
from text_extractor.recognizer import TextRecognizer
from text_extractor.settings import (
    KEY_AUTO_DETECT_LANGUAGE,
    KEY_MINIMUM_TEXT_HEIGHT,
    KEY_SELECTED_LANGUAGES,
    MemoryPreferenceStore,
)


@pytest.fixture
def sample_image():
    image = Image.new("RGB", (160, 80), "white")
    ImageDraw.Draw(image).text((10, 30), "Hello", fill="black")
    return image


@pytest.fixture
def store():
    return MemoryPreferenceStore()


@pytest.fixture
def recognizer_factory(qtbot, scripted_engine):
    created = []

    def factory(engine=None, store=None):
        engine = engine if engine is not None else scripted_engine()
        recognizer = TextRecognizer(engine=engine, store=store if store is not None else MemoryPreferenceStore())
        created.append(recognizer)
        return recognizer

    yield factory
    for recognizer in created:
        recognizer.shutdown()


# --- configuration and preferences ---


def test_initial_state(recognizer_factory, store):
    recognizer = recognizer_factory(store=store)
    assert recognizer.extracted_text == ""
    assert recognizer.edited_text == ""
    assert recognizer.confidence == 0.0
    assert not recognizer.is_processing
    assert recognizer.recognition_languages == ["en-US"]
    assert recognizer.configuration.recognition_level is RecognitionLevel.ACCURATE
    assert "ko-KR" in recognizer.supported_languages


def test_default_languages_are_persisted(recognizer_factory, store):
    recognizer_factory(store=store)
    assert store.get(KEY_SELECTED_LANGUAGES) == ["en-US"]


def test_stored_languages_are_restored(recognizer_factory, store):
    store.set(KEY_SELECTED_LANGUAGES, ["fr-FR", "de-DE"])
    recognizer = recognizer_factory(store=store)
    assert recognizer.recognition_languages == ["fr-FR", "de-DE"]


def test_set_recognition_languages_persists(qtbot, recognizer_factory, store):
    recognizer = recognizer_factory(store=store)
    with qtbot.waitSignal(recognizer.languages_changed) as blocker:
        recognizer.set_recognition_languages(["ja-JP", "ja-JP", ""])
    assert blocker.args == [["ja-JP"]]
    assert store.get(KEY_SELECTED_LANGUAGES) == ["ja-JP"]
    assert recognizer_factory(store=store).recognition_languages == ["ja-JP"]


def test_empty_language_list_falls_back(recognizer_factory, store):
    recognizer = recognizer_factory(store=store)
    recognizer.set_recognition_languages([])
    assert recognizer.recognition_languages == ["en-US"]


def test_partial_configuration_update(recognizer_factory, store):
    recognizer = recognizer_factory(store=store)
    recognizer.update_configuration(recognition_level=RecognitionLevel.FAST, custom_words=["Qt"])
    recognizer.update_configuration(minimum_text_height=0.2)

    config = recognizer.configuration
    assert config.recognition_level is RecognitionLevel.FAST
    assert config.custom_words == ["Qt"]
    assert config.minimum_text_height == 0.2
    assert config.use_language_correction
    assert store.get(KEY_MINIMUM_TEXT_HEIGHT) == 0.2
    assert store.get(KEY_AUTO_DETECT_LANGUAGE) is None


def test_invalid_height_update_is_rejected(recognizer_factory, store):
    recognizer = recognizer_factory(store=store)
    with pytest.raises(ValueError):
        recognizer.update_configuration(minimum_text_height=0)
    assert recognizer.configuration.minimum_text_height == 0.1
    assert store.get(KEY_MINIMUM_TEXT_HEIGHT) is None


def test_configuration_is_a_copy(recognizer_factory):
    recognizer = recognizer_factory()
    recognizer.configuration.custom_words.append("leak")
    assert recognizer.configuration.custom_words == []


# --- recognition ---


def test_recognize_publishes_result(qtbot, recognizer_factory, two_line_engine, sample_image):
    recognizer = recognizer_factory(two_line_engine)
    completions = []

    with qtbot.waitSignal(recognizer.finished, timeout=10000) as blocker:
        started = recognizer.recognize_text(sample_image, lambda result, error: completions.append((result, error)))

    assert started
    result = blocker.args[0]
    assert isinstance(result, RecognitionResult)
    assert result.combined_text == "high line\nlow line"
    assert result.average_confidence == pytest.approx(0.675)
    assert recognizer.extracted_text == "high line\nlow line"
    assert recognizer.edited_text == recognizer.extracted_text
    assert recognizer.confidence == pytest.approx(0.675)
    assert not recognizer.is_processing
    assert completions == [(result, None)]
    assert len(two_line_engine.calls) == 1


def test_engine_receives_rgb_pixels_and_configuration(qtbot, recognizer_factory, scripted_engine, sample_image):
    engine = scripted_engine([TextObservation("x", 0.5)])
    recognizer = recognizer_factory(engine)
    recognizer.update_configuration(custom_words=["Hello"])

    with qtbot.waitSignal(recognizer.finished, timeout=10000):
        recognizer.recognize_text(sample_image)

    shape, config = engine.calls[0]
    assert shape == (80, 160, 3)
    assert config.custom_words == ["Hello"]


def test_processing_flag_toggles(qtbot, recognizer_factory, two_line_engine, sample_image):
    recognizer = recognizer_factory(two_line_engine)
    states = []
    recognizer.processing_changed.connect(states.append)

    with qtbot.waitSignal(recognizer.finished, timeout=10000):
        recognizer.recognize_text(sample_image)
        assert recognizer.is_processing

    assert states == [True, False]


def test_result_is_delivered_on_gui_thread(qtbot, recognizer_factory, two_line_engine, sample_image):
    recognizer = recognizer_factory(two_line_engine)
    threads = []
    recognizer.extracted_text_changed.connect(lambda _: threads.append(threading.current_thread()))

    with qtbot.waitSignal(recognizer.finished, timeout=10000):
        recognizer.recognize_text(sample_image)

    assert threads == [threading.main_thread()]


def test_encoded_bytes_are_accepted(qtbot, recognizer_factory, two_line_engine, sample_image):
    buffer = io.BytesIO()
    sample_image.save(buffer, format="PNG")
    recognizer = recognizer_factory(two_line_engine)

    with qtbot.waitSignal(recognizer.finished, timeout=10000):
        assert recognizer.recognize_text(buffer.getvalue())


def test_no_text_is_an_empty_success(qtbot, recognizer_factory, scripted_engine, sample_image):
    recognizer = recognizer_factory(scripted_engine([]))
    with qtbot.waitSignal(recognizer.finished, timeout=10000) as blocker:
        recognizer.recognize_text(sample_image)
    assert blocker.args[0] == RecognitionResult("", 0.0)
    assert recognizer.extracted_text == ""
    assert recognizer.confidence == 0.0


def test_undecodable_image_never_reaches_engine(qtbot, recognizer_factory, two_line_engine):
    recognizer = recognizer_factory(two_line_engine)
    completions = []

    with qtbot.waitSignal(recognizer.failed) as blocker:
        started = recognizer.recognize_text(b"definitely not an image", lambda *args: completions.append(args))

    assert not started
    assert isinstance(blocker.args[0], InvalidImageError)
    assert completions == [(None, blocker.args[0])]
    assert two_line_engine.calls == []
    assert not recognizer.is_processing


def test_empty_image_fails_processing(qtbot, recognizer_factory, two_line_engine):
    recognizer = recognizer_factory(two_line_engine)
    with qtbot.waitSignal(recognizer.failed) as blocker:
        recognizer.recognize_text(Image.new("RGB", (0, 0)))
    assert isinstance(blocker.args[0], ImageProcessingFailedError)
    assert two_line_engine.calls == []


def test_engine_error_is_propagated_unchanged(qtbot, recognizer_factory, scripted_engine, sample_image):
    engine = scripted_engine([TextObservation("kept", 0.9)])
    recognizer = recognizer_factory(engine)
    with qtbot.waitSignal(recognizer.finished, timeout=10000):
        recognizer.recognize_text(sample_image)

    error = OCREngineError("model exploded")
    engine.error = error
    completions = []
    with qtbot.waitSignal(recognizer.failed, timeout=10000) as blocker:
        recognizer.recognize_text(sample_image, lambda *args: completions.append(args))

    assert blocker.args[0] is error
    assert completions == [(None, error)]
    assert recognizer.extracted_text == "kept"
    assert recognizer.confidence == pytest.approx(0.9)
    assert not recognizer.is_processing


def test_overlapping_call_is_rejected(qtbot, recognizer_factory, scripted_engine, gate, sample_image):
    engine = scripted_engine([TextObservation("first", 0.8)], gate=gate)
    recognizer = recognizer_factory(engine)

    assert recognizer.recognize_text(sample_image)
    with qtbot.waitSignal(recognizer.failed) as blocker:
        assert not recognizer.recognize_text(sample_image)
    assert isinstance(blocker.args[0], RecognitionBusyError)
    assert recognizer.is_processing

    with qtbot.waitSignal(recognizer.finished, timeout=10000):
        gate.set()

    assert recognizer.extracted_text == "first"
    assert len(engine.calls) == 1


def test_edited_text_is_independent(qtbot, recognizer_factory, two_line_engine, sample_image):
    recognizer = recognizer_factory(two_line_engine)
    with qtbot.waitSignal(recognizer.finished, timeout=10000):
        recognizer.recognize_text(sample_image)

    with qtbot.waitSignal(recognizer.edited_text_changed):
        recognizer.set_edited_text("my correction")
    assert recognizer.edited_text == "my correction"
    assert recognizer.extracted_text == "high line\nlow line"

    with qtbot.waitSignal(recognizer.finished, timeout=10000):
        recognizer.recognize_text(sample_image)
    assert recognizer.edited_text == "high line\nlow line"


def test_enhancement_runs_on_the_worker(qtbot, recognizer_factory, two_line_engine, gate, sample_image):
    recognizer = recognizer_factory(two_line_engine)
    enhance = preprocess.preprocess_image
    threads = []

    def held_preprocess(image):
        threads.append(threading.current_thread())
        gate.wait(5)
        return enhance(image)

    with patch("text_extractor.preprocess.preprocess_image", side_effect=held_preprocess):
        assert recognizer.recognize_text(sample_image)
        assert recognizer.is_processing
        assert two_line_engine.calls == []
        with qtbot.waitSignal(recognizer.finished, timeout=10000):
            gate.set()

    assert len(threads) == 1
    assert threads[0] is not threading.main_thread()
    assert recognizer.extracted_text == "high line\nlow line"


def test_enhancement_failure_is_reported(qtbot, recognizer_factory, two_line_engine, sample_image):
    recognizer = recognizer_factory(two_line_engine)
    error = ImageProcessingFailedError("filter crashed")
    with patch("text_extractor.preprocess.preprocess_image", side_effect=error):
        with qtbot.waitSignal(recognizer.failed, timeout=10000) as blocker:
            assert recognizer.recognize_text(sample_image)
    assert blocker.args[0] is error
    assert two_line_engine.calls == []
    assert not recognizer.is_processing

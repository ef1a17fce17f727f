# -*- coding: utf-8 -*-
"""
Unit tests for ocr_engine.py.

The PaddleOCR pipeline and the tesseract binary are replaced by fakes, so
these tests check configuration handling and result parsing only.
"""

import logging
import os
import unittest
from unittest.mock import MagicMock, patch

import numpy as np

from text_extractor.ocr_engine import (
    NoTextFoundError,
    OCREngineError,
    OCRError,
    PaddleOCREngine,
    RecognitionBusyError,
    RecognitionConfiguration,
    RecognitionLevel,
    TesseractEngine,
    create_engine,
    normalize_languages,
    paddle_language,
    tesseract_languages,
)


def box(height, top=0):
    return np.array([[0, top], [50, top], [50, top + height], [0, top + height]])


class TestRecognitionConfiguration(unittest.TestCase):

    def test_defaults(self):
        config = RecognitionConfiguration()
        self.assertEqual(config.minimum_text_height, 0.1)
        self.assertIs(config.recognition_level, RecognitionLevel.ACCURATE)
        self.assertTrue(config.use_language_correction)
        self.assertEqual(config.custom_words, [])
        self.assertTrue(config.automatically_detects_language)
        self.assertEqual(config.recognition_languages, ["en-US"])

    def test_partial_update_keeps_other_fields(self):
        config = RecognitionConfiguration(recognition_languages=["fr-FR"], custom_words=["Qt"])
        config.update(minimum_text_height=0.05)
        self.assertEqual(config.minimum_text_height, 0.05)
        self.assertIs(config.recognition_level, RecognitionLevel.ACCURATE)
        self.assertEqual(config.custom_words, ["Qt"])
        self.assertEqual(config.recognition_languages, ["fr-FR"])

    def test_update_level_from_string(self):
        config = RecognitionConfiguration()
        config.update(recognition_level="fast")
        self.assertIs(config.recognition_level, RecognitionLevel.FAST)

    def test_invalid_height_is_rejected(self):
        config = RecognitionConfiguration()
        for height in (0, -0.2, 1.5):
            with self.assertRaises(ValueError):
                config.update(minimum_text_height=height)
        self.assertEqual(config.minimum_text_height, 0.1)

    def test_snapshot_is_independent(self):
        config = RecognitionConfiguration()
        copy = config.snapshot()
        copy.custom_words.append("word")
        copy.recognition_languages.append("de-DE")
        self.assertEqual(config.custom_words, [])
        self.assertEqual(config.recognition_languages, ["en-US"])

    def test_normalize_languages(self):
        self.assertEqual(normalize_languages([" fr-FR", "", "fr-FR", "de-DE"]), ["fr-FR", "de-DE"])
        self.assertEqual(normalize_languages([]), ["en-US"])
        self.assertEqual(normalize_languages(None), ["en-US"])


class TestErrors(unittest.TestCase):

    def test_default_messages(self):
        self.assertEqual(str(NoTextFoundError()), "No text was found in the image")
        self.assertEqual(str(RecognitionBusyError()), "A recognition is already in progress")
        self.assertEqual(str(OCREngineError("boom")), "boom")

    def test_hierarchy(self):
        self.assertTrue(issubclass(OCREngineError, OCRError))
        self.assertTrue(issubclass(OCRError, RuntimeError))


class TestPaddleOCREngine(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.logger = logging.getLogger("ocr_engine_test")

    def _engine_with_pipeline(self, pages, level=RecognitionLevel.ACCURATE):
        engine = PaddleOCREngine(logger=self.logger)
        pipeline = MagicMock()
        pipeline.predict.return_value = pages
        engine._pipelines[("en", level)] = pipeline
        return engine, pipeline

    def test_language_mapping(self):
        self.assertEqual(paddle_language(["en-US"]), "en")
        self.assertEqual(paddle_language(["xx-XX", "ja-JP"]), "japan")
        self.assertEqual(paddle_language(["de-AT"]), "german")
        self.assertEqual(paddle_language(["xx-XX"]), "en")

    def test_pipeline_params_per_level(self):
        accurate = PaddleOCREngine._pipeline_params("en", RecognitionLevel.ACCURATE)
        fast = PaddleOCREngine._pipeline_params("en", RecognitionLevel.FAST)
        self.assertTrue(accurate["use_textline_orientation"])
        self.assertNotIn("ocr_version", accurate)
        self.assertEqual(fast["ocr_version"], "PP-OCRv3")
        self.assertFalse(fast["use_textline_orientation"])

    def test_recognize_filters_short_lines(self):
        pages = [{
            "rec_texts": ["Heading", "footnote"],
            "rec_scores": [0.93, 0.88],
            "rec_polys": [box(30), box(5, top=60)],
        }]
        engine, pipeline = self._engine_with_pipeline(pages)
        pixels = np.zeros((100, 200, 3), dtype=np.uint8)

        observations = engine.recognize(pixels, RecognitionConfiguration(minimum_text_height=0.1))

        self.assertEqual([o.text for o in observations], ["Heading"])
        self.assertAlmostEqual(observations[0].confidence, 0.93)
        padded = pipeline.predict.call_args[0][0]
        self.assertEqual(padded.shape, (140, 240, 3))

    def test_recognize_keeps_engine_order(self):
        pages = [{"rec_texts": ["one", "two"], "rec_scores": [0.2, 0.9], "rec_polys": [box(40), box(40)]}]
        engine, _ = self._engine_with_pipeline(pages)
        observations = engine.recognize(np.zeros((100, 100, 3), dtype=np.uint8), RecognitionConfiguration())
        self.assertEqual([o.text for o in observations], ["one", "two"])

    def test_recognize_wraps_pipeline_errors(self):
        engine, pipeline = self._engine_with_pipeline([])
        pipeline.predict.side_effect = RuntimeError("model crashed")
        with self.assertRaises(OCREngineError):
            engine.recognize(np.zeros((10, 10, 3), dtype=np.uint8), RecognitionConfiguration())

    def test_extract_lines_clamps_scores(self):
        lines = PaddleOCREngine._extract_lines([{"rec_texts": ["x"], "rec_scores": [1.3], "rec_polys": [box(12)]}])
        self.assertEqual(lines, [("x", 1.0, 12.0)])

    def test_extract_lines_without_polygons(self):
        lines = PaddleOCREngine._extract_lines([{"rec_texts": ["x"], "rec_scores": [0.5]}])
        self.assertEqual(lines[0][:2], ("x", 0.5))
        self.assertEqual(lines[0][2], float("inf"))

    def test_extract_lines_empty_page(self):
        self.assertEqual(PaddleOCREngine._extract_lines([{"rec_texts": [], "rec_scores": []}]), [])

    def test_extract_lines_rejects_malformed_output(self):
        with self.assertRaises(NoTextFoundError):
            PaddleOCREngine._extract_lines(None)
        with self.assertRaises(NoTextFoundError):
            PaddleOCREngine._extract_lines(["not a page"])
        with self.assertRaises(NoTextFoundError):
            PaddleOCREngine._extract_lines([{"rec_texts": ["a", "b"], "rec_scores": [0.5]}])

    @patch.dict("sys.modules", {"paddle": None})
    def test_initialize_failure_is_engine_error(self):
        engine = PaddleOCREngine(logger=self.logger)
        with self.assertRaises(OCREngineError):
            engine.initialize()


class TestTesseractEngine(unittest.TestCase):

    DATA = {
        "text": ["Hello", "world", "", "Second", "   ", "noise"],
        "conf": [96, 90, -1, 80, -1, -1],
        "block_num": [1, 1, 1, 1, 1, 1],
        "par_num": [1, 1, 1, 1, 1, 1],
        "line_num": [1, 1, 1, 2, 2, 2],
        "height": [20, 22, 0, 4, 0, 10],
    }

    def test_language_mapping(self):
        self.assertEqual(tesseract_languages(["en-US", "de-DE", "en-US"]), "eng+deu")
        self.assertEqual(tesseract_languages(["xx-XX"]), "eng")

    def test_build_config(self):
        config = RecognitionConfiguration()
        self.assertEqual(TesseractEngine.build_config(config), "--oem 1 --psm 3")

        config.update(recognition_level=RecognitionLevel.FAST, use_language_correction=False)
        options = TesseractEngine.build_config(config, "/tmp/words.txt")
        self.assertIn("--psm 6", options)
        self.assertIn("-c load_system_dawg=0 -c load_freq_dawg=0", options)
        self.assertTrue(options.endswith("--user-words /tmp/words.txt"))

    def test_group_lines(self):
        lines = TesseractEngine.group_lines(self.DATA)
        self.assertEqual(len(lines), 2)
        text, confidence, height = lines[0]
        self.assertEqual(text, "Hello world")
        self.assertAlmostEqual(confidence, 0.93)
        self.assertEqual(height, 22.0)
        self.assertEqual(lines[1][0], "Second")

    def test_group_lines_rejects_malformed_output(self):
        with self.assertRaises(NoTextFoundError):
            TesseractEngine.group_lines("garbage")

    @patch("text_extractor.ocr_engine.pytesseract.image_to_data")
    def test_recognize(self, mock_image_to_data):
        seen = {}

        def fake_image_to_data(pixels, lang, config, output_type):
            path = config.split("--user-words ")[1]
            with open(path, encoding="utf-8") as f:
                seen["words"] = f.read().split()
            seen["path"] = path
            seen["lang"] = lang
            return self.DATA

        mock_image_to_data.side_effect = fake_image_to_data
        config = RecognitionConfiguration(custom_words=["PySide6", "OCR"], recognition_languages=["fr-FR"])

        observations = TesseractEngine().recognize(np.zeros((100, 100, 3), dtype=np.uint8), config)

        # "Second" is only 4px tall, below 10% of the image height.
        self.assertEqual([o.text for o in observations], ["Hello world"])
        self.assertEqual(seen["lang"], "fra")
        self.assertEqual(seen["words"], ["PySide6", "OCR"])
        self.assertFalse(os.path.exists(seen["path"]))

    @patch("text_extractor.ocr_engine.pytesseract.image_to_data", side_effect=OSError("tesseract missing"))
    def test_recognize_wraps_errors(self, _mock):
        with self.assertRaises(OCREngineError):
            TesseractEngine().recognize(np.zeros((10, 10, 3), dtype=np.uint8), RecognitionConfiguration())


class TestCreateEngine(unittest.TestCase):

    @patch.dict(os.environ, {}, clear=False)
    def test_by_name(self):
        os.environ.pop("TEXT_EXTRACTOR_ENGINE", None)
        self.assertIsInstance(create_engine(), PaddleOCREngine)
        self.assertIsInstance(create_engine("Tesseract"), TesseractEngine)

    @patch.dict(os.environ, {"TEXT_EXTRACTOR_ENGINE": "tesseract"})
    def test_environment_takes_precedence(self):
        self.assertIsInstance(create_engine("paddle"), TesseractEngine)

    @patch.dict(os.environ, {}, clear=False)
    def test_unknown_engine(self):
        os.environ.pop("TEXT_EXTRACTOR_ENGINE", None)
        with self.assertRaises(OCREngineError) as ctx:
            create_engine("easyocr")
        self.assertIn("paddle, tesseract", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()

# -*- coding: utf-8 -*-
"""Shared test helpers: Qt runs headless and engines are scripted."""

import os
import threading

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from text_extractor.ocr_engine import OCREngine, TextObservation


class ScriptedEngine(OCREngine):
    """Returns canned observations (or raises) and records every call."""

    name = "scripted"

    def __init__(self, observations=None, error=None, gate=None):
        super().__init__()
        self.observations = list(observations or [])
        self.error = error
        self.gate = gate
        self.calls = []

    def recognize(self, pixels, config):
        self.calls.append((pixels.shape, config))
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return list(self.observations)


@pytest.fixture
def two_line_engine():
    return ScriptedEngine([TextObservation("low line", 0.4), TextObservation("high line", 0.95)])


@pytest.fixture
def gate():
    event = threading.Event()
    yield event
    event.set()


@pytest.fixture
def scripted_engine():
    return ScriptedEngine

# -*- coding: utf-8 -*-
"""Image sources: files, raw bytes, the camera and a screen region picker."""

from __future__ import annotations

import enum
import io
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError
from PySide6.QtCore import QBuffer, QByteArray, QIODevice, QPoint, QRect, Qt, Signal
from PySide6.QtGui import QColor, QGuiApplication, QImage, QPainter, QPen
from PySide6.QtWidgets import QApplication, QWidget

from .ocr_engine import InvalidImageError

logger = logging.getLogger(__name__)

IMAGE_FILE_FILTER = "Images (*.png *.jpg *.jpeg *.bmp *.tif *.tiff *.webp *.gif)"


class ImageSource(str, enum.Enum):
    CAMERA = "camera"
    PHOTO_LIBRARY = "photo_library"
    SCREEN = "screen"

    @property
    def title(self) -> str:
        return {
            ImageSource.CAMERA: "Camera",
            ImageSource.PHOTO_LIBRARY: "Photo Library",
            ImageSource.SCREEN: "Screen Region",
        }[self]


def load_image(source: Any) -> Image.Image:
    """Decode ``source`` into a fully loaded PIL image.

    Accepts a PIL image, a file path, encoded bytes, a QImage or a numpy array
    (RGB, RGBA or greyscale). Raises InvalidImageError when nothing usable
    can be decoded.
    """
    if isinstance(source, Image.Image):
        return source
    if isinstance(source, QImage):
        return qimage_to_pil(source)
    if isinstance(source, np.ndarray):
        try:
            return Image.fromarray(source)
        except (TypeError, ValueError) as exc:
            raise InvalidImageError(f"Unsupported pixel array: {exc}") from exc
    if isinstance(source, (bytes, bytearray)):
        stream: Any = io.BytesIO(bytes(source))
    elif isinstance(source, (str, Path)):
        stream = str(source)
    else:
        raise InvalidImageError(f"Unsupported image type: {type(source).__name__}")

    try:
        with Image.open(stream) as image:
            image.load()
            return image.copy()
    except (FileNotFoundError, UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise InvalidImageError(f"Could not decode image: {exc}") from exc


def qimage_to_pil(qimage: QImage) -> Image.Image:
    """Convert a QImage through an in-memory PNG, which keeps alpha and colour space."""
    if qimage.isNull():
        raise InvalidImageError("Captured image is empty")
    data = QByteArray()
    buffer = QBuffer(data)
    buffer.open(QIODevice.WriteOnly)
    try:
        if not qimage.save(buffer, "PNG"):
            raise InvalidImageError("Could not encode captured image")
    finally:
        buffer.close()
    return load_image(bytes(data))


def capture_camera_frame(device_index: int = 0, warmup_frames: int = 5) -> Image.Image:
    """Grab one frame from a camera with OpenCV.

    A few frames are discarded first so auto exposure can settle.
    """
    camera = cv2.VideoCapture(device_index)
    try:
        if not camera.isOpened():
            raise InvalidImageError(f"Camera {device_index} is not available")
        frame = None
        for _ in range(max(warmup_frames, 0) + 1):
            ok, grabbed = camera.read()
            if ok:
                frame = grabbed
        if frame is None:
            raise InvalidImageError(f"Camera {device_index} returned no frame")
    finally:
        camera.release()
    logger.info("Captured %dx%d frame from camera %d", frame.shape[1], frame.shape[0], device_index)
    return Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))


class CaptureWindow(QWidget):
    """
    A semi-transparent full-desktop overlay for picking a screen region.
    Emits 'region_captured' with the selected QImage, or 'capture_cancelled'
    on Esc or when the selection is too small.
    """
    region_captured = Signal(QImage)
    capture_cancelled = Signal()

    MIN_SELECTION = 5

    def __init__(self):
        super().__init__()
        self.setWindowFlags(Qt.FramelessWindowHint | Qt.WindowStaysOnTopHint)
        self.setAttribute(Qt.WA_TranslucentBackground)
        self.setCursor(Qt.CrossCursor)

        screen = QGuiApplication.primaryScreen()
        geometry = screen.virtualGeometry()
        self.setGeometry(geometry)
        self._background = screen.grabWindow(
            0, geometry.x(), geometry.y(), geometry.width(), geometry.height()
        )

        self._is_selecting = False
        self._start_point = None
        self._end_point = None

    def keyPressEvent(self, event):
        if event.key() == Qt.Key_Escape:
            self.capture_cancelled.emit()
            self.close()
            event.accept()

    def mousePressEvent(self, event):
        if event.button() == Qt.LeftButton:
            self._is_selecting = True
            self._start_point = event.position().toPoint()
            self._end_point = self._start_point
            self.update()
            event.accept()

    def mouseMoveEvent(self, event):
        if self._is_selecting:
            self._end_point = event.position().toPoint()
            self.update()
            event.accept()

    def mouseReleaseEvent(self, event):
        if event.button() != Qt.LeftButton or not self._is_selecting:
            return
        self._is_selecting = False
        self._end_point = event.position().toPoint()
        self.close()

        selection = self.selection_rect()
        if selection.width() > self.MIN_SELECTION and selection.height() > self.MIN_SELECTION:
            # Grabbed pixmap is in physical pixels on high-DPI screens.
            dpr = self._background.devicePixelRatio()
            physical = QRect(
                int(selection.x() * dpr),
                int(selection.y() * dpr),
                int(selection.width() * dpr),
                int(selection.height() * dpr),
            )
            self.region_captured.emit(self._background.copy(physical).toImage())
        else:
            self.capture_cancelled.emit()
        event.accept()

    def paintEvent(self, event):
        painter = QPainter(self)
        painter.fillRect(self.rect(), QColor(0, 0, 0, 120))
        if self._is_selecting:
            selection = self.selection_rect()
            painter.setCompositionMode(QPainter.CompositionMode_Clear)
            painter.fillRect(selection, Qt.transparent)
            painter.setCompositionMode(QPainter.CompositionMode_SourceOver)
            painter.setPen(QPen(QColor(128, 0, 128), 2))
            painter.drawRect(selection)

    def selection_rect(self) -> QRect:
        if self._start_point is None or self._end_point is None:
            return QRect()
        start, end = self._start_point, self._end_point
        # Inclusive corners, so both drag directions select the same pixels.
        top_left = QPoint(min(start.x(), end.x()), min(start.y(), end.y()))
        bottom_right = QPoint(max(start.x(), end.x()), max(start.y(), end.y()))
        return QRect(top_left, bottom_right)


def main():
    """Pick a region and save it to 'capture_test.png'."""
    app = QApplication(sys.argv)
    window = CaptureWindow()

    def on_captured(image: QImage):
        load_image(image).save("capture_test.png")
        print("Saved captured image to capture_test.png")
        app.quit()

    window.region_captured.connect(on_captured)
    window.capture_cancelled.connect(app.quit)
    window.show()
    sys.exit(app.exec())


if __name__ == '__main__':
    main()

# -*- coding: utf-8 -*-
"""Main GUI application for Text Extractor."""

from __future__ import annotations

import argparse
import io
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from PySide6.QtCore import QObject, Qt, QTimer, Signal, Slot
from PySide6.QtGui import QAction, QColor, QImage, QKeySequence, QPalette, QPixmap
from PySide6.QtWidgets import (
    QApplication,
    QFileDialog,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QProgressBar,
    QPushButton,
    QScrollArea,
    QSplitter,
    QStackedWidget,
    QTabWidget,
    QTextBrowser,
    QVBoxLayout,
    QWidget,
)

from . import __version__, capture, formatting, postprocess
from .dialogs import CONFIDENCE_COLORS, FormattingDialog, OCRSettingsDialog
from .ocr_engine import OCREngine, OCREngineError, OCRError, create_engine
from .postprocess import RecognitionResult
from .recognizer import TextRecognizer
from .settings import DEFAULT_ENGINE, KEY_ENGINE, JsonPreferenceStore, OCRSettings, PreferenceStore

logger = logging.getLogger(__name__)

PREVIEW_LINES = 8


class LogEmitter(QObject):
    message = Signal(str)


class QtLogHandler(logging.Handler):
    """Forwards log records to a QPlainTextEdit.

    Records may come from the recognition thread, so they travel through a
    signal and are appended on the GUI thread.
    """

    def __init__(self, widget: QPlainTextEdit, level=logging.INFO):
        super().__init__(level)
        self.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        self.emitter = LogEmitter()
        self.emitter.message.connect(widget.appendPlainText)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.emitter.message.emit(self.format(record))
        except RuntimeError:
            # Widget already destroyed during shutdown.
            pass


def pil_to_pixmap(image) -> QPixmap:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    pixmap = QPixmap()
    pixmap.loadFromData(buffer.getvalue(), "PNG")
    return pixmap


def dark_palette() -> QPalette:
    palette = QPalette()
    base = QColor(45, 45, 48)
    palette.setColor(QPalette.Window, base)
    palette.setColor(QPalette.WindowText, Qt.white)
    palette.setColor(QPalette.Base, QColor(30, 30, 30))
    palette.setColor(QPalette.AlternateBase, base)
    palette.setColor(QPalette.Text, Qt.white)
    palette.setColor(QPalette.Button, base)
    palette.setColor(QPalette.ButtonText, Qt.white)
    palette.setColor(QPalette.ToolTipBase, Qt.white)
    palette.setColor(QPalette.ToolTipText, Qt.white)
    palette.setColor(QPalette.Highlight, QColor(128, 0, 128))
    palette.setColor(QPalette.HighlightedText, Qt.white)
    return palette


class MainWindow(QMainWindow):
    """Main application window."""

    def __init__(
        self,
        recognizer: Optional[TextRecognizer] = None,
        store: Optional[PreferenceStore] = None,
        engine: Optional[OCREngine] = None,
    ):
        super().__init__()
        self.setWindowTitle("Text Extractor")
        self.setGeometry(100, 100, 1200, 800)

        self.store = store if store is not None else JsonPreferenceStore()
        self.recognizer = recognizer or TextRecognizer(engine=engine, store=self.store, parent=self)
        self.settings = OCRSettings.load(self.store, self.recognizer.recognition_languages)
        if engine is None and recognizer is None:
            self.recognizer.set_engine(self._create_engine(self.settings.engine))

        self.text_style = formatting.TextStyle()
        self.is_editing = False
        self.capture_window: Optional[capture.CaptureWindow] = None

        self._init_ui()
        self._init_menu()
        self._connect_recognizer()
        self.apply_appearance(self.settings.dark_mode)

    # -- layout ------------------------------------------------------------

    def _init_ui(self):
        central_widget = QWidget()
        self.setCentralWidget(central_widget)

        main_splitter = QSplitter(Qt.Horizontal)
        main_splitter.addWidget(self._create_left_panel())
        main_splitter.addWidget(self._create_right_panel())
        main_splitter.setSizes([360, 840])

        layout_main = QHBoxLayout(central_widget)
        layout_main.addWidget(main_splitter)

    def _create_left_panel(self) -> QWidget:
        panel = QWidget()
        panel_layout = QVBoxLayout(panel)

        # --- Scan Group ---
        scan_group = QGroupBox("Scan Text")
        scan_layout = QVBoxLayout(scan_group)

        self.camera_btn = QPushButton("📷 Camera")
        self.camera_btn.clicked.connect(self.on_camera_clicked)
        scan_layout.addWidget(self.camera_btn)

        self.open_btn = QPushButton("🖼 Photo Library...")
        self.open_btn.clicked.connect(self.on_open_image)
        scan_layout.addWidget(self.open_btn)

        self.screen_btn = QPushButton("✂ Screen Region")
        self.screen_btn.clicked.connect(self.on_screen_clicked)
        scan_layout.addWidget(self.screen_btn)

        self.progress_bar = QProgressBar()
        self.progress_bar.setRange(0, 1)
        self.progress_bar.setValue(0)
        self.progress_bar.setTextVisible(False)
        scan_layout.addWidget(self.progress_bar)

        self.status_label = QLabel("Tap a source to scan text")
        scan_layout.addWidget(self.status_label)

        self.confidence_label = QLabel()
        scan_layout.addWidget(self.confidence_label)

        self.settings_btn = QPushButton("⚙ OCR Settings...")
        self.settings_btn.clicked.connect(self.on_settings_clicked)
        scan_layout.addWidget(self.settings_btn)

        panel_layout.addWidget(scan_group)

        # --- Log Panel ---
        log_group = QGroupBox("Log")
        log_layout = QVBoxLayout(log_group)
        self.log_text = QPlainTextEdit()
        self.log_text.setReadOnly(True)
        self.log_text.setMaximumBlockCount(1000)
        log_layout.addWidget(self.log_text)
        panel_layout.addWidget(log_group, 1)

        self.log_handler = QtLogHandler(self.log_text)
        logging.getLogger("text_extractor").addHandler(self.log_handler)

        return panel

    def _create_right_panel(self) -> QWidget:
        panel = QWidget()
        panel_layout = QVBoxLayout(panel)
        panel_layout.setContentsMargins(0, 0, 0, 0)

        self.image_label = QLabel("Captured or imported image will appear here")
        self.image_label.setAlignment(Qt.AlignCenter)
        self.image_label.setMinimumHeight(260)
        self.image_label.setStyleSheet("border: 1px dashed #999;")
        image_scroll = QScrollArea()
        image_scroll.setWidget(self.image_label)
        image_scroll.setWidgetResizable(True)
        panel_layout.addWidget(image_scroll, 1)

        self.tabs = QTabWidget()
        self.tabs.addTab(self._create_scanner_tab(), "Scanner")
        self.tabs.addTab(self._create_full_text_tab(), "Full Text")
        panel_layout.addWidget(self.tabs, 2)
        return panel

    def _create_scanner_tab(self) -> QWidget:
        tab = QWidget()
        layout = QVBoxLayout(tab)

        header = QHBoxLayout()
        header.addWidget(QLabel("Extracted Text"))
        header.addStretch()
        self.see_all_btn = QPushButton("See All")
        self.see_all_btn.clicked.connect(lambda: self.tabs.setCurrentIndex(1))
        header.addWidget(self.see_all_btn)
        layout.addLayout(header)

        self.preview_text = QPlainTextEdit()
        self.preview_text.setReadOnly(True)
        self.preview_text.setPlaceholderText("Recognized text will appear here...")
        layout.addWidget(self.preview_text)

        self.copy_btn = QPushButton("📋 Copy Text")
        self.copy_btn.clicked.connect(self.copy_to_clipboard)
        layout.addWidget(self.copy_btn)
        return tab

    def _create_full_text_tab(self) -> QWidget:
        tab = QWidget()
        layout = QVBoxLayout(tab)

        toolbar = QHBoxLayout()
        self.format_btn = QPushButton("Aa Format...")
        self.format_btn.clicked.connect(self.on_format_clicked)
        toolbar.addWidget(self.format_btn)
        self.search_edit = QLineEdit()
        self.search_edit.setPlaceholderText("Search in text")
        self.search_edit.setClearButtonEnabled(True)
        self.search_edit.textChanged.connect(self.refresh_full_text)
        toolbar.addWidget(self.search_edit, 1)
        self.edit_btn = QPushButton("Edit")
        self.edit_btn.clicked.connect(self.toggle_editing)
        toolbar.addWidget(self.edit_btn)
        layout.addLayout(toolbar)

        self.full_text_stack = QStackedWidget()
        self.full_text_view = QTextBrowser()
        self.full_text_stack.addWidget(self.full_text_view)
        self.full_text_editor = QPlainTextEdit()
        self.full_text_stack.addWidget(self.full_text_editor)
        layout.addWidget(self.full_text_stack, 1)

        buttons = QHBoxLayout()
        self.copy_all_btn = QPushButton("📋 Copy All")
        self.copy_all_btn.clicked.connect(self.copy_to_clipboard)
        buttons.addWidget(self.copy_all_btn)
        self.save_btn = QPushButton("💾 Save As...")
        self.save_btn.clicked.connect(self.on_save_text)
        buttons.addWidget(self.save_btn)
        layout.addLayout(buttons)
        return tab

    def _init_menu(self):
        menubar = self.menuBar()

        file_menu = menubar.addMenu("File")
        open_action = QAction("Open Image...", self)
        open_action.setShortcut(QKeySequence.Open)
        open_action.triggered.connect(self.on_open_image)
        file_menu.addAction(open_action)

        camera_action = QAction("Capture From Camera", self)
        camera_action.triggered.connect(self.on_camera_clicked)
        file_menu.addAction(camera_action)

        screen_action = QAction("Capture Screen Region", self)
        screen_action.triggered.connect(self.on_screen_clicked)
        file_menu.addAction(screen_action)

        save_action = QAction("Save Text As...", self)
        save_action.setShortcut(QKeySequence.SaveAs)
        save_action.triggered.connect(self.on_save_text)
        file_menu.addAction(save_action)

        file_menu.addSeparator()
        exit_action = QAction("Exit", self)
        exit_action.setShortcut(QKeySequence.Quit)
        exit_action.triggered.connect(self.close)
        file_menu.addAction(exit_action)

        settings_menu = menubar.addMenu("Settings")
        settings_action = QAction("OCR Settings...", self)
        settings_action.triggered.connect(self.on_settings_clicked)
        settings_menu.addAction(settings_action)

        help_menu = menubar.addMenu("Help")
        about_action = QAction("About", self)
        about_action.triggered.connect(self.on_about)
        help_menu.addAction(about_action)

    def _connect_recognizer(self):
        self.recognizer.processing_changed.connect(self.on_processing_changed)
        self.recognizer.edited_text_changed.connect(self.on_edited_text_changed)
        self.recognizer.confidence_changed.connect(self.on_confidence_changed)
        self.recognizer.finished.connect(self.on_recognition_finished)
        self.recognizer.failed.connect(self.on_recognition_failed)

    # -- recognition -------------------------------------------------------

    def start_recognition(self, image: Any, preview: Optional[QPixmap] = None) -> bool:
        """Show ``image`` and hand it to the recognizer."""
        if preview is None:
            try:
                preview = pil_to_pixmap(capture.load_image(image))
            except OCRError:
                preview = None
        if preview is not None and not preview.isNull():
            self.image_label.setPixmap(
                preview.scaled(self.image_label.size(), Qt.KeepAspectRatio, Qt.SmoothTransformation)
            )
        return self.recognizer.recognize_text(image)

    def open_image_path(self, path: str) -> bool:
        logger.info("Processing: %s", path)
        return self.start_recognition(path, QPixmap(path))

    @Slot(bool)
    def on_processing_changed(self, processing: bool):
        self.progress_bar.setRange(0, 0 if processing else 1)
        self.status_label.setText("Processing..." if processing else "Ready")
        for button in (self.camera_btn, self.open_btn, self.screen_btn):
            button.setEnabled(not processing)

    @Slot(str)
    def on_edited_text_changed(self, text: str):
        lines = text.split("\n")
        preview = "\n".join(lines[:PREVIEW_LINES])
        if len(lines) > PREVIEW_LINES:
            preview += "\n..."
        self.preview_text.setPlainText(preview)
        if not self.is_editing:
            self.refresh_full_text()

    @Slot(float)
    def on_confidence_changed(self, confidence: float):
        if confidence <= 0:
            self.confidence_label.clear()
            return
        color = CONFIDENCE_COLORS[postprocess.confidence_level(confidence)]
        self.confidence_label.setText(f"Confidence: {postprocess.format_confidence(confidence)}")
        self.confidence_label.setStyleSheet(f"color: {color}; font-weight: bold;")

    @Slot(object)
    def on_recognition_finished(self, result: RecognitionResult):
        if not result.combined_text:
            self.status_label.setText("No text was found in the image")

    @Slot(object)
    def on_recognition_failed(self, error: BaseException):
        logger.error("Error extracting text: %s", error)
        self.show_error("Recognition Error", str(error))

    def show_error(self, title: str, message: str):
        QMessageBox.critical(self, title, message)

    # -- image sources -----------------------------------------------------

    @Slot()
    def on_open_image(self):
        file_path, _ = QFileDialog.getOpenFileName(self, "Open Image", "", capture.IMAGE_FILE_FILTER)
        if file_path:
            self.open_image_path(file_path)

    @Slot()
    def on_camera_clicked(self):
        try:
            image = capture.capture_camera_frame()
        except OCRError as exc:
            logger.error("Camera capture failed: %s", exc)
            self.show_error("Camera", str(exc))
            return
        self.start_recognition(image)

    @Slot()
    def on_screen_clicked(self):
        self.showMinimized()
        QTimer.singleShot(300, self._start_screen_capture)

    def _start_screen_capture(self):
        self.capture_window = capture.CaptureWindow()
        self.capture_window.region_captured.connect(self.on_region_captured)
        self.capture_window.capture_cancelled.connect(self.restore_window)
        self.capture_window.show()

    @Slot(QImage)
    def on_region_captured(self, image: QImage):
        self.restore_window()
        self.start_recognition(image, QPixmap.fromImage(image))

    @Slot()
    def restore_window(self):
        self.showNormal()
        self.raise_()
        self.activateWindow()

    # -- full text ---------------------------------------------------------

    @Slot()
    def refresh_full_text(self):
        text = postprocess.filter_lines(self.recognizer.edited_text, self.search_edit.text())
        self.full_text_view.setHtml(formatting.render_html(text, self.text_style, self.settings.dark_mode))

    @Slot()
    def toggle_editing(self):
        if not self.is_editing:
            self.is_editing = True
            self.full_text_editor.setPlainText(self.recognizer.edited_text)
            self.full_text_stack.setCurrentWidget(self.full_text_editor)
            self.edit_btn.setText("Done")
            return

        self.is_editing = False
        self.recognizer.set_edited_text(self.full_text_editor.toPlainText())
        self.full_text_stack.setCurrentWidget(self.full_text_view)
        self.edit_btn.setText("Edit")
        self.refresh_full_text()
        self.show_info("Text Saved", "Your changes have been saved.")

    def show_info(self, title: str, message: str):
        QMessageBox.information(self, title, message)

    @Slot()
    def on_format_clicked(self):
        dialog = FormattingDialog(self.text_style, self, dark_mode=self.settings.dark_mode)
        if dialog.exec():
            self.text_style = dialog.text_style()
            self.refresh_full_text()

    def copy_to_clipboard(self):
        """Copy the current (edited) text to the clipboard verbatim."""
        QApplication.clipboard().setText(self.recognizer.edited_text)
        logger.info("Copied to clipboard.")

    @Slot()
    def on_save_text(self):
        path, _ = QFileDialog.getSaveFileName(self, "Save Text", "extracted_text.txt", "Text (*.txt)")
        if path:
            self.save_text(path)

    def save_text(self, path: str):
        try:
            Path(path).write_text(self.recognizer.edited_text, encoding="utf-8")
        except OSError as exc:
            logger.error("Could not save text: %s", exc)
            self.show_error("Save Failed", str(exc))
            return
        logger.info("Saved text to %s", path)

    # -- settings ----------------------------------------------------------

    @Slot()
    def on_settings_clicked(self):
        dialog = OCRSettingsDialog(self.settings, self.recognizer.confidence, self)
        if dialog.exec():
            self.apply_settings(dialog.settings())

    def apply_settings(self, settings: OCRSettings):
        previous_engine = self.settings.engine
        settings.save(self.store)
        settings.apply_to(self.recognizer)
        if settings.engine != previous_engine:
            self.recognizer.set_engine(self._create_engine(settings.engine))
            logger.info("OCR engine: %s", settings.engine)
        self.settings = settings
        self.apply_appearance(settings.dark_mode)
        self.refresh_full_text()
        logger.info("OCR settings saved.")

    @staticmethod
    def _create_engine(name: str) -> OCREngine:
        try:
            return create_engine(name)
        except OCREngineError as exc:
            logger.warning("%s; falling back to %s", exc, DEFAULT_ENGINE)
            return create_engine(DEFAULT_ENGINE)

    def apply_appearance(self, dark_mode: bool):
        app = QApplication.instance()
        if app is None:
            return
        app.setPalette(dark_palette() if dark_mode else app.style().standardPalette())

    @Slot()
    def on_about(self):
        QMessageBox.about(
            self,
            "About Text Extractor",
            "<h2>Text Extractor</h2>"
            f"<p>Version {__version__}</p>"
            "<p>Extract, search, edit and format text from photos and screenshots.</p>"
            "<p>Powered by PaddleOCR, Tesseract and PySide6.</p>",
        )

    def closeEvent(self, event):
        self.recognizer.shutdown()
        logging.getLogger("text_extractor").removeHandler(self.log_handler)
        event.accept()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="text_extractor", description="Extract text from images.")
    parser.add_argument("image", nargs="?", help="Image to recognize on start-up.")
    parser.add_argument("--engine", choices=["paddle", "tesseract"], help="OCR engine to use.")
    parser.add_argument("--preferences", help="Path of the JSON preferences file.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s [%(levelname)s] %(message)s")

    app = QApplication(sys.argv[:1])
    app.setApplicationName("Text Extractor")
    app.setStyle("Fusion")

    store = JsonPreferenceStore(args.preferences)
    if args.engine:
        store.set(KEY_ENGINE, args.engine)
    window = MainWindow(store=store)
    window.show()
    if args.image:
        window.open_image_path(args.image)

    return app.exec()


if __name__ == "__main__":
    sys.exit(main())

# -*- coding: utf-8 -*-
"""Settings and text formatting dialogs."""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, List

from PySide6.QtCore import Qt, Slot
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QButtonGroup,
    QCheckBox,
    QColorDialog,
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QListWidget,
    QListWidgetItem,
    QPushButton,
    QRadioButton,
    QSlider,
    QSpinBox,
    QStackedWidget,
    QTextBrowser,
    QVBoxLayout,
    QWidget,
)

from . import formatting, postprocess
from .ocr_engine import ENGINES, SUPPORTED_LANGUAGES, normalize_languages
from .settings import MIN_TEXT_HEIGHT_RANGE, OCRSettings

CONFIDENCE_COLORS = {"high": "#2e8b57", "medium": "#c8a400", "low": "#d03030"}


class OCRSettingsDialog(QDialog):
    """Edits an OCRSettings; the caller reads `settings()` after `exec()`."""

    def __init__(self, settings: OCRSettings, confidence: float = 0.0, parent=None):
        super().__init__(parent)
        self.setWindowTitle("OCR Settings")
        self.setModal(True)
        self.setMinimumWidth(380)
        self._initial = settings

        layout = QVBoxLayout(self)

        # --- Appearance ---
        appearance = QGroupBox("Appearance")
        appearance_layout = QFormLayout(appearance)
        self.dark_mode_check = QCheckBox("Dark Mode")
        self.dark_mode_check.setChecked(settings.dark_mode)
        appearance_layout.addRow(self.dark_mode_check)
        self.engine_combo = QComboBox()
        self.engine_combo.addItems(sorted(ENGINES))
        self.engine_combo.setCurrentText(settings.engine)
        appearance_layout.addRow("Engine:", self.engine_combo)
        layout.addWidget(appearance)

        # --- Languages ---
        languages = QGroupBox("Languages")
        languages_layout = QVBoxLayout(languages)
        self.language_list = QListWidget()
        for code, name in SUPPORTED_LANGUAGES.items():
            item = QListWidgetItem(name, self.language_list)
            item.setData(Qt.UserRole, code)
            item.setFlags(item.flags() | Qt.ItemIsUserCheckable)
            item.setCheckState(Qt.Checked if code in settings.selected_languages else Qt.Unchecked)
        languages_layout.addWidget(self.language_list)
        layout.addWidget(languages)

        # --- Recognition Settings ---
        recognition = QGroupBox("Recognition Settings")
        recognition_layout = QVBoxLayout(recognition)
        self.correction_check = QCheckBox("Language Correction")
        self.correction_check.setToolTip("Improve accuracy using language context")
        self.correction_check.setChecked(settings.use_language_correction)
        recognition_layout.addWidget(self.correction_check)
        self.auto_detect_check = QCheckBox("Auto Detect Language")
        self.auto_detect_check.setToolTip("Automatically detect text language")
        self.auto_detect_check.setChecked(settings.auto_detect_language)
        recognition_layout.addWidget(self.auto_detect_check)

        height_row = QHBoxLayout()
        height_row.addWidget(QLabel("Minimum Text Height"))
        self.height_slider = QSlider(Qt.Horizontal)
        low, high = MIN_TEXT_HEIGHT_RANGE
        position = max(1, round(settings.minimum_text_height * 100))
        # Stored heights outside the usual range widen the slider.
        self.height_slider.setRange(min(round(low * 100), position), max(round(high * 100), position))
        self.height_slider.setValue(position)
        self._initial_height_position = position
        self.height_slider.setToolTip("Adjust sensitivity for text detection")
        height_row.addWidget(self.height_slider, 1)
        self.height_label = QLabel()
        height_row.addWidget(self.height_label)
        recognition_layout.addLayout(height_row)
        self.height_slider.valueChanged.connect(self._update_height_label)
        self._update_height_label(self.height_slider.value())
        layout.addWidget(recognition)

        # --- Recognition Quality ---
        if confidence > 0:
            quality = QGroupBox("Recognition Quality")
            quality_layout = QHBoxLayout(quality)
            quality_layout.addWidget(QLabel("Confidence Level"))
            quality_layout.addStretch()
            self.confidence_label = QLabel(postprocess.format_confidence(confidence))
            color = CONFIDENCE_COLORS[postprocess.confidence_level(confidence)]
            self.confidence_label.setStyleSheet(f"color: {color}; font-weight: bold;")
            quality_layout.addWidget(self.confidence_label)
            layout.addWidget(quality)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.button(QDialogButtonBox.Ok).setText("Done")
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    @Slot(int)
    def _update_height_label(self, value: int):
        self.height_label.setText(f"{value}%")

    def selected_languages(self) -> List[str]:
        checked = []
        for row in range(self.language_list.count()):
            item = self.language_list.item(row)
            if item.checkState() == Qt.Checked:
                checked.append(item.data(Qt.UserRole))
        return normalize_languages(checked)

    def _minimum_text_height(self) -> float:
        # The slider has 1% steps; keep the exact stored value unless it was moved.
        if self.height_slider.value() == self._initial_height_position:
            return self._initial.minimum_text_height
        return self.height_slider.value() / 100.0

    def settings(self) -> OCRSettings:
        return replace(
            self._initial,
            selected_languages=self.selected_languages(),
            minimum_text_height=self._minimum_text_height(),
            use_language_correction=self.correction_check.isChecked(),
            auto_detect_language=self.auto_detect_check.isChecked(),
            dark_mode=self.dark_mode_check.isChecked(),
            engine=self.engine_combo.currentText(),
        )


class FormattingDialog(QDialog):
    """Pick font, colours, alignment and spacing with a live preview."""

    PREVIEW_TEXT = "Preview Text"

    def __init__(self, style: formatting.TextStyle, parent=None, dark_mode: bool = False):
        super().__init__(parent)
        self.setWindowTitle("Format Text")
        self.setMinimumWidth(420)
        self._style = style.clamped()
        self._dark_mode = dark_mode

        layout = QVBoxLayout(self)

        self.preview = QTextBrowser()
        self.preview.setMaximumHeight(110)
        layout.addWidget(self.preview)

        options_row = QHBoxLayout()
        self.option_group = QButtonGroup(self)
        self.option_group.setExclusive(True)
        self.pages = QStackedWidget()
        self._option_buttons: Dict[formatting.FormattingOption, QPushButton] = {}
        for index, option in enumerate(formatting.FormattingOption):
            button = QPushButton(option.title)
            button.setCheckable(True)
            self.option_group.addButton(button, index)
            options_row.addWidget(button)
            self._option_buttons[option] = button
            self.pages.addWidget(self._build_page(option))
        self.option_group.idClicked.connect(self.pages.setCurrentIndex)
        self._option_buttons[formatting.FormattingOption.FONT].setChecked(True)
        layout.addLayout(options_row)
        layout.addWidget(self.pages)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.button(QDialogButtonBox.Ok).setText("Done")
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

        self._refresh_preview()

    def text_style(self) -> formatting.TextStyle:
        return self._style

    def select_option(self, option: formatting.FormattingOption) -> None:
        self._option_buttons[option].setChecked(True)
        self.pages.setCurrentIndex(list(formatting.FormattingOption).index(option))

    def _set(self, **changes) -> None:
        self._style = replace(self._style, **changes).clamped()
        self._refresh_preview()

    def _refresh_preview(self) -> None:
        self.preview.setHtml(formatting.render_html(self.PREVIEW_TEXT, self._style, self._dark_mode))

    def _build_page(self, option: formatting.FormattingOption) -> QWidget:
        page = QWidget()
        layout = QFormLayout(page)
        Option = formatting.FormattingOption

        if option is Option.FONT:
            self.font_size_spin = QSpinBox()
            self.font_size_spin.setRange(*formatting.FONT_SIZE_RANGE)
            self.font_size_spin.setValue(self._style.font_size)
            self.font_size_spin.valueChanged.connect(lambda value: self._set(font_size=value))
            layout.addRow("Font Size:", self.font_size_spin)
        elif option is Option.COLOR:
            layout.addRow("Text Color:", self._color_row(formatting.TEXT_COLORS, "foreground_color"))
        elif option is Option.BACKGROUND:
            layout.addRow("Background Color:", self._color_row(formatting.BACKGROUND_COLORS, "background_color"))
        elif option is Option.ALIGNMENT:
            row = QHBoxLayout()
            self.alignment_group = QButtonGroup(page)
            for alignment in formatting.ALIGNMENTS:
                radio = QRadioButton(alignment.capitalize())
                radio.setChecked(alignment == self._style.alignment)
                radio.toggled.connect(lambda checked, a=alignment: checked and self._set(alignment=a))
                self.alignment_group.addButton(radio)
                row.addWidget(radio)
            layout.addRow("Text Alignment:", row)
        elif option is Option.SPACING:
            self.line_spacing_slider = self._slider(
                formatting.LINE_SPACING_RANGE, self._style.line_spacing, "line_spacing"
            )
            layout.addRow("Line Spacing:", self.line_spacing_slider)
            self.letter_spacing_slider = self._slider(
                formatting.LETTER_SPACING_RANGE, self._style.letter_spacing, "letter_spacing"
            )
            layout.addRow("Letter Spacing:", self.letter_spacing_slider)
        elif option is Option.STYLE:
            self.bold_check = QCheckBox("Bold")
            self.bold_check.setChecked(self._style.bold)
            self.bold_check.toggled.connect(lambda checked: self._set(bold=checked))
            layout.addRow(self.bold_check)
            self.italic_check = QCheckBox("Italic")
            self.italic_check.setChecked(self._style.italic)
            self.italic_check.toggled.connect(lambda checked: self._set(italic=checked))
            layout.addRow(self.italic_check)
        return page

    def _slider(self, bounds, value: float, attribute: str) -> QSlider:
        slider = QSlider(Qt.Horizontal)
        slider.setRange(*bounds)
        slider.setValue(int(value))
        slider.valueChanged.connect(lambda v: self._set(**{attribute: v}))
        return slider

    def _color_row(self, colors: List[str], attribute: str) -> QWidget:
        row = QWidget()
        layout = QHBoxLayout(row)
        layout.setContentsMargins(0, 0, 0, 0)
        for color in colors:
            button = QPushButton()
            button.setFixedSize(24, 24)
            button.setToolTip(color)
            fill = "qlineargradient(x1:0, y1:0, x2:1, y2:1, stop:0 white, stop:1 #ccc)" if color == formatting.TRANSPARENT else color
            button.setStyleSheet(f"background: {fill}; border: 1px solid #888; border-radius: 12px;")
            button.clicked.connect(lambda _=False, c=color: self._set(**{attribute: c}))
            layout.addWidget(button)
        custom = QPushButton("Custom...")
        custom.clicked.connect(lambda: self._pick_custom_color(attribute))
        layout.addWidget(custom)
        layout.addStretch()
        return row

    def _pick_custom_color(self, attribute: str) -> None:
        current = getattr(self._style.resolved(self._dark_mode), attribute)
        initial = QColor(current) if current != formatting.TRANSPARENT else QColor("white")
        color = QColorDialog.getColor(initial, self, "Custom Color")
        if color.isValid():
            self._set(**{attribute: color.name()})

from typing import Optional

from PySide6.QtWidgets import (
    QCheckBox,
    QDialog,
    QDialogButtonBox,
    QDoubleSpinBox,
    QFormLayout,
    QSpinBox,
    QWidget,
)

from ..config import ZOOM_MAX, ZOOM_MIN
from ..models import ViewerSettings
from .style import BASE_STYLESHEET


class SettingsDialog(QDialog):
    def __init__(self, settings: ViewerSettings, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Настройки")
        self.setStyleSheet(BASE_STYLESHEET)

        self.zoom_input = QDoubleSpinBox()
        self.zoom_input.setRange(ZOOM_MIN, ZOOM_MAX)
        self.zoom_input.setSingleStep(0.1)
        self.zoom_input.setDecimals(1)
        self.zoom_input.setValue(settings.zoom)

        self.period_input = QSpinBox()
        self.period_input.setRange(1, 24 * 60)
        self.period_input.setSuffix(" мин")
        self.period_input.setValue(settings.period_minutes)

        self.wifi_only_checkbox = QCheckBox("Скачивать только в безлимитной сети")
        self.wifi_only_checkbox.setChecked(settings.wifi_only)

        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)

        layout = QFormLayout(self)
        layout.addRow("Зум:", self.zoom_input)
        layout.addRow("Обновлять каждые:", self.period_input)
        layout.addRow("", self.wifi_only_checkbox)
        layout.addRow(buttons)

    def values(self) -> dict:
        return {
            "zoom": round(self.zoom_input.value(), 1),
            "period_minutes": self.period_input.value(),
            "wifi_only": self.wifi_only_checkbox.isChecked(),
        }

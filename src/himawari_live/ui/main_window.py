from __future__ import annotations

from datetime import datetime
from typing import Set

from PySide6.QtCore import QEvent, QThread
from PySide6.QtGui import QAction, QColor, QGuiApplication, QPalette
from PySide6.QtWidgets import QLabel, QMainWindow, QMessageBox

from ..config import APP_VERSION, DEFAULT_CONCURRENCY
from ..di import Container
from ..models import DisplayFrame, ViewerSettings
from .connectivity import NetworkMonitor
from .settings_dialog import SettingsDialog
from .style import BASE_STYLESHEET
from .wallpaper_view import WallpaperView
from .workers import RefreshWorker


def _display_width() -> int:
    screen = QGuiApplication.primaryScreen()
    if screen is None:
        return 1080
    return max(1, screen.size().width())


class MainWindow(QMainWindow):
    def __init__(self, container: Container) -> None:
        super().__init__()
        self.container = container
        self.setWindowTitle(f"Himawari Live v{APP_VERSION}")
        self.settings_store = container.settings_store()
        self.display_width = _display_width()
        self.network = NetworkMonitor()

        self.worker = RefreshWorker(
            self.settings_store.current(),
            self.display_width,
            self.network.is_unmetered,
            concurrency=DEFAULT_CONCURRENCY,
        )
        self.worker_thread = QThread(self)
        self.worker.moveToThread(self.worker_thread)
        self.worker_thread.started.connect(self.worker.run)
        self.worker.finished.connect(self.worker_thread.quit)
        self.worker.log.connect(self.append_log)
        self.worker.state_changed.connect(self._on_state_changed)

        self.view = WallpaperView(self.worker.publisher, self.display_width)
        self.view.zoom = self.settings_store.current().zoom
        self.worker.displayable.connect(self._on_displayable)
        self.setCentralWidget(self.view)

        self.capture_label = QLabel("Снимка пока нет")
        self.statusBar().addPermanentWidget(self.capture_label)

        self._unsubscribe_settings = self.settings_store.subscribe(self._on_settings_changed)
        self.network.changed.connect(self._on_network_changed)

        self.apply_palette()
        self.build_menu()
        self.resize(900, 900)
        self.worker_thread.start()

    def build_menu(self) -> None:
        menu_bar = self.menuBar()
        view_menu = menu_bar.addMenu("Вид")

        refresh_action = QAction("Обновить сейчас", self)
        refresh_action.setShortcut("F5")
        refresh_action.triggered.connect(self.refresh_now)
        view_menu.addAction(refresh_action)

        settings_action = QAction("Настройки...", self)
        settings_action.triggered.connect(self.show_settings)
        view_menu.addAction(settings_action)

        about_action = menu_bar.addAction("О приложении")
        about_action.triggered.connect(self.show_about)

    def show_about(self) -> None:
        QMessageBox.information(
            self,
            "О приложении",
            f"Himawari Live\nВерсия: {APP_VERSION}\nСнимки: NICT Himawari real-time",
        )

    def refresh_now(self) -> None:
        self.worker.refresh_now()

    def show_settings(self) -> None:
        dialog = SettingsDialog(self.settings_store.current(), self)
        if dialog.exec():
            try:
                self.settings_store.update(**dialog.values())
            except Exception as exc:  # noqa: BLE001
                self.append_log(f"Не удалось сохранить настройки: {exc}")

    def apply_palette(self) -> None:
        palette = self.palette()
        palette.setColor(QPalette.ColorRole.Window, QColor("#0b1220"))
        palette.setColor(QPalette.ColorRole.Base, QColor("#0f172a"))
        palette.setColor(QPalette.ColorRole.Text, QColor("#e5e7eb"))
        palette.setColor(QPalette.ColorRole.WindowText, QColor("#e5e7eb"))
        palette.setColor(QPalette.ColorRole.Button, QColor("#111827"))
        palette.setColor(QPalette.ColorRole.ButtonText, QColor("#e5e7eb"))
        palette.setColor(QPalette.ColorRole.Highlight, QColor("#22d3ee"))
        palette.setColor(QPalette.ColorRole.HighlightedText, QColor("#0b1220"))
        self.setPalette(palette)
        self.setStyleSheet(BASE_STYLESHEET)

    def append_log(self, message: str) -> None:
        stamp = datetime.now().strftime("%H:%M:%S")
        line = f"[{stamp}] {message}"
        print(line, flush=True)
        self.statusBar().showMessage(message, 10_000)

    def _on_displayable(self, frame: DisplayFrame) -> None:
        self.view.show_frame(frame)
        self.capture_label.setText(f"Снимок {frame.identity} UTC")

    def _on_state_changed(self, state: str) -> None:
        self.setWindowTitle(f"Himawari Live v{APP_VERSION} ({state})")

    def _on_settings_changed(self, settings: ViewerSettings, changed: Set[str]) -> None:
        # поток обновления подхватит новые настройки в своём цикле
        self.worker.apply_settings(settings)

    def _on_network_changed(self, unmetered: bool) -> None:
        self.worker.network_changed(unmetered)

    def showEvent(self, event):  # noqa: N802
        super().showEvent(event)
        self.worker.set_visible(True)

    def hideEvent(self, event):  # noqa: N802
        super().hideEvent(event)
        self.worker.set_visible(False)

    def changeEvent(self, event):  # noqa: N802
        if event.type() == QEvent.Type.WindowStateChange:
            self.worker.set_visible(not self.isMinimized())
        super().changeEvent(event)

    def closeEvent(self, event):  # noqa: N802
        self._unsubscribe_settings()
        self.worker.stop()
        self.worker_thread.quit()
        self.worker_thread.wait(5000)
        event.accept()


import logging

from PySide6.QtCore import QObject, Signal
from PySide6.QtNetwork import QNetworkInformation

log = logging.getLogger(__name__)


class NetworkMonitor(QObject):
    """
    Caches whether the current network path is unmetered, so the refresh
    thread can read it without touching Qt networking objects.
    """

    changed = Signal(bool)

    def __init__(self) -> None:
        super().__init__()
        self._unmetered = True
        self._online = True
        self._info = None
        if QNetworkInformation.loadDefaultBackend():
            self._info = QNetworkInformation.instance()
        if self._info is None:
            log.info("No network information backend, treating network as unmetered")
            return
        self._info.isMeteredChanged.connect(self._on_metered_changed)
        self._info.reachabilityChanged.connect(self._on_reachability_changed)
        self._unmetered = not self._info.isMetered()
        self._online = self._info.reachability() != QNetworkInformation.Reachability.Disconnected

    def is_unmetered(self) -> bool:
        return self._online and self._unmetered

    def _on_metered_changed(self, metered: bool) -> None:
        self._unmetered = not metered
        self.changed.emit(self.is_unmetered())

    def _on_reachability_changed(self, reachability) -> None:
        self._online = reachability != QNetworkInformation.Reachability.Disconnected
        self.changed.emit(self.is_unmetered())

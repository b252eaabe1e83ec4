import logging
import sys

from PySide6.QtWidgets import QApplication

from .config import LOG_LEVEL
from .di import get_container
from .ui.main_window import MainWindow


def _prepare_logging() -> None:
    """
    Логи движка обновления в консоль; httpx пишет каждый запрос в INFO
    и забивает сообщения о циклах, поэтому приглушаем его.
    """
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def main() -> None:
    _prepare_logging()
    container = get_container()
    container.ensure_ready()
    app = QApplication(sys.argv)
    window = MainWindow(container)
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()

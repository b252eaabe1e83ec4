import os
import sys
from pathlib import Path

from .version import __version__

DESCRIPTOR_URL = "https://himawari8-dl.nict.go.jp/himawari8/img/D531106/latest.json"
TILE_BASE_URL = "https://himawari8-dl.nict.go.jp/himawari8/img/D531106"
TILE_EXTENSION = "png"
TILE_WIDTH = 550  # pixel width of each tile served by the endpoint
APP_VERSION = os.environ.get("APP_VERSION", __version__)
USER_AGENT = f"himawari-live/{APP_VERSION}"
DEFAULT_CONCURRENCY = int(os.environ.get("HIMAWARI_CONCURRENCY", "8"))
REQUEST_TIMEOUT = 30.0
CONNECT_TIMEOUT = 20.0
LOG_LEVEL = os.environ.get("HIMAWARI_LOG_LEVEL", "INFO").upper()

# The satellite publishes a new full disk every 10 minutes.
DEFAULT_PERIOD_MINUTES = 10
DEFAULT_ZOOM = 1.0
ZOOM_MIN = 0.1
ZOOM_MAX = 10.0


def _app_root() -> Path:
    """
    Корневая папка приложения:
    - в собранном бинаре: папка исполняемого файла;
    - в разработке: корень репозитория.
    """
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    try:
        return Path(__file__).resolve().parents[2]
    except Exception:  # noqa: BLE001
        return Path.cwd()


def _user_data_dir() -> Path:
    home = Path.home()
    return home / ".local" / "share" / "himawari-live"


def _resolve_app_data_dir() -> Path:
    # 1) явное переопределение
    custom = os.environ.get("HIMAWARI_APP_DATA")
    if custom:
        return Path(custom).expanduser()

    # 2) рядом с исполняемым файлом (dev/bundle)
    candidate = _app_root()
    if os.access(candidate, os.W_OK):
        return candidate

    # 3) иначе пользовательская папка данных
    fallback = _user_data_dir()
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


APP_DATA_DIR = _resolve_app_data_dir()
DATABASE_PATH = APP_DATA_DIR / "himawari.db"
DATABASE_URL = f"sqlite:///{DATABASE_PATH}"

from typing import Optional

from PIL import Image
from PySide6.QtCore import QPointF, Qt
from PySide6.QtGui import QColor, QImage, QPainter
from PySide6.QtWidgets import QWidget

from ..models import DisplayFrame
from ..services.publisher import DisplayPublisher


def to_qimage(image: Image.Image) -> QImage:
    rgb = image if image.mode == "RGB" else image.convert("RGB")
    data = rgb.tobytes("raw", "RGB")
    qimage = QImage(data, rgb.width, rgb.height, rgb.width * 3, QImage.Format.Format_RGB888)
    # QImage does not own ``data``; detach before it goes away
    return qimage.copy()


class WallpaperView(QWidget):
    """
    Draws the published disk centred on black, shifted horizontally by the
    publisher's pan offset. Dragging horizontally pans.
    """

    def __init__(self, publisher: DisplayPublisher, display_width: int, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.publisher = publisher
        self.display_width = display_width
        self.zoom = 1.0
        self._image: Optional[QImage] = None
        self._drag_origin: Optional[float] = None
        self._pan_fraction = 0.0
        self._drag_start_fraction = 0.0
        self.setMinimumSize(320, 320)
        self.setAttribute(Qt.WidgetAttribute.WA_OpaquePaintEvent, True)

    def is_surface_valid(self) -> bool:
        return self.isVisible() and self.width() > 0 and self.height() > 0

    def show_frame(self, frame: DisplayFrame) -> None:
        self._image = to_qimage(frame.image)
        self.zoom = frame.grid.output_pixel_size / max(self.display_width, 1)
        self.publisher.set_pan(self._pan_fraction, self.display_width, self.zoom)
        if self.is_surface_valid():
            self.update()

    def paintEvent(self, event):  # noqa: N802
        painter = QPainter(self)
        painter.fillRect(self.rect(), QColor("black"))
        if self._image is not None:
            x = self.publisher.offset + (self.width() - self._image.width()) / 2
            y = (self.height() - self._image.height()) / 2
            painter.drawImage(QPointF(x, y), self._image)
        painter.end()

    def mousePressEvent(self, event):  # noqa: N802
        if event.button() == Qt.MouseButton.LeftButton:
            self._drag_origin = event.position().x()
            self._drag_start_fraction = self._pan_fraction
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event):  # noqa: N802
        if self._drag_origin is not None and self.width() > 0:
            delta = (self._drag_origin - event.position().x()) / self.width()
            self._pan_fraction = min(max(self._drag_start_fraction + delta, 0.0), 1.0)
            self.publisher.set_pan(self._pan_fraction, self.display_width, self.zoom)
            self.update()
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event):  # noqa: N802
        self._drag_origin = None
        super().mouseReleaseEvent(event)

"""Calibration marker overlay.

A frameless, click-through, top-most window covering one monitor that
draws numbered magenta crosshairs at dispatch-space points. The
calibrator looks for exactly this color in the next captured frame.
"""

from typing import Optional, Sequence

from PySide6.QtCore import QPointF, QRect, QRectF, Qt
from PySide6.QtGui import QColor, QFont, QPainter, QPen
from PySide6.QtWidgets import QApplication, QWidget

from tapmacro.core.model import Point

# Only the centre pixel is pure magenta so it outscores the halo
MARKER_CENTER = QColor(255, 0, 255)
MARKER_HALO = QColor(220, 40, 220)
ARM_COLOR = QColor(255, 255, 255)
MARKER_ARM = 18
MARKER_DOT = 5


class MarkerOverlay(QWidget):
    """Transparent overlay showing calibration markers.

    Points are in dispatch space, i.e. physical pixels of the monitor;
    they are divided by the screen's device pixel ratio for painting.
    """

    def __init__(self, screen_index: int = 0, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)

        self.setWindowFlags(
            Qt.WindowType.FramelessWindowHint |
            Qt.WindowType.WindowStaysOnTopHint |
            Qt.WindowType.Tool |
            Qt.WindowType.WindowTransparentForInput
        )
        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground)
        self.setAttribute(Qt.WidgetAttribute.WA_ShowWithoutActivating)

        self._screen_index = screen_index
        self._points: list[Point] = []

    @property
    def points(self) -> list[Point]:
        return list(self._points)

    def show_points(self, points: Sequence[Point]) -> None:
        """Show markers at the given dispatch-space points."""
        self._points = list(points)
        screens = QApplication.screens()
        if screens:
            screen = screens[min(self._screen_index, len(screens) - 1)]
            self.setGeometry(screen.geometry())
        self.show()
        self.raise_()
        self.update()

    def hide_points(self) -> None:
        """Remove all markers and hide."""
        self._points = []
        self.hide()

    def paintEvent(self, event) -> None:
        """Paint the markers."""
        if not self._points:
            return

        ratio = self.devicePixelRatioF() or 1.0
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing, False)

        pixel = 1.0 / ratio
        font = QFont()
        font.setPointSize(12)
        font.setBold(True)
        painter.setFont(font)

        for number, point in enumerate(self._points, start=1):
            center = QPointF(point.x / ratio, point.y / ratio)
            painter.setPen(QPen(ARM_COLOR, 1))
            painter.drawLine(QPointF(center.x() - MARKER_ARM, center.y()),
                             QPointF(center.x() + MARKER_ARM, center.y()))
            painter.drawLine(QPointF(center.x(), center.y() - MARKER_ARM),
                             QPointF(center.x(), center.y() + MARKER_ARM))
            painter.setPen(Qt.PenStyle.NoPen)
            painter.setBrush(MARKER_HALO)
            painter.drawEllipse(center, MARKER_DOT, MARKER_DOT)
            painter.fillRect(QRectF(center.x(), center.y(), pixel, pixel), MARKER_CENTER)
            painter.setPen(ARM_COLOR)

            label = QRect(int(center.x()) + MARKER_ARM + 4, int(center.y()) - 24, 40, 20)
            painter.drawText(label, Qt.AlignmentFlag.AlignLeft, f"#{number}")

        painter.end()

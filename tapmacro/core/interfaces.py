"""Collaborator contracts consumed by the engine and calibrator."""

from typing import Optional, Protocol, runtime_checkable

from .model import DisplayInfo, Frame, Rect, Template


@runtime_checkable
class FrameSource(Protocol):
    """Produces captured frames (capture space)."""

    def latest_frame(self) -> Optional[Frame]:
        """Most recent frame, or None if none is ready. Never blocks on capture."""
        ...

    def frame_size(self) -> tuple[int, int]:
        """Current (width, height) of the capture surface."""
        ...

    def content_rect(self) -> Rect:
        """Best current content rect estimate, full frame if undetected."""
        ...


@runtime_checkable
class GestureSink(Protocol):
    """Performs input gestures in dispatch space.

    tap/swipe report whether the gesture was scheduled; completion is not
    awaited.
    """

    def tap(self, x: float, y: float, duration_ms: int) -> bool: ...

    def swipe(self, x1: float, y1: float, x2: float, y2: float, duration_ms: int) -> bool: ...

    def back(self) -> None: ...

    def home(self) -> None: ...

    def recent(self) -> None: ...


@runtime_checkable
class DisplayInfoSource(Protocol):
    """Reports the dispatch-side physical size and insets."""

    def display_info(self) -> Optional[DisplayInfo]: ...


@runtime_checkable
class TemplateProvider(Protocol):
    """Looks up templates by id."""

    def get(self, template_id: str) -> Optional[Template]: ...

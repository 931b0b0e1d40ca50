"""Core data models for tapmacro.

Defines frames, templates, geometry snapshots (Spaces), transforms and
execution status shared by the matcher, mapper, calibrator and engine.
"""

import hashlib
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

import numpy as np

from .constants import (
    IMAGE_GESTURE_TIMEOUT_MS,
    IMAGE_TAP_DURATION_MS,
    POLL_INTERVAL_MS,
    SCORE_MAX,
)


class State(Enum):
    """Macro engine states."""

    Idle = auto()
    """未运行"""

    Running = auto()
    """正在执行宏"""


@dataclass(frozen=True)
class Point:
    """A point in capture or dispatch space (sub-pixel allowed)."""

    x: float
    y: float

    def as_tuple(self) -> tuple[float, float]:
        """Return as (x, y) tuple."""
        return (self.x, self.y)

    def offset(self, dx: float, dy: float) -> "Point":
        """Return a copy moved by (dx, dy)."""
        return Point(self.x + dx, self.y + dy)


@dataclass(frozen=True)
class Rect:
    """An axis-aligned rectangle with exclusive right/bottom edges.

    Attributes:
        left: Left edge X coordinate (inclusive)
        top: Top edge Y coordinate (inclusive)
        right: Right edge X coordinate (exclusive)
        bottom: Bottom edge Y coordinate (exclusive)
    """

    left: int
    top: int
    right: int
    bottom: int

    @classmethod
    def from_size(cls, width: int, height: int) -> "Rect":
        """Full-extent rect for a surface of the given size."""
        return cls(0, 0, width, height)

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    def is_valid(self) -> bool:
        """Check if rect has positive dimensions."""
        return self.width > 0 and self.height > 0


@dataclass(frozen=True)
class Insets:
    """Margins of the physical surface where gestures are not meaningful."""

    left: int = 0
    top: int = 0
    right: int = 0
    bottom: int = 0

    @property
    def horizontal(self) -> int:
        return self.left + self.right

    @property
    def vertical(self) -> int:
        return self.top + self.bottom


@dataclass(frozen=True)
class PhysSize:
    """Physical (dispatch-space) surface size."""

    width: int
    height: int


@dataclass(frozen=True)
class DisplayInfo:
    """Physical size and insets reported by the dispatch side.

    Combined with the capture side's content rect this yields a Spaces
    snapshot.
    """

    phys: PhysSize
    insets: Insets = field(default_factory=Insets)


@dataclass(frozen=True)
class Spaces:
    """Snapshot of the geometry between capture and dispatch surfaces.

    Recomputed per call, never persisted: rotation or resize invalidates
    it immediately.

    Attributes:
        phys: Physical surface size (dispatch space)
        insets: System margins in dispatch space
        content: Active content rect in capture space
    """

    phys: PhysSize
    insets: Insets
    content: Rect

    @property
    def gesture_area_w(self) -> int:
        return self.phys.width - self.insets.horizontal

    @property
    def gesture_area_h(self) -> int:
        return self.phys.height - self.insets.vertical


@dataclass(frozen=True)
class MapParams:
    """Deterministic dispatch→capture scale and offset."""

    scale_x: float
    scale_y: float
    offset_x: float
    offset_y: float


@dataclass(frozen=True)
class Affine:
    """Affine transform (x, y) -> (a*x + b*y + tx, c*x + d*y + ty).

    Produced by calibration; maps dispatch space to capture space.
    """

    a: float
    b: float
    c: float
    d: float
    tx: float
    ty: float

    def map(self, x: float, y: float) -> Point:
        """Apply the transform to a point."""
        return Point(self.a * x + self.b * y + self.tx,
                     self.c * x + self.d * y + self.ty)

    @property
    def determinant(self) -> float:
        return self.a * self.d - self.b * self.c

    def inverse(self) -> "Affine":
        """Return the inverse transform.

        Raises:
            ValueError: If the linear part is singular
        """
        det = self.determinant
        if det == 0:
            raise ValueError("Affine transform is singular")
        ia = self.d / det
        ib = -self.b / det
        ic = -self.c / det
        id_ = self.a / det
        return Affine(
            a=ia,
            b=ib,
            c=ic,
            d=id_,
            tx=-(ia * self.tx + ib * self.ty),
            ty=-(ic * self.tx + id_ * self.ty),
        )

    def __str__(self) -> str:
        return (f"[[{self.a:.5f} {self.b:.5f} {self.tx:.2f}],"
                f"[{self.c:.5f} {self.d:.5f} {self.ty:.2f}]]")


@dataclass(frozen=True)
class Frame:
    """A captured pixel buffer.

    Attributes:
        pixels: uint8 array of shape (height, width, 3|4), RGB(A) channel order
        width: Declared frame width
        height: Declared frame height
        timestamp: Capture time (time.monotonic() seconds)
    """

    pixels: np.ndarray
    width: int
    height: int
    timestamp: float = 0.0

    @classmethod
    def from_array(cls, pixels: np.ndarray, timestamp: Optional[float] = None) -> "Frame":
        """Build a frame whose declared size is taken from the array."""
        height, width = pixels.shape[:2]
        return cls(
            pixels=pixels,
            width=width,
            height=height,
            timestamp=time.monotonic() if timestamp is None else timestamp,
        )

    def has_consistent_size(self) -> bool:
        """Check that the buffer matches the declared dimensions."""
        return tuple(self.pixels.shape[:2]) == (self.height, self.width)


class Template:
    """Immutable reference image with a stable identity.

    Pixels are RGBA (or RGB, treated as fully opaque). The buffer is
    copied and frozen on construction.
    """

    def __init__(self, template_id: str, pixels: np.ndarray) -> None:
        if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
            raise ValueError(
                f"Template pixels must be (h, w, 3|4), got {pixels.shape}"
            )
        frozen = np.array(pixels, dtype=np.uint8, copy=True)
        frozen.setflags(write=False)
        self._id = template_id
        self._pixels = frozen
        self._digest: Optional[str] = None

    @property
    def id(self) -> str:
        return self._id

    @property
    def pixels(self) -> np.ndarray:
        return self._pixels

    @property
    def width(self) -> int:
        return int(self._pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self._pixels.shape[0])

    @property
    def digest(self) -> str:
        """Content digest used to detect byte changes for the same id."""
        if self._digest is None:
            h = hashlib.blake2b(digest_size=16)
            h.update(repr(self._pixels.shape).encode("ascii"))
            h.update(self._pixels.tobytes())
            self._digest = h.hexdigest()
        return self._digest

    def __repr__(self) -> str:
        return f"Template(id={self._id!r}, size={self.width}x{self.height})"


@dataclass(frozen=True)
class MatchResult:
    """Best match location (template centroid, capture space) and score."""

    x: int
    y: int
    score: int

    def __post_init__(self) -> None:
        if not 0 <= self.score <= SCORE_MAX:
            object.__setattr__(self, "score", max(0, min(SCORE_MAX, self.score)))

    @property
    def point(self) -> Point:
        return Point(float(self.x), float(self.y))


@dataclass(frozen=True)
class ExecutionStatus:
    """Engine status as seen by observers.

    Attributes:
        running: True while a macro run is active
        macro_id: Id of the running macro, None when idle
        step_index: Current step index, -1 exactly when idle
    """

    running: bool = False
    macro_id: Optional[str] = None
    step_index: int = -1

    @property
    def state(self) -> State:
        return State.Running if self.running else State.Idle


IDLE_STATUS = ExecutionStatus()


@dataclass
class EngineConfig:
    """Per-engine tunables (defaults from constants).

    Attributes:
        poll_interval_ms: Sleep between match attempts while polling
        image_gesture_timeout_ms: Locate timeout for TapImage/SwipeImage
        image_tap_duration_ms: Press duration used by TapImage
    """

    poll_interval_ms: int = POLL_INTERVAL_MS
    image_gesture_timeout_ms: int = IMAGE_GESTURE_TIMEOUT_MS
    image_tap_duration_ms: int = IMAGE_TAP_DURATION_MS

"""Macro model and parser.

A macro is an ordered, named list of steps. The parser accepts the
lenient JSON encoding produced by macro editors (type aliases, field
aliases, numbers as strings) and produces exactly one canonical step
model. Malformed input raises MacroParseError naming the step index.
"""

import json
import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Union

from .constants import (
    DEFAULT_MIN_SCORE,
    FIND_IMAGE_TIMEOUT_MS,
    SCORE_MAX,
    SWIPE_DURATION_MS,
    TAP_DURATION_MS,
    WAIT_IMAGE_TIMEOUT_MS,
)


class MacroParseError(ValueError):
    """Raised when a macro or step encoding is malformed.

    Attributes:
        index: Offending step index, None for macro-level errors
    """

    def __init__(self, message: str, index: Optional[int] = None) -> None:
        super().__init__(message)
        self.index = index


@dataclass(frozen=True)
class WaitImage:
    """Wait until the template appears or the timeout elapses."""

    template_id: str
    min_score: int = DEFAULT_MIN_SCORE
    timeout_ms: int = WAIT_IMAGE_TIMEOUT_MS


@dataclass(frozen=True)
class FindImage:
    """Look for the template with a short timeout."""

    template_id: str
    min_score: int = DEFAULT_MIN_SCORE
    timeout_ms: int = FIND_IMAGE_TIMEOUT_MS


@dataclass(frozen=True)
class TapImage:
    """Tap the template centroid, offset by (dx, dy) capture pixels."""

    template_id: str
    min_score: int = DEFAULT_MIN_SCORE
    dx: int = 0
    dy: int = 0


@dataclass(frozen=True)
class SwipeImage:
    """Swipe from the template centroid to centroid + (dx, dy)."""

    template_id: str
    min_score: int = DEFAULT_MIN_SCORE
    dx: int = 0
    dy: int = 0
    duration_ms: int = SWIPE_DURATION_MS


@dataclass(frozen=True)
class Tap:
    """Tap at a dispatch-space point."""

    x: float
    y: float
    duration_ms: int = TAP_DURATION_MS


@dataclass(frozen=True)
class Swipe:
    """Swipe between two dispatch-space points."""

    x1: float
    y1: float
    x2: float
    y2: float
    duration_ms: int = SWIPE_DURATION_MS


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class Home:
    pass


@dataclass(frozen=True)
class Recent:
    pass


Step = Union[WaitImage, FindImage, TapImage, SwipeImage, Tap, Swipe, Back, Home, Recent]

IMAGE_STEPS = (WaitImage, FindImage, TapImage, SwipeImage)


@dataclass(frozen=True)
class Macro:
    """A named, ordered sequence of steps."""

    id: str
    steps: tuple[Step, ...]
    version: int = 1

    def __len__(self) -> int:
        return len(self.steps)

    def template_ids(self) -> set[str]:
        """Ids of all templates referenced by image steps."""
        return {s.template_id for s in self.steps if isinstance(s, IMAGE_STEPS)}


# Field aliases, first present key wins
_ID_KEYS = ("id", "templateId", "name")
_SCORE_KEYS = ("minScore", "score", "threshold")
_TIMEOUT_KEYS = ("timeoutMs", "timeout", "ms")
_DURATION_KEYS = ("durationMs", "durMs", "dur", "ms")
_DX_KEYS = ("dx", "offsetX")
_DY_KEYS = ("dy", "offsetY")

_TYPE_ALIASES = {
    "waitimage": "waitimage",
    "wait_image": "waitimage",
    "wait": "waitimage",
    "findimage": "findimage",
    "find_image": "findimage",
    "find": "findimage",
    "imagefind": "findimage",
    "tapimage": "tapimage",
    "tap_image": "tapimage",
    "tapimg": "tapimage",
    "swipeimage": "swipeimage",
    "swipe_image": "swipeimage",
    "swipeimg": "swipeimage",
    "tap": "tap",
    "swipe": "swipe",
    "back": "back",
    "home": "home",
    "recent": "recent",
    "recents": "recent",
    "menu": "recent",
}


def _pick_str(obj: Mapping[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        if key not in obj:
            continue
        value = obj[key]
        if isinstance(value, str):
            if value.strip():
                return value
        elif value is not None and not isinstance(value, (dict, list, bool)):
            return str(value)
    return None


def _pick_number(obj: Mapping[str, Any], index: int, keys: Sequence[str]) -> Optional[float]:
    """First present alias as a finite float, None if no alias is present."""
    for key in keys:
        if key not in obj:
            continue
        value = obj[key]
        number: Optional[float] = None
        if isinstance(value, bool):
            number = None
        elif isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                number = None
        if number is None or not math.isfinite(number):
            raise MacroParseError(
                f"steps[{index}].{key} must be a number, got {value!r}", index
            )
        return number
    return None


def _require_id(obj: Mapping[str, Any], index: int) -> str:
    template_id = _pick_str(obj, _ID_KEYS)
    if template_id is None:
        raise MacroParseError(f"steps[{index}].id/templateId is required", index)
    return template_id


def _require_coord(obj: Mapping[str, Any], index: int, key: str) -> float:
    value = _pick_number(obj, index, (key,))
    if value is None:
        raise MacroParseError(f"steps[{index}].{key} is required", index)
    return value


def _score(obj: Mapping[str, Any], index: int) -> int:
    value = _pick_number(obj, index, _SCORE_KEYS)
    if value is None:
        return DEFAULT_MIN_SCORE
    return max(0, min(SCORE_MAX, int(round(value))))


def _offset(obj: Mapping[str, Any], index: int, keys: Sequence[str]) -> int:
    value = _pick_number(obj, index, keys)
    return 0 if value is None else int(round(value))


def _millis(obj: Mapping[str, Any], index: int, keys: Sequence[str], default: int) -> int:
    value = _pick_number(obj, index, keys)
    if value is None:
        return default
    if value < 0:
        raise MacroParseError(f"steps[{index}] duration/timeout must be >= 0", index)
    return int(value)


def _parse_step(obj: Mapping[str, Any], index: int) -> Step:
    raw_type = obj.get("type", obj.get("op", ""))
    if not isinstance(raw_type, str):
        raise MacroParseError(f"steps[{index}].type must be a string", index)
    kind = _TYPE_ALIASES.get(raw_type.strip().lower())

    # Coordinate tap/swipe become image steps when a template id is given
    if kind in ("tap", "swipe") and _pick_str(obj, _ID_KEYS) is not None:
        kind = "tapimage" if kind == "tap" else "swipeimage"

    if kind == "waitimage":
        return WaitImage(
            template_id=_require_id(obj, index),
            min_score=_score(obj, index),
            timeout_ms=_millis(obj, index, _TIMEOUT_KEYS, WAIT_IMAGE_TIMEOUT_MS),
        )
    if kind == "findimage":
        return FindImage(
            template_id=_require_id(obj, index),
            min_score=_score(obj, index),
            timeout_ms=_millis(obj, index, _TIMEOUT_KEYS, FIND_IMAGE_TIMEOUT_MS),
        )
    if kind == "tapimage":
        return TapImage(
            template_id=_require_id(obj, index),
            min_score=_score(obj, index),
            dx=_offset(obj, index, _DX_KEYS),
            dy=_offset(obj, index, _DY_KEYS),
        )
    if kind == "swipeimage":
        return SwipeImage(
            template_id=_require_id(obj, index),
            min_score=_score(obj, index),
            dx=_offset(obj, index, _DX_KEYS),
            dy=_offset(obj, index, _DY_KEYS),
            duration_ms=_millis(obj, index, _DURATION_KEYS, SWIPE_DURATION_MS),
        )
    if kind == "tap":
        return Tap(
            x=_require_coord(obj, index, "x"),
            y=_require_coord(obj, index, "y"),
            duration_ms=_millis(obj, index, _DURATION_KEYS, TAP_DURATION_MS),
        )
    if kind == "swipe":
        return Swipe(
            x1=_require_coord(obj, index, "x"),
            y1=_require_coord(obj, index, "y"),
            x2=_require_coord(obj, index, "x2"),
            y2=_require_coord(obj, index, "y2"),
            duration_ms=_millis(obj, index, _DURATION_KEYS, SWIPE_DURATION_MS),
        )
    if kind == "back":
        return Back()
    if kind == "home":
        return Home()
    if kind == "recent":
        return Recent()

    raise MacroParseError(f"unknown step type {raw_type!r} at steps[{index}]", index)


def parse_steps(items: Any) -> list[Step]:
    """Parse a list of step objects.

    Raises:
        MacroParseError: On the first malformed step
    """
    if isinstance(items, (str, bytes)):
        items = _decode(items)
    if not isinstance(items, list):
        raise MacroParseError("steps must be an array")

    steps: list[Step] = []
    for index, obj in enumerate(items):
        if not isinstance(obj, Mapping):
            raise MacroParseError(f"steps[{index}] must be an object", index)
        steps.append(_parse_step(obj, index))
    return steps


def parse_macro(data: Union[str, bytes, Mapping[str, Any]]) -> Macro:
    """Parse a macro from JSON text or an already decoded mapping.

    Raises:
        MacroParseError: If the encoding is malformed
    """
    if isinstance(data, (str, bytes)):
        data = _decode(data)
    if not isinstance(data, Mapping):
        raise MacroParseError("macro must be an object")

    macro_id = data.get("id")
    if isinstance(macro_id, (int, float)) and not isinstance(macro_id, bool):
        macro_id = str(macro_id)
    if not isinstance(macro_id, str) or not macro_id.strip():
        raise MacroParseError("macro.id is required")

    version = 1
    if "version" in data:
        raw = data["version"]
        try:
            if isinstance(raw, bool):
                raise ValueError(raw)
            version = int(raw)
        except (TypeError, ValueError):
            raise MacroParseError(f"macro.version must be an integer, got {raw!r}") from None

    if "steps" not in data:
        raise MacroParseError("macro.steps must be an array")
    return Macro(id=macro_id, steps=tuple(parse_steps(data["steps"])), version=version)


def _decode(text: Union[str, bytes]) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise MacroParseError(f"invalid JSON: {e}") from None

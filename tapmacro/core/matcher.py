"""Template matching on luminance with alpha masking.

Implements a single-scale, axis-aligned sum-of-absolute-differences
matcher:
- Template preprocessed once into (luminance, inclusion mask), cached by id
- Sampling stride chosen from template area
- Candidates dropped once their best reachable score falls below minScore
- Cancellable: a cancel event or deadline abandons the match
- Score 0..1000 (1000 = identical on every included sample)
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .constants import (
    MATCH_CHECK_EVERY,
    MATCH_COMPACT_RATIO,
    PRECISE_MAX_AREA,
    PRECISE_MIN_SCORE,
    SCORE_MAX,
    STRIDE_LARGE,
    STRIDE_TABLE,
    TEMPLATE_CACHE_SIZE,
)
from .logging import Logger, get_logger
from .model import Frame, MatchResult, Rect, Template
from .pixels import alpha_mask, to_luminance


@dataclass(frozen=True)
class PreparedTemplate:
    """Derived, immutable form of a template used for scoring.

    Attributes:
        template_id: Identity the entry is cached under
        digest: Content digest of the source pixels
        luma: int32 luminance (h, w); 0 where masked out
        mask: bool inclusion mask (h, w)
    """

    template_id: str
    digest: str
    luma: np.ndarray
    mask: np.ndarray

    @property
    def width(self) -> int:
        return int(self.luma.shape[1])

    @property
    def height(self) -> int:
        return int(self.luma.shape[0])


def preprocess_template(template: Template) -> PreparedTemplate:
    """Derive luminance buffer and inclusion mask for a template."""
    mask = alpha_mask(template.pixels)
    luma = np.where(mask, to_luminance(template.pixels), 0).astype(np.int32)
    luma.setflags(write=False)
    mask.setflags(write=False)
    return PreparedTemplate(
        template_id=template.id,
        digest=template.digest,
        luma=luma,
        mask=mask,
    )


def choose_stride(width: int, height: int, min_score: int) -> int:
    """Pick the sampling stride for a template.

    Small templates are compared at full resolution; a high minScore on a
    small icon forces stride 1.
    """
    area = width * height
    if min_score >= PRECISE_MIN_SCORE and area <= PRECISE_MAX_AREA:
        return 1
    for max_area, stride in STRIDE_TABLE:
        if area <= max_area:
            return stride
    return STRIDE_LARGE


def search_bounds(
    frame_w: int,
    frame_h: int,
    tpl_w: int,
    tpl_h: int,
    region: Optional[Rect] = None,
) -> Optional[tuple[int, int, int, int]]:
    """Valid top-left positions for the template, inclusive on all sides.

    The optional region is intersected with the area keeping the template
    fully inside the frame.

    Returns:
        (left, top, right, bottom) or None if empty
    """
    left = max(0, region.left if region else 0)
    top = max(0, region.top if region else 0)
    right = min(frame_w - tpl_w, (region.right if region else frame_w) - tpl_w)
    bottom = min(frame_h - tpl_h, (region.bottom if region else frame_h) - tpl_h)
    if left > right or top > bottom:
        return None
    return left, top, right, bottom


def sample_offsets(prepared: PreparedTemplate, stride: int) -> tuple[np.ndarray, np.ndarray]:
    """Included template sample coordinates at the given stride, row-major."""
    ys, xs = np.nonzero(prepared.mask[::stride, ::stride])
    return ys * stride, xs * stride


class TemplateCache:
    """LRU cache of prepared templates keyed by template id.

    An entry is reused only while the template's content digest matches;
    changed bytes for the same id recompute the entry. Concurrent inserts
    for the same id are last-write-wins.
    """

    def __init__(self, max_size: int = TEMPLATE_CACHE_SIZE) -> None:
        self._max_size = max(1, max_size)
        self._entries: OrderedDict[str, PreparedTemplate] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, template: Template) -> PreparedTemplate:
        """Return the prepared form of template, computing it if needed."""
        with self._lock:
            entry = self._entries.get(template.id)
            if entry is not None and entry.digest == template.digest:
                self._entries.move_to_end(template.id)
                return entry

        entry = preprocess_template(template)

        with self._lock:
            self._entries[template.id] = entry
            self._entries.move_to_end(template.id)
            while len(self._entries) > self._max_size:
                self._entries.popitem(last=False)
        return entry

    def invalidate(self, template_id: str) -> None:
        """Drop the entry for template_id if present."""
        with self._lock:
            self._entries.pop(template_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, template_id: str) -> bool:
        with self._lock:
            return template_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class TemplateMatcher:
    """Locates templates in frames."""

    def __init__(
        self,
        cache: Optional[TemplateCache] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._cache = cache or TemplateCache()
        self._logger = logger or get_logger()

    @property
    def cache(self) -> TemplateCache:
        return self._cache

    def prepare(self, template: Template) -> PreparedTemplate:
        """Get the cached prepared form of a template."""
        return self._cache.get(template)

    def match(
        self,
        frame: Frame,
        template: Template,
        min_score: int = 0,
        region: Optional[Rect] = None,
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> Optional[MatchResult]:
        """Find the best-scoring location of template in frame.

        All candidates are scored together, one template sample at a time.
        While many candidates are alive the samples are read through strided
        views of the luminance plane; once few survive, only those are
        gathered. Pruning and the cancel/deadline check run every
        MATCH_CHECK_EVERY samples.

        Args:
            frame: Frame to search
            template: Template to locate
            min_score: Minimum acceptable score, clamped to 0..1000
            region: Optional search rectangle in capture space
            cancel: Abandons the match when set
            deadline: time.monotonic() value after which the match is abandoned

        Returns:
            MatchResult at the template centroid, or None if no candidate
            reaches min_score or the match was abandoned
        """
        min_score = max(0, min(SCORE_MAX, int(min_score)))

        frame_w, frame_h = frame.width, frame.height
        tpl_w, tpl_h = template.width, template.height
        if tpl_w <= 0 or tpl_h <= 0 or tpl_w > frame_w or tpl_h > frame_h:
            return None

        bounds = search_bounds(frame_w, frame_h, tpl_w, tpl_h, region)
        if bounds is None:
            return None
        left, top, right, bottom = bounds

        if not frame.has_consistent_size():
            actual_h, actual_w = frame.pixels.shape[:2]
            self._logger.warning(
                f"帧尺寸变化, 放弃匹配 {template.id}: "
                f"{frame_w}x{frame_h} -> {actual_w}x{actual_h}"
            )
            return None

        prepared = self.prepare(template)
        stride = choose_stride(tpl_w, tpl_h, min_score)
        ty, tx = sample_offsets(prepared, stride)
        samples = int(ty.size)
        if samples == 0:
            # Fully transparent template
            return None
        max_total = 255 * samples
        # score >= min_score  <=>  accum <= limit
        limit = ((SCORE_MAX + 1 - min_score) * max_total - 1) // SCORE_MAX

        luma = to_luminance(frame.pixels).astype(np.int16)
        tpl_values = prepared.luma[ty, tx].astype(np.int16)

        rows = (bottom - top) // stride + 1
        cols = (right - left) // stride + 1
        span_y = (rows - 1) * stride + 1
        span_x = (cols - 1) * stride + 1

        accum = np.zeros((rows, cols), dtype=np.int32)
        scratch = np.empty((rows, cols), dtype=np.int16)
        # Sparse mode: flat luma offsets of surviving candidates, row-major
        flat: Optional[np.ndarray] = None
        survivors: Optional[np.ndarray] = None
        flat_luma = luma.ravel()
        tpl_flat = ty.astype(np.int64) * frame_w + tx

        for k in range(samples):
            if survivors is None:
                y0 = top + int(ty[k])
                x0 = left + int(tx[k])
                window = luma[y0:y0 + span_y:stride, x0:x0 + span_x:stride]
                np.subtract(window, tpl_values[k], out=scratch)
                np.abs(scratch, out=scratch)
                accum += scratch
            else:
                accum += np.abs(np.take(flat_luma, flat + tpl_flat[k]) - tpl_values[k])

            if (k + 1) % MATCH_CHECK_EVERY:
                continue
            if self._abandoned(cancel, deadline):
                self._logger.debug(f"match {template.id}: 已中止 ({k + 1}/{samples})")
                return None
            if min_score == 0:
                continue

            alive = accum <= limit
            count = int(np.count_nonzero(alive))
            if count == 0:
                return None
            if survivors is None:
                if count * MATCH_COMPACT_RATIO <= accum.size:
                    survivors = np.flatnonzero(alive)
                    accum = accum.ravel()[survivors]
                    flat = (
                        (top + (survivors // cols) * stride) * frame_w
                        + left + (survivors % cols) * stride
                    )
            elif count < accum.size:
                survivors = survivors[alive]
                accum = accum[alive]
                flat = flat[alive]

        scores = SCORE_MAX - (accum.ravel().astype(np.int64) * SCORE_MAX) // max_total
        best = int(np.argmax(scores))
        best_score = int(scores[best])
        if best_score < min_score:
            return None

        if survivors is not None:
            best = int(survivors[best])
        result = MatchResult(
            x=left + (best % cols) * stride + tpl_w // 2,
            y=top + (best // cols) * stride + tpl_h // 2,
            score=best_score,
        )
        self._logger.debug(
            f"match {template.id}: best={best_score} at ({result.x},{result.y}) "
            f"t={tpl_w}x{tpl_h} step={stride} roi=[{left},{top},{right},{bottom}]"
        )
        return result

    @staticmethod
    def _abandoned(cancel: Optional[threading.Event], deadline: Optional[float]) -> bool:
        if cancel is not None and cancel.is_set():
            return True
        return deadline is not None and time.monotonic() >= deadline

"""Geometry and coordinate validation utilities.

Checks that Spaces snapshots are usable for mapping and that
dispatch-space coordinates fall on the physical surface before a macro
is started.
"""

from dataclasses import dataclass
from typing import Optional

from ..model import DisplayInfo, Point, Spaces


@dataclass
class ValidationResult:
    """Result of a validation check.

    Attributes:
        valid: True if validation passed
        errors: List of error messages if validation failed
    """

    valid: bool
    errors: list[str]

    @classmethod
    def success(cls) -> "ValidationResult":
        """Create a successful validation result."""
        return cls(valid=True, errors=[])

    @classmethod
    def failure(cls, *errors: str) -> "ValidationResult":
        """Create a failed validation result with error messages."""
        return cls(valid=False, errors=list(errors))

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.valid


def validate_display_info(info: Optional[DisplayInfo]) -> ValidationResult:
    """Validate physical size and insets reported by the dispatch side.

    Checks:
    - display info is available
    - physical width and height > 0
    - insets are non-negative and leave a positive gesture area
    """
    if info is None:
        return ValidationResult.failure("显示信息不可用")

    errors: list[str] = []
    if info.phys.width <= 0 or info.phys.height <= 0:
        errors.append(f"物理尺寸无效: {info.phys.width}x{info.phys.height}")

    insets = info.insets
    if min(insets.left, insets.top, insets.right, insets.bottom) < 0:
        errors.append("边距不能为负数")
    if info.phys.width - insets.horizontal <= 0:
        errors.append("水平边距超过物理宽度")
    if info.phys.height - insets.vertical <= 0:
        errors.append("垂直边距超过物理高度")

    if errors:
        return ValidationResult.failure(*errors)
    return ValidationResult.success()


def validate_spaces(spaces: Optional[Spaces]) -> ValidationResult:
    """Validate a Spaces snapshot before mapping through it.

    Checks:
    - gesture area width and height > 0
    - content rect width and height > 0
    """
    if spaces is None:
        return ValidationResult.failure("几何信息不可用")

    errors: list[str] = []
    if spaces.gesture_area_w <= 0 or spaces.gesture_area_h <= 0:
        errors.append(
            f"手势区域无效: {spaces.gesture_area_w}x{spaces.gesture_area_h}"
        )
    if not spaces.content.is_valid():
        c = spaces.content
        errors.append(f"内容区域无效: [{c.left}, {c.top}, {c.right}, {c.bottom}]")

    if errors:
        return ValidationResult.failure(*errors)
    return ValidationResult.success()


def validate_point_in_bounds(
    point: Point,
    name: str,
    info: DisplayInfo,
) -> ValidationResult:
    """Validate that a dispatch-space point lies on the physical surface.

    Args:
        point: The point to validate
        name: Human-readable name for error messages (e.g., "点击点")
        info: Dispatch-side display info

    Returns:
        ValidationResult indicating success or failure with error message
    """
    if not (0 <= point.x < info.phys.width and 0 <= point.y < info.phys.height):
        return ValidationResult.failure(
            f"{name}坐标 ({point.x}, {point.y}) 超出屏幕范围 "
            f"{info.phys.width}x{info.phys.height}"
        )
    return ValidationResult.success()

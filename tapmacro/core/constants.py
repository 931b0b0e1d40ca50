"""Global constants for matching, mapping, calibration and macro execution."""

from typing import Final

# Template matching
ALPHA_THRESHOLD: Final[int] = 128
"""模板像素alpha >= 该值才参与匹配"""

SCORE_MAX: Final[int] = 1000
"""满分 (所有有效采样完全一致)"""

STRIDE_TABLE: Final[tuple[tuple[int, int], ...]] = (
    (60 * 60, 1),
    (120 * 120, 2),
    (200 * 200, 3),
    (300 * 300, 4),
)
"""(模板面积上限, 采样步长), 超出最后一档用 STRIDE_LARGE"""

STRIDE_LARGE: Final[int] = 6
"""大模板采样步长"""

PRECISE_MIN_SCORE: Final[int] = 850
"""minScore >= 该值且模板较小时强制步长1"""

PRECISE_MAX_AREA: Final[int] = 100 * 100
"""强制步长1的模板面积上限"""

TEMPLATE_CACHE_SIZE: Final[int] = 64
"""模板预处理缓存条数 (LRU)"""

MATCH_CHECK_EVERY: Final[int] = 32
"""每累计多少个采样检查一次取消/截止时间并剪枝"""

MATCH_COMPACT_RATIO: Final[int] = 8
"""存活候选不足 1/该值 时改为稀疏收集"""

MATCH_MIN_BUDGET_MS: Final[int] = 250
"""单次匹配至少可用的毫秒数 (即使找图超时更短)"""

# Content rect detection
BORDER_SAMPLE_COUNT: Final[int] = 96
"""每行/列稀疏采样点数"""

BORDER_VARIANCE_THRESHOLD: Final[float] = 12.0
"""亮度方差低于该值视为边框 (0-255亮度)"""

MIN_CONTENT_FRACTION: Final[float] = 0.6
"""裁剪后宽/高不足该比例则放弃裁剪"""

CONTENT_RECT_REFRESH_SEC: Final[float] = 1.5
"""内容区域重新检测间隔秒数"""

# Macro execution
POLL_INTERVAL_MS: Final[int] = 80
"""找图轮询间隔毫秒"""

IMAGE_GESTURE_TIMEOUT_MS: Final[int] = 1200
"""TapImage/SwipeImage 找图超时毫秒"""

IMAGE_TAP_DURATION_MS: Final[int] = 100
"""TapImage 点击时长毫秒"""

DEFAULT_MIN_SCORE: Final[int] = 800
"""步骤默认最低分"""

WAIT_IMAGE_TIMEOUT_MS: Final[int] = 2000
"""WaitImage 默认超时毫秒"""

FIND_IMAGE_TIMEOUT_MS: Final[int] = 1500
"""FindImage 默认超时毫秒"""

TAP_DURATION_MS: Final[int] = 80
"""Tap 默认时长毫秒"""

SWIPE_DURATION_MS: Final[int] = 300
"""Swipe/SwipeImage 默认时长毫秒"""

# Mapping
DIRECT_MAP_TOLERANCE_PX: Final[int] = 4
"""截图与物理尺寸相差不超过该值且无边距时按1:1映射"""

# Calibration
CALIB_POINT_FRACTIONS: Final[tuple[tuple[float, float], ...]] = (
    (0.2, 0.2),
    (0.8, 0.25),
    (0.3, 0.75),
)
"""三个标定点在手势区域内的相对位置 (不共线)"""

CALIB_SEARCH_RADIUS_PX: Final[int] = 60
"""在预期位置周围搜索标记的半径"""

CALIB_SETTLE_MS: Final[int] = 200
"""显示标记后等待绘制完成的毫秒数"""

MARKER_MIN_RED: Final[int] = 200
MARKER_MIN_BLUE: Final[int] = 200
MARKER_MAX_GREEN: Final[int] = 80
"""品红标记颜色过滤条件"""

# Capture
CAPTURE_RETRY_N: Final[int] = 3
"""截图失败重试次数"""

CAPTURE_RETRY_INTERVAL_MS: Final[int] = 100
"""截图重试间隔毫秒"""

# Debug / logging
DEBUG_CROP_SIZE: Final[int] = 100
"""调试裁剪图边长"""

LOG_BUFFER_SIZE: Final[int] = 200
"""日志环形缓冲最大条数"""

# Luminance weights (ITU-R BT.601, integer per-mille)
LUMA_WEIGHT_R: Final[int] = 299
LUMA_WEIGHT_G: Final[int] = 587
LUMA_WEIGHT_B: Final[int] = 114

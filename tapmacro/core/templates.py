"""Template registry: template id → Template.

Templates are usually loaded from PNG files (Pillow, converted to RGBA so
transparency becomes the inclusion mask).
"""

import threading
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image

from .logging import Logger, get_logger
from .matcher import TemplateCache
from .model import Template


class TemplateRegistry:
    """Thread-safe in-memory store of templates.

    Replacing or removing an id drops the matcher's prepared entry for it
    when a cache is attached.
    """

    def __init__(
        self,
        cache: Optional[TemplateCache] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._templates: dict[str, Template] = {}
        self._lock = threading.Lock()
        self._cache = cache
        self._logger = logger or get_logger()

    def put(self, template_id: str, pixels: np.ndarray) -> Template:
        """Store pixels (h, w, 3|4) under template_id."""
        template = Template(template_id, pixels)
        with self._lock:
            previous = self._templates.get(template_id)
            self._templates[template_id] = template
        if previous is not None and previous.digest != template.digest and self._cache is not None:
            self._cache.invalidate(template_id)
        return template

    def get(self, template_id: str) -> Optional[Template]:
        with self._lock:
            return self._templates.get(template_id)

    def remove(self, template_id: str) -> None:
        with self._lock:
            self._templates.pop(template_id, None)
        if self._cache is not None:
            self._cache.invalidate(template_id)

    def ids(self) -> list[str]:
        with self._lock:
            return sorted(self._templates)

    def __contains__(self, template_id: str) -> bool:
        with self._lock:
            return template_id in self._templates

    def load_png(self, template_id: str, path: Union[str, Path]) -> Template:
        """Load an image file as RGBA and store it under template_id.

        Raises:
            OSError: If the file cannot be read or decoded
        """
        with Image.open(path) as img:
            pixels = np.asarray(img.convert("RGBA"), dtype=np.uint8)
        template = self.put(template_id, pixels)
        self._logger.debug(f"加载模板 {template_id}: {template.width}x{template.height} ({path})")
        return template

    def load_dir(self, directory: Union[str, Path]) -> list[str]:
        """Load every *.png in directory, using the file stem as id.

        Returns:
            Ids loaded, sorted
        """
        loaded = []
        for path in sorted(Path(directory).glob("*.png")):
            try:
                self.load_png(path.stem, path)
            except OSError as e:
                self._logger.warning(f"无法加载模板 {path.name}: {e}")
                continue
            loaded.append(path.stem)
        self._logger.info(f"已加载 {len(loaded)} 个模板")
        return loaded

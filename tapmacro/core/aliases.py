"""In-memory alias registry: name → steps JSON.

Aliases let a short name stand for a reusable step list. Resolution
parses the stored steps on demand, so a malformed alias is reported when
it is used rather than when it is stored.
"""

import threading
from typing import Optional

from .macro import Macro, parse_steps


class AliasRegistry:
    """Thread-safe name → steps JSON mapping."""

    def __init__(self) -> None:
        self._aliases: dict[str, str] = {}
        self._lock = threading.Lock()

    def put(self, name: str, steps_json: str) -> None:
        with self._lock:
            self._aliases[name] = steps_json

    def get(self, name: str) -> Optional[str]:
        with self._lock:
            return self._aliases.get(name)

    def remove(self, name: str) -> None:
        with self._lock:
            self._aliases.pop(name, None)

    def clear(self) -> None:
        with self._lock:
            self._aliases.clear()

    def list(self) -> dict[str, str]:
        """Copy of all aliases."""
        with self._lock:
            return dict(self._aliases)

    def resolve(self, name: str) -> Optional[Macro]:
        """Parse the alias into a macro whose id is the alias name.

        Returns:
            Macro, or None if the alias is unknown

        Raises:
            MacroParseError: If the stored steps are malformed
        """
        steps_json = self.get(name)
        if steps_json is None:
            return None
        return Macro(id=name, steps=tuple(parse_steps(steps_json)))

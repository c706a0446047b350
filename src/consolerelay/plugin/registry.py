"""
Host-owned registry of build-wrapper extensions.
"""

import logging
import threading
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class ExtensionRegistry:
    """
    Name to extension mapping owned by the embedding host.

    Extensions are registered explicitly and looked up by name; there is no
    module-level instance.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._extensions: Dict[str, Any] = {}

    def register(self, name: str, extension: Any) -> None:
        """
        Register an extension under a unique name.

        Raises:
            ValueError: If the name is empty or already taken
        """
        if not name or not name.strip():
            raise ValueError("Extension name must not be empty")
        with self._lock:
            if name in self._extensions:
                raise ValueError(f"Extension '{name}' is already registered")
            self._extensions[name] = extension
        logger.debug(f"Registered extension '{name}' ({type(extension).__name__})")

    def get(self, name: str) -> Any:
        """
        Look up an extension.

        Raises:
            KeyError: If nothing is registered under the name
        """
        with self._lock:
            try:
                return self._extensions[name]
            except KeyError:
                raise KeyError(f"No extension registered as '{name}'") from None

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._extensions)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._extensions

    def __len__(self) -> int:
        with self._lock:
            return len(self._extensions)

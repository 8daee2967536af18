"""
Stable per-device player identity.

The room engine never generates identities itself; it is handed an
``IdentityProvider`` and calls ``get_or_create()`` once per room.
"""

import uuid
from pathlib import Path
from typing import Optional, Protocol, Union

from .utils.logging import get_logger
from .utils.errors import IdentityError, ErrorContext


logger = get_logger("poker-sync.identity")


class IdentityProvider(Protocol):
    """Capability yielding this device's stable player id."""

    def get_or_create(self) -> str:
        ...


class StaticIdentityProvider:
    """Identity fixed at construction time."""

    def __init__(self, player_id: str):
        if not player_id:
            raise IdentityError("player_id cannot be empty")
        self.player_id = player_id

    def get_or_create(self) -> str:
        return self.player_id


class FileIdentityProvider:
    """
    Identity persisted in a small text file.

    The first call writes a fresh UUID4; later calls, including from new
    processes, read the same value back.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self._cached: Optional[str] = None

    def get_or_create(self) -> str:
        if self._cached:
            return self._cached

        try:
            if self.path.exists():
                value = self.path.read_text(encoding="utf-8").strip()
                if value:
                    self._cached = value
                    return value
                logger.warning("identity_file_empty", path=str(self.path))

            value = str(uuid.uuid4())
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(value + "\n", encoding="utf-8")
        except OSError as e:
            raise IdentityError(
                f"Cannot access identity file {self.path}: {e}",
                context=ErrorContext(component="identity", operation="get_or_create"),
                cause=e
            ) from e

        logger.info("identity_created", path=str(self.path))
        self._cached = value
        return value


__all__ = [
    'IdentityProvider',
    'StaticIdentityProvider',
    'FileIdentityProvider',
]

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

class StorageError(Exception):
    """Base class for persistent store failures."""
    pass

class StorageReadError(StorageError):
    """Raised when a stored collection cannot be read or decoded."""
    pass

class StorageWriteError(StorageError):
    """Raised when a collection could not be written. Nothing was changed."""
    pass

class KeyValueStore(ABC):
    """
    Abstract key-value backend for the finance collections.

    Each key holds one whole collection as a serialized string.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read the raw value stored under a key.

        Args:
            key: Collection key

        Returns:
            The stored string, or None if the key was never written

        Raises:
            StorageReadError: If the backend fails
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Replace the value stored under a key.

        Args:
            key: Collection key
            value: Serialized collection

        Raises:
            StorageWriteError: If the value could not be written
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Remove a key.

        Returns:
            True if the key existed
        """
        pass

    def set_many(self, items: Dict[str, str]) -> None:
        """
        Replace several keys as a single change.

        If one write fails, the keys written before it get their previous
        value back (or are removed again) before the error is raised.

        Raises:
            StorageReadError: If the previous values can't be read; nothing is written
            StorageWriteError: If a value could not be written
        """
        previous = {key: self.get(key) for key in items}
        written: List[str] = []
        try:
            for key, value in items.items():
                self.set(key, value)
                written.append(key)
        except StorageWriteError:
            for key in reversed(written):
                try:
                    if previous[key] is None:
                        self.delete(key)
                    else:
                        self.set(key, previous[key])
                except StorageWriteError as e:
                    logger.error("restore_failed", key=key, error=str(e))
            raise

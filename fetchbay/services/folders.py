"""Folder registry resolving folder keys to destination directories."""

from pathlib import Path
from typing import Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)


def parse_folder_mapping(raw: str) -> Dict[str, str]:
    """Parse ``key:path;key:path`` into an ordered mapping.

    Only the first ``:`` separates key from path, so Windows-style or
    otherwise colon-bearing paths survive. Entries without a separator, an
    empty key or an empty path are skipped.
    """
    mapping: Dict[str, str] = {}
    if not raw:
        return mapping

    for pair in raw.split(";"):
        key, sep, folder_path = pair.partition(":")
        if not sep:
            continue
        key = key.strip()
        folder_path = folder_path.strip()
        if key and folder_path:
            mapping[key] = folder_path

    return mapping


class FolderRegistry:
    """Read-only view of the configured destination folders."""

    def __init__(self, mapping: Dict[str, str]) -> None:
        self._folders: Dict[str, Path] = {
            key: Path(folder).expanduser().absolute() for key, folder in mapping.items()
        }
        logger.debug("folder_registry_initialized", folders=list(self._folders))

    @classmethod
    def from_string(cls, raw: str) -> "FolderRegistry":
        return cls(parse_folder_mapping(raw))

    def resolve(self, folder_key: str) -> Optional[Path]:
        """Return the absolute folder for ``folder_key`` or None if unknown."""
        return self._folders.get(folder_key)

    def keys(self) -> List[str]:
        """Folder keys in configuration order."""
        return list(self._folders)

    def ensure(self, folder_key: str) -> Path:
        """Create the folder for ``folder_key`` if needed and return it.

        Raises:
            KeyError: If the key is not configured.
        """
        folder = self._folders[folder_key]
        if not folder.exists():
            folder.mkdir(parents=True, exist_ok=True)
            logger.info("destination_folder_created", folder_key=folder_key, path=str(folder))
        return folder

    def __contains__(self, folder_key: object) -> bool:
        return folder_key in self._folders

    def __len__(self) -> int:
        return len(self._folders)

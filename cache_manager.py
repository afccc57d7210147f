import logging
import os
from typing import List, Optional

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".png")


class CacheCurator:
    """Keeps the processed-wallpaper directory bounded and finds fallbacks in it"""

    def __init__(self, directory: str):
        self.directory = os.path.abspath(os.path.expanduser(directory))
        os.makedirs(self.directory, exist_ok=True)

    @property
    def cache_dir(self) -> str:
        return self.directory

    def list_images(self) -> List[str]:
        """Return cached image paths, oldest first"""
        try:
            names = os.listdir(self.directory)
        except FileNotFoundError:
            return []

        entries = []
        for name in names:
            if not name.lower().endswith(IMAGE_EXTENSIONS):
                continue
            path = os.path.join(self.directory, name)
            try:
                if not os.path.isfile(path):
                    continue
                entries.append((os.path.getmtime(path), name, path))
            except OSError:
                # removed or locked by someone else between listdir and stat
                continue
        entries.sort()
        return [path for _, _, path in entries]

    def enforce_bound(self, max_count: int) -> int:
        """Delete the oldest files until at most max_count remain. Returns how many were removed."""
        if max_count <= 0:
            return 0

        images = self.list_images()
        excess = len(images) - max_count
        if excess <= 0:
            return 0

        removed = 0
        for path in images[:excess]:
            try:
                os.remove(path)
                removed += 1
                logger.info("[CACHE] Removed: %s", os.path.basename(path))
            except OSError as e:
                logger.warning("[CACHE] Failed to remove %s: %s", path, e)
        return removed

    def clear_all(self) -> int:
        removed = 0
        for path in self.list_images():
            try:
                os.remove(path)
                removed += 1
            except OSError as e:
                logger.debug("[CACHE] Skipping %s: %s", path, e)
        logger.info("[CACHE] Cleared %d cached wallpapers", removed)
        return removed

    def latest_fallback(self) -> Optional[str]:
        images = self.list_images()
        return images[-1] if images else None

import logging
import os
import re
from typing import Optional

from .config import DEFAULT_DATA_DIR

DEFAULT_SCREENSHOT_DIR = os.path.join(DEFAULT_DATA_DIR, "screenshots")


def sanitize_filename(name: str, replacement: str = "_") -> str:
    cleaned = re.sub(r'[<>:"/\\|?*\x00-\x1f]', replacement, name).strip(" .")
    return cleaned or replacement


class ScreenshotStore:
    """Screenshots grouped as ``<root>/<site>/[<category>/]<label>.png``."""

    def __init__(self, root: str = DEFAULT_SCREENSHOT_DIR, site: str = "epic-games") -> None:
        self.root = root
        self.site = site

    def path_for(self, category: Optional[str], label: str) -> str:
        parts = [self.root, self.site]
        if category:
            parts.append(category)
        return os.path.join(*parts, sanitize_filename(label) + ".png")

    def exists(self, category: Optional[str], label: str) -> bool:
        return os.path.exists(self.path_for(category, label))

    def save(self, category: Optional[str], label: str, image: bytes) -> str:
        path = self.path_for(category, label)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(image)
        logging.debug("Saved screenshot %s", path)
        return path

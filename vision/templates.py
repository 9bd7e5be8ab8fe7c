import logging
from pathlib import Path
from typing import Dict, Optional

import cv2
import numpy as np


logger = logging.getLogger(__name__)

EMPTY_TEMPL = np.empty((0, 0, 3), dtype=np.uint8)


class TemplateStore:
    """
    Template images by name, loaded lazily from a directory and cached.

    Unknown names resolve to an empty buffer rather than raising.
    """

    def __init__(self, templ_dir: Optional[Path] = None):
        self.templ_dir = Path(templ_dir) if templ_dir else None
        self._templs: Dict[str, np.ndarray] = {}

    def add(self, name: str, image: np.ndarray):
        self._templs[name] = image

    def _path_for(self, name: str) -> Optional[Path]:
        if self.templ_dir is None:
            return None

        path = self.templ_dir / name
        if path.suffix == "":
            path = path.with_suffix(".png")
        return path

    def get_templ(self, name: str) -> np.ndarray:
        if name in self._templs:
            return self._templs[name]

        path = self._path_for(name)
        if path is None or not path.exists():
            return EMPTY_TEMPL

        tmpl = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if tmpl is None:
            logger.warning("Template can't be read: %s", path)
            return EMPTY_TEMPL

        self._templs[name] = tmpl
        return tmpl

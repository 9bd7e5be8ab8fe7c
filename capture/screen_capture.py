import mss
import numpy as np
import cv2

from vision.params import Rect


class ScreenCapture:
    """BGR frames of one monitor; regions are relative to that monitor."""

    def __init__(self, monitor=1):
        self.sct = mss.mss()
        if not 0 <= monitor < len(self.sct.monitors):
            raise ValueError(f"Monitor {monitor} not found ({len(self.sct.monitors) - 1} available)")
        self.bounds = self.sct.monitors[monitor]

    def _shot(self, area) -> np.ndarray:
        bgra = np.array(self.sct.grab(area))
        return cv2.cvtColor(bgra, cv2.COLOR_BGRA2BGR)

    def grab(self) -> np.ndarray:
        return self._shot(self.bounds)

    def grab_region(self, rect: Rect) -> np.ndarray:
        area = {
            "top": self.bounds["top"] + rect.y,
            "left": self.bounds["left"] + rect.x,
            "width": rect.w,
            "height": rect.h
        }
        return self._shot(area)

    def close(self):
        self.sct.close()

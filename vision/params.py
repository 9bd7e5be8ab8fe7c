from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from vision.errors import MatchConfigError


DEFAULT_THRESHOLD = 0.8


# -----------------------------
# Geometry
# -----------------------------

@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    w: int
    h: int

    def clip_to(self, img_w: int, img_h: int) -> "Rect":
        x = min(max(0, int(self.x)), img_w)
        y = min(max(0, int(self.y)), img_h)
        w = max(0, min(int(self.w) + min(0, int(self.x)), img_w - x))
        h = max(0, min(int(self.h) + min(0, int(self.y)), img_h - y))
        return Rect(x, y, w, h)

    def to_list(self) -> List[int]:
        return [self.x, self.y, self.w, self.h]


def make_roi(image: np.ndarray, roi: Optional[Rect]) -> Tuple[np.ndarray, Rect]:
    """
    Crop image to roi, clipped to the image bounds.

    Returns:
        (cropped view, effective roi)
    """
    ih, iw = image.shape[:2]
    if roi is None:
        return image, Rect(0, 0, iw, ih)

    r = roi.clip_to(iw, ih)
    return image[r.y : r.y + r.h, r.x : r.x + r.w], r


# -----------------------------
# Match methods
# -----------------------------

class MatchMethod(Enum):
    CCOEFF = "ccoeff"
    RGB_COUNT = "rgbcount"
    HSV_COUNT = "hsvcount"
    INVALID = "invalid"

    @property
    def is_count(self) -> bool:
        return self in (MatchMethod.RGB_COUNT, MatchMethod.HSV_COUNT)

    @classmethod
    def parse(cls, name: str) -> "MatchMethod":
        key = str(name).strip().lower()
        if key in ("", "default"):
            return cls.CCOEFF
        for m in cls:
            if m is not cls.INVALID and m.value == key:
                return m
        return cls.INVALID


# -----------------------------
# Template references
# -----------------------------

@dataclass(frozen=True)
class NamedTemplate:
    name: str


@dataclass(frozen=True, eq=False)
class InlineTemplate:
    image: np.ndarray
    name: str = ""


TemplateRef = Union[NamedTemplate, InlineTemplate]

# lower/upper bound, each of length 1 (gray) or 3 (per channel)
MaskRange = Tuple[Sequence[int], Sequence[int]]


@dataclass
class MatcherParams:
    templs: List[TemplateRef] = field(default_factory=list)
    methods: List[MatchMethod] = field(default_factory=list)
    mask_range: List[MaskRange] = field(default_factory=list)
    mask_with_src: bool = False
    mask_with_close: bool = False
    templ_thres: List[float] = field(default_factory=list)


# -----------------------------
# Results
# -----------------------------

@dataclass
class RawMatchResult:
    matched: np.ndarray
    templ: np.ndarray
    templ_name: str = ""


@dataclass(frozen=True)
class MatchResult:
    rect: Rect
    score: float
    templ_name: str = ""


# -----------------------------
# Config parsing
# -----------------------------

def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def params_from_dict(data: Dict[str, Any]) -> MatcherParams:
    """
    Build MatcherParams from one task definition (as loaded from YAML).

    `template`, `method` and `threshold` accept a scalar or a list. Unknown method
    names become MatchMethod.INVALID so the matching call fails on them.

    Raises:
        MatchConfigError: mask_range or threshold entries of the wrong shape or type
    """
    templs = [NamedTemplate(str(t)) for t in _as_list(data.get("template"))]
    methods = [MatchMethod.parse(m) for m in _as_list(data.get("method"))]

    thres = _as_list(data.get("threshold"))
    if not thres and templs:
        thres = [DEFAULT_THRESHOLD] * len(templs)
    try:
        templ_thres = [float(t) for t in thres]
    except (TypeError, ValueError):
        raise MatchConfigError(f"Invalid threshold: {data.get('threshold')!r}") from None

    raw_range = data.get("mask_range") or []
    if not isinstance(raw_range, (list, tuple)):
        raise MatchConfigError(f"mask_range must be a list of [lower, upper]: {raw_range!r}")

    mask_range = []
    for pair in raw_range:
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise MatchConfigError(f"Invalid mask range entry: {pair!r}")
        lower, upper = pair
        mask_range.append((_as_list(lower), _as_list(upper)))

    return MatcherParams(
        templs=templs,
        methods=methods,
        mask_range=mask_range,
        mask_with_src=bool(data.get("mask_with_src", False)),
        mask_with_close=bool(data.get("mask_with_close", False)),
        templ_thres=templ_thres,
    )


def roi_from_dict(data: Dict[str, Any]) -> Optional[Rect]:
    rect = data.get("roi")
    if rect is None:
        return None
    if not isinstance(rect, (list, tuple)) or len(rect) != 4:
        raise MatchConfigError(f"Invalid roi; expected [x, y, w, h]: {rect!r}")
    try:
        x, y, w, h = (int(v) for v in rect)
    except (TypeError, ValueError):
        raise MatchConfigError(f"Invalid roi; expected [x, y, w, h]: {rect!r}") from None
    return Rect(x, y, w, h)

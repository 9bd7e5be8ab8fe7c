from typing import Sequence

import cv2
import numpy as np

from vision.errors import MatchConfigError
from vision.params import MaskRange


CLOSE_KERNEL = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))


def check_range(lower: Sequence[int], upper: Sequence[int]):
    if len(lower) == len(upper) and len(lower) in (1, 3):
        return
    raise MatchConfigError(f"Invalid mask range: {list(lower)} - {list(upper)}")


def validate_mask_range(mask_range: Sequence[MaskRange]):
    """Raises MatchConfigError on the first range with badly shaped bounds."""
    for lower, upper in mask_range:
        check_range(lower, upper)


def range_mask(image: np.ndarray, gray: np.ndarray, lower: Sequence[int], upper: Sequence[int]) -> np.ndarray:
    """Mask of pixels within one [lower, upper] predicate."""
    check_range(lower, upper)

    if len(lower) == 1:
        return cv2.inRange(gray, int(lower[0]), int(upper[0]))

    return cv2.inRange(
        image,
        np.array(lower, dtype=np.uint8),
        np.array(upper, dtype=np.uint8),
    )


def build_mask(image: np.ndarray, mask_range: Sequence[MaskRange], with_close: bool = False) -> np.ndarray:
    """
    Union of all mask ranges over image.

    A pixel is active (255) when it satisfies any range. Single-value bounds are
    tested on the grayscale conversion, three-value bounds on the channels as given.

    Raises:
        MatchConfigError: a range has bounds of any other length
    """
    gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

    # union, not intersection
    mask = np.zeros(gray.shape, dtype=np.uint8)
    for lower, upper in mask_range:
        mask = cv2.bitwise_or(mask, range_mask(image, gray, lower, upper))

    if with_close:
        mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, CLOSE_KERNEL)

    return mask

import cv2
import numpy as np


def count_confidence(image_active: np.ndarray, templ_active: np.ndarray) -> np.ndarray:
    """
    F1 score of color counting at every window position.

    Correlating binary masks counts the pixels active in both, so TM_CCORR of the
    image mask against the template mask gives true positives per window, and against
    the inverted template mask gives false positives.

    Returns:
        float32 matrix in [0, 1], same shape as a matchTemplate result
    """
    image_bin = (image_active > 0).astype(np.float32)
    templ_bin = (templ_active > 0).astype(np.float32)

    tp_fn = int(np.count_nonzero(templ_bin))
    tp = np.rint(cv2.matchTemplate(image_bin, templ_bin, cv2.TM_CCORR))
    fp = np.rint(cv2.matchTemplate(image_bin, 1.0 - templ_bin, cv2.TM_CCORR))

    denom = tp + fp + tp_fn
    result = np.zeros(tp.shape, dtype=np.float32)
    np.divide(2.0 * tp, denom, out=result, where=denom > 0)
    return result


def fuse(matched: np.ndarray, confidence: np.ndarray) -> np.ndarray:
    return cv2.multiply(matched.astype(np.float32), confidence.astype(np.float32))

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import cv2
import numpy as np

from vision.errors import MatcherError, MatchConfigError, TemplateResolutionError, TemplateSizeError
from vision.fusion import count_confidence, fuse
from vision.mask import build_mask, validate_mask_range
from vision.params import (
    DEFAULT_THRESHOLD,
    InlineTemplate,
    MatcherParams,
    MatchMethod,
    MatchResult,
    NamedTemplate,
    RawMatchResult,
    Rect,
    TemplateRef,
    make_roi,
)
from vision.templates import TemplateStore


logger = logging.getLogger(__name__)

# lower scores are never worth tracing
TRACE_SCORE_CUTOFF = 0.5

# all correlation matching uses the same algorithm
MATCH_ALGORITHM = cv2.TM_CCOEFF_NORMED


@dataclass
class PreparedTemplate:
    templ: np.ndarray
    templ_name: str
    method: MatchMethod


class TemplateMatcher:
    """
    Finds the first of several templates inside a region of a frame.

    All templates are validated up front, then matched one at a time in configured
    order; the first one whose best score reaches its threshold is returned and the
    rest are never matched. Errors in any template abort the whole call.
    """

    def __init__(self, store: Optional[TemplateStore] = None, debug: bool = False, log_tracing: bool = True):
        self.store = store if store is not None else TemplateStore()
        self.debug = debug
        self.log_tracing = log_tracing

    # -----------------------------
    # Entry point
    # -----------------------------

    def analyze(self, image: np.ndarray, roi: Optional[Rect], params: MatcherParams) -> Optional[MatchResult]:
        """
        Returns:
            MatchResult in full-image coordinates, or None when nothing is accepted
            or the call fails
        """
        region, roi = make_roi(image, roi)

        try:
            prepared = self.prepare(region, params)

            for i, p in enumerate(prepared):
                matched = self.match_one(region, p.templ, p.method, params)
                raw = RawMatchResult(matched=matched, templ=p.templ, templ_name=p.templ_name)
                res = accept(raw, roi, threshold_for(params.templ_thres, i), log_tracing=self.log_tracing)
                if res is not None:
                    return res

        except TemplateResolutionError as e:
            logger.error("%s", e)
            if self.debug:
                raise
            return None
        except MatcherError as e:
            logger.error("%s", e)
            return None

        return None

    # -----------------------------
    # Validation
    # -----------------------------

    def resolve(self, ref: TemplateRef):
        if isinstance(ref, NamedTemplate):
            return self.store.get_templ(ref.name), ref.name
        if isinstance(ref, InlineTemplate):
            return ref.image, ref.name
        raise MatchConfigError(f"Unknown template reference: {ref!r}")

    def prepare(self, image: np.ndarray, params: MatcherParams) -> List[PreparedTemplate]:
        """
        Resolve and check every template before any matching is done.

        Raises:
            MatchConfigError: invalid method or mask range
            TemplateResolutionError: a template is empty
            TemplateSizeError: a template is larger than image
        """
        validate_mask_range(params.mask_range)

        ih, iw = image.shape[:2]
        prepared = []

        for i, ref in enumerate(params.templs):
            if i < len(params.methods):
                method = params.methods[i]
            else:
                logger.warning("No method for template %d, using default method: Ccoeff", i)
                method = MatchMethod.CCOEFF

            if method is MatchMethod.INVALID:
                raise MatchConfigError(f"Invalid match method for template {i}")

            templ, templ_name = self.resolve(ref)
            if templ is None or templ.size == 0:
                raise TemplateResolutionError(f"Template is empty: {templ_name!r}")

            th, tw = templ.shape[:2]
            if tw > iw or th > ih:
                raise TemplateSizeError(
                    f"Template too large: {templ_name!r} image size: {iw}x{ih}, templ size: {tw}x{th}"
                )

            # a source mask is used as the template mask
            uses_mask = bool(params.mask_range) and not method.is_count
            if uses_mask and params.mask_with_src and (tw, th) != (iw, ih):
                raise MatchConfigError(
                    f"Mask size {iw}x{ih} does not match template size {tw}x{th}: {templ_name!r}"
                )

            prepared.append(PreparedTemplate(templ=templ, templ_name=templ_name, method=method))

        return prepared

    # -----------------------------
    # Matching
    # -----------------------------

    def match_one(self, image: np.ndarray, templ: np.ndarray, method: MatchMethod, params: MatcherParams) -> np.ndarray:
        image_for_match = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        templ_for_match = cv2.cvtColor(templ, cv2.COLOR_BGR2RGB)

        # counting methods ignore mask_range for the correlation itself
        if not params.mask_range or method.is_count:
            matched = cv2.matchTemplate(image_for_match, templ_for_match, MATCH_ALGORITHM)
        else:
            mask_src = image_for_match if params.mask_with_src else templ_for_match
            mask = build_mask(mask_src, params.mask_range, params.mask_with_close)
            matched = cv2.matchTemplate(image_for_match, templ_for_match, MATCH_ALGORITHM, mask=mask)

        if not method.is_count:
            return matched

        if method is MatchMethod.HSV_COUNT:
            image_for_count = cv2.cvtColor(image, cv2.COLOR_BGR2HSV)
            templ_for_count = cv2.cvtColor(templ, cv2.COLOR_BGR2HSV)
        else:
            image_for_count = image_for_match
            templ_for_count = templ_for_match

        templ_active = build_mask(templ_for_count, params.mask_range)
        image_active = build_mask(image_for_count, params.mask_range)

        return fuse(matched, count_confidence(image_active, templ_active))


# -----------------------------
# Selection
# -----------------------------

def threshold_for(thresholds: Sequence[float], i: int) -> float:
    if i < len(thresholds):
        return thresholds[i]
    logger.warning("No threshold for template %d, using default: %s", i, DEFAULT_THRESHOLD)
    return DEFAULT_THRESHOLD


def accept(raw: RawMatchResult, roi: Rect, threshold: float, log_tracing: bool = True) -> Optional[MatchResult]:
    """Best location of one result, or None when empty or below threshold."""
    if raw.matched is None or raw.matched.size == 0:
        return None

    _, max_val, _, max_loc = cv2.minMaxLoc(raw.matched)
    if not math.isfinite(max_val):
        max_val = 0.0

    th, tw = raw.templ.shape[:2]
    rect = Rect(max_loc[0] + roi.x, max_loc[1] + roi.y, tw, th)

    if log_tracing and max_val > TRACE_SCORE_CUTOFF:
        logger.debug("match_templ | %s score: %.4f rect: %s roi: %s", raw.templ_name, max_val, rect, roi)

    if max_val < threshold:
        return None

    return MatchResult(rect=rect, score=float(max_val), templ_name=raw.templ_name)


def select_result(
    raw_results: Sequence[RawMatchResult],
    roi: Rect,
    thresholds: Sequence[float],
    log_tracing: bool = True,
) -> Optional[MatchResult]:
    """First result, in order, whose best score reaches its threshold."""
    for i, raw in enumerate(raw_results):
        res = accept(raw, roi, threshold_for(thresholds, i), log_tracing=log_tracing)
        if res is not None:
            return res

    return None

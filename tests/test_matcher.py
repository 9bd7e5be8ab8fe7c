import logging

import cv2
import numpy as np
import pytest

from vision.errors import TemplateResolutionError
from vision.fusion import count_confidence
from vision.mask import build_mask
from vision.matcher import TemplateMatcher, select_result
from vision.params import (
    InlineTemplate,
    MatcherParams,
    MatchMethod,
    NamedTemplate,
    RawMatchResult,
    Rect,
)


def named(*names):
    return [NamedTemplate(n) for n in names]


# -----------------------------
# Ground truth recovery
# -----------------------------

def test_named_template_found_at_exact_offset(noise_frame, store):
    matcher = TemplateMatcher(store)
    params = MatcherParams(templs=named("patch_a"), methods=[MatchMethod.CCOEFF], templ_thres=[0.8])

    res = matcher.analyze(noise_frame, None, params)

    assert res is not None
    assert res.rect == Rect(30, 20, 20, 15)
    assert res.score == pytest.approx(1.0, abs=1e-3)
    assert res.templ_name == "patch_a"


def test_rect_is_reported_in_full_image_coordinates(noise_frame, store):
    matcher = TemplateMatcher(store)
    params = MatcherParams(templs=named("patch_b"), methods=[MatchMethod.CCOEFF], templ_thres=[0.8])

    res = matcher.analyze(noise_frame, Rect(40, 30, 70, 50), params)

    assert res is not None
    assert (res.rect.x, res.rect.y) == (70, 50)
    assert (res.rect.w, res.rect.h) == (25, 12)


def test_roi_outside_image_is_clipped(noise_frame, store):
    matcher = TemplateMatcher(store)
    params = MatcherParams(templs=named("patch_b"), templ_thres=[0.8])

    res = matcher.analyze(noise_frame, Rect(60, 40, 500, 500), params)

    assert res is not None
    assert (res.rect.x, res.rect.y) == (70, 50)


def test_inline_template_has_empty_name(noise_frame):
    templ = noise_frame[10:22, 5:25].copy()
    params = MatcherParams(templs=[InlineTemplate(templ)], templ_thres=[0.9])

    res = TemplateMatcher().analyze(noise_frame, None, params)

    assert res is not None
    assert res.templ_name == ""
    assert (res.rect.x, res.rect.y) == (5, 10)


def test_each_call_returns_a_fresh_result(noise_frame, store):
    matcher = TemplateMatcher(store)
    first = matcher.analyze(noise_frame, None, MatcherParams(templs=named("patch_a"), templ_thres=[0.8]))
    second = matcher.analyze(noise_frame, None, MatcherParams(templs=named("patch_b"), templ_thres=[0.8]))

    assert first is not second
    assert first.templ_name == "patch_a"
    assert second.templ_name == "patch_b"


# -----------------------------
# Selection policy
# -----------------------------

def test_thresholds_above_one_never_accept(noise_frame, store):
    params = MatcherParams(
        templs=named("patch_a", "patch_b"),
        methods=[MatchMethod.CCOEFF, MatchMethod.CCOEFF],
        templ_thres=[1.01, 2.0],
    )

    assert TemplateMatcher(store).analyze(noise_frame, None, params) is None


def test_unreachable_first_threshold_falls_through_to_second(noise_frame, store):
    params = MatcherParams(templs=named("patch_a", "patch_b"), templ_thres=[1.5, 0.8])

    res = TemplateMatcher(store).analyze(noise_frame, None, params)

    assert res is not None
    assert res.templ_name == "patch_b"


def test_first_accepted_template_wins_in_configured_order(noise_frame, store):
    params = MatcherParams(templs=named("patch_b", "patch_a"), templ_thres=[0.8, 0.8])

    res = TemplateMatcher(store).analyze(noise_frame, None, params)

    assert res.templ_name == "patch_b"


def test_select_result_sanitizes_non_finite_scores():
    templ = np.zeros((4, 4, 3), dtype=np.uint8)
    matched = np.zeros((3, 3), dtype=np.float32)
    matched[1, 1] = np.inf
    raw = [RawMatchResult(matched=matched, templ=templ, templ_name="inf")]

    assert select_result(raw, Rect(0, 0, 6, 6), [0.5]) is None

    res = select_result(raw, Rect(0, 0, 6, 6), [0.0])
    assert res is not None
    assert res.score == 0.0


def test_select_result_skips_empty_matrices():
    templ = np.zeros((2, 2, 3), dtype=np.uint8)
    good = np.zeros((3, 3), dtype=np.float32)
    good[2, 1] = 0.95
    raw = [
        RawMatchResult(matched=np.empty((0, 0), np.float32), templ=templ, templ_name="empty"),
        RawMatchResult(matched=good, templ=templ, templ_name="good"),
    ]

    res = select_result(raw, Rect(10, 20, 4, 4), [0.1, 0.9])

    assert res.templ_name == "good"
    assert res.rect == Rect(11, 22, 2, 2)


def test_missing_threshold_uses_default(noise_frame, store, caplog):
    params = MatcherParams(templs=named("patch_a"))

    with caplog.at_level(logging.WARNING):
        res = TemplateMatcher(store).analyze(noise_frame, None, params)

    assert res is not None
    assert "default" in caplog.text


# -----------------------------
# Failures
# -----------------------------

def test_template_larger_than_region_aborts(noise_frame, store, caplog):
    params = MatcherParams(templs=named("patch_a"), templ_thres=[0.0])

    with caplog.at_level(logging.ERROR):
        res = TemplateMatcher(store).analyze(noise_frame, Rect(0, 0, 40, 10), params)

    assert res is None
    assert "too large" in caplog.text


def test_size_error_aborts_before_later_templates(noise_frame, store):
    big = np.zeros((200, 10, 3), dtype=np.uint8)
    params = MatcherParams(templs=[InlineTemplate(big, "big")] + named("patch_a"), templ_thres=[0.0, 0.0])

    assert TemplateMatcher(store).analyze(noise_frame, None, params) is None


def test_invalid_method_aborts_whole_call(noise_frame, store, caplog):
    params = MatcherParams(
        templs=named("patch_a", "patch_b"),
        methods=[MatchMethod.CCOEFF, MatchMethod.INVALID],
        templ_thres=[1.5, 0.8],
    )

    with caplog.at_level(logging.ERROR):
        assert TemplateMatcher(store).analyze(noise_frame, None, params) is None
    assert "Invalid match method" in caplog.text


def test_missing_method_defaults_with_warning(noise_frame, store, caplog):
    params = MatcherParams(templs=named("patch_a"), methods=[], templ_thres=[0.8])

    with caplog.at_level(logging.WARNING):
        res = TemplateMatcher(store).analyze(noise_frame, None, params)

    assert res is not None
    assert any(r.levelno == logging.WARNING and "Ccoeff" in r.getMessage() for r in caplog.records)


def test_unknown_template_returns_none(noise_frame, store, caplog):
    params = MatcherParams(templs=named("missing"), templ_thres=[0.5])

    with caplog.at_level(logging.ERROR):
        assert TemplateMatcher(store).analyze(noise_frame, None, params) is None
    assert "missing" in caplog.text


def test_unknown_template_raises_in_debug_mode(noise_frame, store):
    params = MatcherParams(templs=named("missing"), templ_thres=[0.5])

    with pytest.raises(TemplateResolutionError):
        TemplateMatcher(store, debug=True).analyze(noise_frame, None, params)


def test_malformed_mask_range_aborts_and_logs_error(noise_frame, store, caplog):
    params = MatcherParams(
        templs=named("patch_a"),
        methods=[MatchMethod.CCOEFF],
        mask_range=[([1, 2], [3, 4])],
        templ_thres=[0.0],
    )

    with caplog.at_level(logging.ERROR):
        res = TemplateMatcher(store).analyze(noise_frame, None, params)

    assert res is None
    assert any(r.levelno == logging.ERROR and "mask range" in r.getMessage() for r in caplog.records)


def test_source_mask_larger_than_template_aborts(noise_frame, store):
    params = MatcherParams(
        templs=named("patch_a"),
        mask_range=[([0], [255])],
        mask_with_src=True,
        templ_thres=[0.0],
    )

    assert TemplateMatcher(store).analyze(noise_frame, None, params) is None


# -----------------------------
# Masked matching
# -----------------------------

def test_masked_match_recovers_offset(noise_frame, store):
    params = MatcherParams(
        templs=named("patch_a"),
        mask_range=[([0], [127]), ([200], [255])],
        mask_with_close=True,
        templ_thres=[0.9],
    )

    res = TemplateMatcher(store).analyze(noise_frame, None, params)

    assert res is not None
    assert (res.rect.x, res.rect.y) == (30, 20)


def test_source_mask_on_template_sized_roi(noise_frame, store):
    params = MatcherParams(
        templs=named("patch_a"),
        mask_range=[([0], [255])],
        mask_with_src=True,
        templ_thres=[0.9],
    )

    res = TemplateMatcher(store).analyze(noise_frame, Rect(30, 20, 20, 15), params)

    assert res is not None
    assert res.rect == Rect(30, 20, 20, 15)


# -----------------------------
# Counting methods
# -----------------------------

def test_rgb_count_on_solid_swatch_keeps_raw_score(red_square_frame):
    region = red_square_frame[7:17, 12:22].copy()
    frame = np.tile(region, (3, 3, 1))
    swatch = region[:5, :5].copy()
    red_rgb = ([200, 0, 0], [255, 50, 50])
    params = MatcherParams(
        templs=[InlineTemplate(swatch, "swatch")],
        methods=[MatchMethod.RGB_COUNT],
        mask_range=[red_rgb],
        templ_thres=[0.0],
    )

    res = TemplateMatcher().analyze(frame, None, params)

    raw = cv2.matchTemplate(
        cv2.cvtColor(frame, cv2.COLOR_BGR2RGB),
        cv2.cvtColor(swatch, cv2.COLOR_BGR2RGB),
        cv2.TM_CCOEFF_NORMED,
    )
    assert res is not None
    assert res.score == pytest.approx(float(raw.max()), abs=1e-4)

    rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
    rgb_swatch = cv2.cvtColor(swatch, cv2.COLOR_BGR2RGB)
    conf = count_confidence(build_mask(rgb_frame, [red_rgb]), build_mask(rgb_swatch, [red_rgb]))
    assert conf.shape == raw.shape
    assert conf.min() == pytest.approx(1.0)
    assert conf.max() == pytest.approx(1.0)


def test_hsv_count_scores_colored_region(red_square_frame):
    templ = red_square_frame[5:19, 10:24].copy()
    red_hsv = ([0, 100, 100], [10, 255, 255])
    params = MatcherParams(
        templs=[InlineTemplate(templ, "red")],
        methods=[MatchMethod.HSV_COUNT],
        mask_range=[red_hsv],
        templ_thres=[0.9],
    )

    res = TemplateMatcher().analyze(red_square_frame, None, params)

    assert res is not None
    assert res.rect == Rect(10, 5, 14, 14)
    assert res.score == pytest.approx(1.0, abs=1e-3)


def test_count_method_rejects_wrong_color_proportion(red_square_frame):
    templ = red_square_frame[5:19, 10:24].copy()
    frame = red_square_frame.copy()
    frame[7:17, 12:22] = (0, 255, 0)
    params = MatcherParams(
        templs=[InlineTemplate(templ, "red")],
        methods=[MatchMethod.HSV_COUNT],
        mask_range=[([0, 100, 100], [10, 255, 255])],
        templ_thres=[0.5],
    )

    assert TemplateMatcher().analyze(frame, None, params) is None


# -----------------------------
# Short-circuit evaluation
# -----------------------------

def count_match_calls(monkeypatch):
    calls = []
    original = TemplateMatcher.match_one

    def counting(self, image, templ, method, params):
        calls.append(templ.shape)
        return original(self, image, templ, method, params)

    monkeypatch.setattr(TemplateMatcher, "match_one", counting)
    return calls


def test_accepted_template_stops_matching(noise_frame, store, monkeypatch):
    calls = count_match_calls(monkeypatch)
    params = MatcherParams(templs=named("patch_a", "patch_b"), templ_thres=[0.8, 0.8])

    res = TemplateMatcher(store).analyze(noise_frame, None, params)

    assert res.templ_name == "patch_a"
    assert len(calls) == 1


def test_rejected_template_continues_to_next(noise_frame, store, monkeypatch):
    calls = count_match_calls(monkeypatch)
    params = MatcherParams(templs=named("patch_a", "patch_b"), templ_thres=[1.5, 0.8])

    res = TemplateMatcher(store).analyze(noise_frame, None, params)

    assert res.templ_name == "patch_b"
    assert len(calls) == 2


@pytest.mark.parametrize("params", [
    MatcherParams(
        templs=named("patch_a", "patch_b"),
        methods=[MatchMethod.CCOEFF, MatchMethod.INVALID],
        templ_thres=[0.8, 0.8],
    ),
    MatcherParams(templs=named("patch_a", "missing"), templ_thres=[0.8, 0.8]),
    MatcherParams(
        templs=named("patch_a", "patch_b"),
        mask_range=[([0], [255]), ([0, 0], [9, 9])],
        templ_thres=[0.8, 0.8],
    ),
    MatcherParams(
        templs=[NamedTemplate("patch_a"), InlineTemplate(np.zeros((500, 5, 3), np.uint8))],
        templ_thres=[0.8, 0.8],
    ),
])
def test_later_template_errors_abort_before_any_matching(noise_frame, store, monkeypatch, params):
    calls = count_match_calls(monkeypatch)

    assert TemplateMatcher(store).analyze(noise_frame, None, params) is None
    assert calls == []

import logging
import sys
from pathlib import Path

import cv2

from main import load_tasks_yaml
from debug.overlay import DebugOverlay
from utils.log import setup_logging
from utils.task_linter import lint_tasks
from vision.errors import MatcherError
from vision.matcher import TemplateMatcher
from vision.params import params_from_dict, roi_from_dict
from vision.templates import TemplateStore


logger = logging.getLogger(__name__)


def match_frame(frame, tasks, matcher, overlay=None):
    """
    Match every task on frame, drawing onto it when an overlay is given.

    Returns:
        { task_name: MatchResult | None }
    """
    results = {}

    for t in tasks:
        try:
            roi = roi_from_dict(t)
            params = params_from_dict(t)
        except MatcherError as e:
            logger.error("Task %s: %s", t["name"], e)
            results[t["name"]] = None
            continue

        res = matcher.analyze(frame, roi, params)
        results[t["name"]] = res

        if overlay is not None:
            if roi is not None:
                overlay.draw_roi(frame, roi.clip_to(frame.shape[1], frame.shape[0]))
            overlay.draw_match(frame, res, label=t["name"])

    return results


if __name__ == "__main__":
    if len(sys.argv) < 4:
        print("Usage: python match_frame.py <frame.png> <tasks.yaml> <templ_dir> [out.png]")
        sys.exit(1)

    setup_logging()

    frame_path, tasks_path, templ_dir = Path(sys.argv[1]), Path(sys.argv[2]), Path(sys.argv[3])
    out_path = Path(sys.argv[4]) if len(sys.argv) > 4 else frame_path.with_name(frame_path.stem + "_matches.png")

    frame = cv2.imread(str(frame_path), cv2.IMREAD_COLOR)
    if frame is None:
        print(f"Could not load image: {frame_path}")
        sys.exit(1)

    tasks = load_tasks_yaml(tasks_path)
    issues = lint_tasks(tasks, frame.shape[1], frame.shape[0], templ_dir)
    for m in issues:
        print(m)

    matcher = TemplateMatcher(TemplateStore(templ_dir))
    results = match_frame(frame, tasks, matcher, DebugOverlay())

    for name, res in results.items():
        if res is None:
            print(f"{name}: no match")
        else:
            print(f"{name}: {res.templ_name} score={res.score:.3f} rect={res.rect.to_list()}")

    cv2.imwrite(str(out_path), frame)
    print(f"Overlay saved to: {out_path}")

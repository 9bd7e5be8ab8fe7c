import logging
import sys
from pathlib import Path
from typing import Dict, List

import cv2
import numpy as np
import yaml

from utils.log import setup_logging
from utils.task_linter import lint_tasks
from vision.errors import MatcherError
from vision.matcher import TemplateMatcher
from vision.params import params_from_dict, roi_from_dict
from vision.templates import TemplateStore


logger = logging.getLogger(__name__)


# -----------------------------
# Task loading
# -----------------------------

def load_tasks_yaml(path: Path) -> List[dict]:
    if not path.exists():
        raise FileNotFoundError(path)

    with open(path, "r", encoding="utf-8") as f:
        tasks = yaml.safe_load(f)

    if not isinstance(tasks, list):
        raise ValueError("tasks.yaml must contain a list")

    return tasks


# -----------------------------
# Frame analysis entry point
# -----------------------------

def analyze_frame(
    frame: np.ndarray,
    tasks: List[dict],
    matcher: TemplateMatcher,
) -> Dict[str, dict]:
    """
    Run every task against one frame.

    Returns:
        {
          task_name: {
            matched: bool,
            confidence: float,
            rect: [x, y, w, h] | None,
            template: str | None
          }
        }
    """
    results = {}

    for t in tasks:
        name = t["name"]
        try:
            params = params_from_dict(t)
            roi = roi_from_dict(t)
        except MatcherError as e:
            logger.error("Task %s: %s", name, e)
            res = None
        else:
            res = matcher.analyze(frame, roi, params)

        if res is None:
            results[name] = {
                "matched": False,
                "confidence": 0.0,
                "rect": None,
                "template": None,
            }
            continue

        results[name] = {
            "matched": True,
            "confidence": res.score,
            "rect": res.rect.to_list(),
            "template": res.templ_name,
        }

    return results


def run(frame_path: Path, tasks_path: Path, templ_dir: Path) -> Dict[str, dict]:
    frame = cv2.imread(str(frame_path), cv2.IMREAD_COLOR)
    if frame is None:
        raise ValueError(f"Could not load image: {frame_path}")

    tasks = load_tasks_yaml(tasks_path)
    h, w = frame.shape[:2]
    for msg in lint_tasks(tasks, w, h, templ_dir):
        logger.warning("%s", msg)

    matcher = TemplateMatcher(TemplateStore(templ_dir))
    return analyze_frame(frame, tasks, matcher)


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) < 3:
        print("Usage: python main.py <frame.png> <tasks.yaml> <templ_dir>")
        return 1

    setup_logging()
    results = run(Path(argv[0]), Path(argv[1]), Path(argv[2]))
    for name, r in results.items():
        status = "MATCH" if r["matched"] else "-"
        print(f"{name}: {status} conf={r['confidence']:.3f} rect={r['rect']} template={r['template']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

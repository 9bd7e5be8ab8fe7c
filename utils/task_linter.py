from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from vision.params import MatchMethod


# -----------------------------
# Lint result structure
# -----------------------------

@dataclass
class LintMessage:
    level: str        # "error" | "warning"
    task: str         # task name
    message: str

    def __str__(self):
        return f"[{self.level.upper()}] {self.task}: {self.message}"


# -----------------------------
# Public API
# -----------------------------

def lint_tasks(
    tasks: List[Dict[str, Any]],
    img_w: int,
    img_h: int,
    templ_dir: Path | None = None,
) -> List[LintMessage]:
    """
    Lint match task definitions against image bounds and the template directory.
    """
    messages: List[LintMessage] = []
    seen_names = set()

    for t in tasks:
        name = t.get("name", "<unnamed>")

        # ---- name ----
        if not t.get("name"):
            messages.append(err(name, "Task missing 'name'"))
        elif name in seen_names:
            messages.append(err(name, "Duplicate task name"))
        seen_names.add(name)

        # ---- roi ----
        roi = t.get("roi")
        if roi is not None:
            if not valid_rect(roi):
                messages.append(err(name, "Invalid roi; expected [x, y, w, h]"))
            else:
                messages.extend(lint_rect_bounds(name, roi, img_w, img_h))

        templs = as_list(t.get("template"))
        if not templs:
            messages.append(err(name, "Task missing 'template'"))
            continue

        messages.extend(lint_templates(name, templs, templ_dir))
        messages.extend(lint_methods(name, t, len(templs)))
        messages.extend(lint_thresholds(name, t, len(templs)))
        messages.extend(lint_mask_range(name, t))

    return messages


def as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


# -----------------------------
# Rect validation
# -----------------------------

def valid_rect(rect) -> bool:
    return (
        isinstance(rect, list)
        and len(rect) == 4
        and all(isinstance(v, (int, float)) for v in rect)
        and rect[2] > 0
        and rect[3] > 0
    )


def lint_rect_bounds(name: str, rect, img_w: int, img_h: int) -> List[LintMessage]:
    x, y, w, h = rect
    msgs = []

    if x < 0 or y < 0:
        msgs.append(warn(name, "Roi has negative origin"))

    if x + w > img_w or y + h > img_h:
        msgs.append(warn(name, "Roi extends outside image bounds; it will be clipped"))

    return msgs


# -----------------------------
# Template / method / threshold
# -----------------------------

def lint_templates(name: str, templs: list, templ_dir: Path | None) -> List[LintMessage]:
    msgs = []
    if templ_dir is None:
        return msgs

    for templ in templs:
        p = Path(templ_dir) / str(templ)
        if p.suffix == "":
            p = p.with_suffix(".png")
        if not p.exists():
            msgs.append(err(name, f"Template image not found: {templ}"))

    return msgs


def lint_methods(name: str, t: Dict, n_templs: int) -> List[LintMessage]:
    msgs = []
    methods = as_list(t.get("method"))

    for m in methods:
        if MatchMethod.parse(m) is MatchMethod.INVALID:
            msgs.append(err(name, f"Unknown match method '{m}'"))

    if methods and len(methods) < n_templs:
        msgs.append(warn(name, "Fewer methods than templates; the rest default to Ccoeff"))

    return msgs


def lint_thresholds(name: str, t: Dict, n_templs: int) -> List[LintMessage]:
    msgs = []
    thres = as_list(t.get("threshold"))

    for v in thres:
        if not isinstance(v, (int, float)) or not (0.0 < v <= 1.0):
            msgs.append(warn(name, f"Threshold out of range: {v}"))

    if thres and len(thres) < n_templs:
        msgs.append(warn(name, "Fewer thresholds than templates; the rest use the default"))

    return msgs


# -----------------------------
# Mask range
# -----------------------------

def lint_mask_range(name: str, t: Dict) -> List[LintMessage]:
    msgs = []
    mask_range = t.get("mask_range")
    if mask_range is None:
        return msgs

    if not isinstance(mask_range, list):
        return [err(name, "mask_range must be a list of [lower, upper]")]

    for pair in mask_range:
        if not isinstance(pair, list) or len(pair) != 2:
            msgs.append(err(name, f"Invalid mask range entry: {pair}"))
            continue

        lower, upper = as_list(pair[0]), as_list(pair[1])
        if len(lower) != len(upper) or len(lower) not in (1, 3):
            msgs.append(err(name, f"Mask range bounds must both have 1 or 3 values: {pair}"))

    if t.get("mask_with_src") and not mask_range:
        msgs.append(warn(name, "mask_with_src has no effect without mask_range"))

    return msgs


# -----------------------------
# Helpers
# -----------------------------

def err(task: str, msg: str) -> LintMessage:
    return LintMessage("error", task, msg)


def warn(task: str, msg: str) -> LintMessage:
    return LintMessage("warning", task, msg)

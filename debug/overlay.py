import cv2

from vision.params import MatchResult, Rect


class DebugOverlay:
    def draw_roi(self, frame, roi: Rect, color=(255, 0, 0)):
        cv2.rectangle(frame, (roi.x, roi.y), (roi.x + roi.w, roi.y + roi.h), color, 2)

    def draw_match(self, frame, match: MatchResult | None, label="", color=(0, 255, 0)):
        if match is None:
            return

        r = match.rect
        cv2.rectangle(frame, (r.x, r.y), (r.x + r.w, r.y + r.h), color, 2)
        text = f"{label or match.templ_name} {match.score:.2f}".strip()
        cv2.putText(
            frame,
            text,
            (r.x, max(r.y - 8, 12)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            color,
            2
        )

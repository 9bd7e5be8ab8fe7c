import time
from pathlib import Path

from capture.screen_capture import ScreenCapture
from main import analyze_frame, load_tasks_yaml
from utils.log import setup_logging
from utils.task_linter import lint_tasks
from vision.matcher import TemplateMatcher
from vision.templates import TemplateStore


# =========================
# Configuration
# =========================
CAPTURE_INTERVAL = 0.5   # seconds
MONITOR = 1


# =========================
# Live Runner
# =========================
class LiveRunner:
    def __init__(self, tasks_path: Path, templ_dir: Path, monitor=MONITOR):
        self.tasks = load_tasks_yaml(tasks_path)
        self.templ_dir = templ_dir
        self.capture = ScreenCapture(monitor)
        self.matcher = TemplateMatcher(TemplateStore(templ_dir), log_tracing=False)
        self.last_state = {}
        self.running = True

        self._lint()

    def _lint(self):
        img = self.capture.grab()
        h, w = img.shape[:2]
        issues = lint_tasks(self.tasks, w, h, self.templ_dir)
        if issues:
            print("⚠ Task lint issues:")
            for m in issues:
                print(f"  {m}")

    def step(self):
        frame = self.capture.grab()
        results = analyze_frame(frame, self.tasks, self.matcher)

        changed = {}
        for name, r in results.items():
            if self.last_state.get(name) != r["matched"]:
                changed[name] = r
            self.last_state[name] = r["matched"]
        return changed

    def run(self):
        print("▶ Live runner started (Ctrl+C to stop)")

        try:
            while self.running:
                for name, r in self.step().items():
                    if r["matched"]:
                        print(f"[MATCH] {name}: {r['template']} conf={r['confidence']:.2f} rect={r['rect']}")
                    else:
                        print(f"[LOST] {name}")
                time.sleep(CAPTURE_INTERVAL)
        except KeyboardInterrupt:
            print("Stopped.")
        finally:
            self.capture.close()


# =========================
# Entry point
# =========================
if __name__ == "__main__":
    import sys

    if len(sys.argv) < 3:
        print("Usage: python live_runner.py <tasks.yaml> <templ_dir>")
        sys.exit(1)

    setup_logging()

    tasks_path = Path(sys.argv[1])
    if not tasks_path.exists():
        print("Tasks file not found")
        sys.exit(1)

    runner = LiveRunner(tasks_path, Path(sys.argv[2]))
    runner.run()

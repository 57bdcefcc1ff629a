"""Eased progress percentage for the discovery dashboard.

``total`` grows while the crawl discovers URLs, so the raw percentage jumps
around. The displayed value moves a fixed share of the remaining gap per
frame instead.
"""

EASE = 0.15
SNAP = 0.5


def target_percent(current: int, total: int) -> int:
    if total <= 0:
        return 0
    return round(current / total * 100)


class SmoothProgress:
    def __init__(self):
        self.current = 0
        self.total = 0
        self._display = 0.0

    @property
    def target(self) -> int:
        return target_percent(self.current, self.total)

    @property
    def percent(self) -> int:
        return round(min(self._display, 100))

    def update(self, current: int, total: int):
        self.current, self.total = current, total

    def step(self) -> int:
        """Advance one frame towards the target and return the shown percent."""
        diff = self.target - self._display
        if abs(diff) < SNAP:
            self._display = float(self.target)
        else:
            self._display += diff * EASE
        return self.percent

    def settle(self, max_frames: int = 200) -> int:
        for _ in range(max_frames):
            if self._display == self.target:
                break
            self.step()
        return self.percent

    def bar(self, width: int = 30) -> str:
        filled = int(width * self.percent / 100)
        total = self.total or "?"
        return (f"[{'#' * filled}{'.' * (width - filled)}] {self.percent}% complete  "
                f"{self.current} / {total} pages")

"""Coarse progress reporting for long transfers"""

import logging

logger = logging.getLogger(__name__)


class ProgressLogger:
    """Progress callback that logs every `step` percent"""

    def __init__(self, label: str, step: int = 10):
        self.label = label
        self.step = step
        self._next = step

    def __call__(self, done: int, total: int):
        if total <= 0:
            return
        percent = done * 100 // total
        if percent < self._next:
            return
        logger.info(f"{self.label}: {percent}% ({done}/{total} bytes)")
        self._next = (percent // self.step + 1) * self.step

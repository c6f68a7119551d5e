"""Output channel: the user-visible log sink shared by every session."""

from collections import deque
from typing import List

from ide_purescript.utils.logger import setup_logger

DEFAULT_HISTORY = 1000


class OutputChannel:
    """Named line-oriented log sink.

    Every line is forwarded to loguru under the channel name and the most
    recent ``history`` lines are kept for inspection.
    """

    def __init__(self, name: str, history: int = DEFAULT_HISTORY) -> None:
        self.name = name
        self._lines: deque[str] = deque(maxlen=history)
        self._logger = setup_logger(name).bind(channel=name)

    def append_line(self, text: str) -> None:
        self._lines.append(text)
        self._logger.info(text)

    def warn(self, text: str) -> None:
        self._lines.append(text)
        self._logger.warning(text)

    def error(self, text: str) -> None:
        self._lines.append(text)
        self._logger.error(text)

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    def clear(self) -> None:
        self._lines.clear()

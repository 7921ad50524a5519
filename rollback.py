"""
Компенсация многошаговых операций.

    with Rollback('create mailbox') as rb:
        append_line(...)
        rb.add('mailbox map line', lambda: remove_matching(...))
        runner.run('mkdir', [...])
        rb.add('maildir', lambda: runner.run('rm', ['-rf', ...]))

Если шаг внутри блока падает, зарегистрированные отмены выполняются
в обратном порядке, затем исходная ошибка пробрасывается дальше.
"""

import logging
from typing import Callable, List, Tuple

from panel_errors import PartialFailure, PanelError

logger = logging.getLogger(__name__)


class Rollback:

    def __init__(self, operation: str):
        self.operation = operation
        self._undo: List[Tuple[str, Callable[[], object]]] = []

    def add(self, step: str, undo: Callable[[], object]) -> None:
        self._undo.append((step, undo))

    def __enter__(self) -> 'Rollback':
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self._undo.clear()
            return False

        logger.warning(f"{self.operation} failed ({exc}), rolling back {len(self._undo)} step(s)")
        leftovers = []
        for step, undo in reversed(self._undo):
            try:
                undo()
            except (PanelError, OSError) as e:
                logger.error(f"Rollback of '{step}' for {self.operation} failed: {e}")
                leftovers.append(step)
        self._undo.clear()

        if leftovers:
            reason = exc.message if isinstance(exc, PanelError) else str(exc)
            raise PartialFailure(f'{self.operation} failed: {reason}', leftovers) from exc
        return False

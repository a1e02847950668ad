#app/core/hooks.py
import logging
from typing import Any, Callable, List, Tuple

logger = logging.getLogger("Delivery.Hooks")


class PostCommitHooks:
    """
    Побочные действия после успешного commit: очистка хранилища, уведомления.
    Выполняются best-effort: ошибки только логируются и не повторяются.
    """

    def __init__(self):
        self._hooks: List[Tuple[str, Callable[..., Any], tuple, dict]] = []

    def add(self, name: str, func: Callable[..., Any], *args, **kwargs) -> None:
        self._hooks.append((name, func, args, kwargs))

    def __len__(self) -> int:
        return len(self._hooks)

    def run(self) -> List[str]:
        """
        Выполняет все хуки по порядку, возвращает имена упавших.
        """
        failed = []
        for name, func, args, kwargs in self._hooks:
            try:
                func(*args, **kwargs)
            except Exception as e:
                logger.error(f"Post-commit hook '{name}' failed: {e}", exc_info=True)
                failed.append(name)
        self._hooks.clear()
        return failed

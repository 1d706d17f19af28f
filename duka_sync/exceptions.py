from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


class AppError(Exception):
    """
    Исключение базового уровня приложения.

    Должно использоваться для всех ожидаемых, контролируемых сценариев ошибок в
    приложении.
    """
    def __init__(self, message: str = "", *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context or {}

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message or self.__class__.__name__


class RepositoryError(AppError):
    """
    Базовый класс ошибок для persistence/repository слоя.
    """


class QueueError(AppError):
    """
    Базовый класс ошибок для операций с очередью.
    """


@dataclass
class ActionNotFoundError(QueueError):
    """
    Возникает, когда действия с заданным id нет в очереди.
    """

    action_id: Any
    message: str = "Queued action not found"

    def __post_init__(self) -> None:
        self.context = {"action_id": str(self.action_id)}


@dataclass
class ActionStateError(QueueError):
    """
    Операция недопустима для текущего статуса действия.
    """

    action_id: Any
    status: Any
    message: str = "Operation is not allowed in the current action status"

    def __post_init__(self) -> None:
        self.context = {
            "action_id": str(self.action_id),
            "status": str(self.status),
        }


class InvalidActionError(QueueError):
    """
    Некорректные аргументы enqueue (ошибка вызывающего кода).
    """


class OfflineError(QueueError):
    """
    Синхронизация невозможна: сеть недоступна.
    """


class SyncDisabledError(QueueError):
    """
    Процесс не владеет разбором очереди (SYNC_ENABLED=false).
    """


class SyncError(AppError):
    """
    Базовый класс ошибок воспроизведения действия на удалённой стороне.
    """


class TransientSyncError(SyncError):
    """
    Временная ошибка (сеть, таймаут, 5xx). Действие будет повторено.
    """


class PermanentSyncError(SyncError):
    """
    Постоянная ошибка (валидация, конфликт, 4xx). Повтор с тем же payload не поможет.
    """


class DuplicateActionError(SyncError):
    """
    Удалённая сторона уже применила действие. Считается успехом.
    """


@dataclass
class ResolverNotFoundError(SyncError):
    """
    Для пары resource/kind не зарегистрирован resolver.
    """

    resource: str
    kind: Any
    message: str = "No resolver registered for resource/kind"

    def __post_init__(self) -> None:
        self.context = {"resource": self.resource, "kind": str(self.kind)}

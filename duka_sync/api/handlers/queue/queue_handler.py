from typing import NoReturn, Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, HTTPException, Query, status

from duka_sync.api.schemas.requests import (EnqueueActionRequest,
                                            NetworkStateRequest)
from duka_sync.api.schemas.responses import (ClearQueueResponse,
                                             NetworkStateResponse,
                                             QueuedActionListResponse,
                                             QueuedActionResponse,
                                             QueueStatsResponse,
                                             SyncReportResponse)
from duka_sync.container import Container
from duka_sync.entity.actions import ActionStatus
from duka_sync.exceptions import (ActionNotFoundError, ActionStateError,
                                  AppError, InvalidActionError, OfflineError,
                                  RepositoryError, SyncDisabledError)
from duka_sync.logger import logger
from duka_sync.usecase.queue import SyncQueue

router = APIRouter(
    prefix="/api/v1/queue",
    tags=["Queue"],
)


def _map_app_error_to_http(exc: AppError) -> tuple[int, str]:
    if isinstance(exc, ActionNotFoundError):
        return status.HTTP_404_NOT_FOUND, "Action not found"
    if isinstance(exc, ActionStateError):
        return status.HTTP_409_CONFLICT, "Action cannot be changed in its current status"
    if isinstance(exc, OfflineError):
        return status.HTTP_409_CONFLICT, "Cannot sync while offline"
    if isinstance(exc, SyncDisabledError):
        return status.HTTP_409_CONFLICT, "Sync is disabled in this process"
    if isinstance(exc, InvalidActionError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY, exc.message or "Invalid action"
    if isinstance(exc, RepositoryError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR, "Storage error"
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"


def _raise_http_from_app_error(operation: str, exc: AppError) -> NoReturn:
    status_code, detail = _map_app_error_to_http(exc)

    log_extra = {
        "error_type": type(exc).__name__,
        **getattr(exc, "context", {}),
    }

    message = "Application error in %s: %s"

    if 400 <= status_code < 500:
        logger.warning(message, operation, str(exc), extra=log_extra)
    else:
        # 5xx и все остальные - ошибки сервера
        logger.error(message, operation, str(exc), extra=log_extra)

    raise HTTPException(status_code=status_code, detail=detail) from exc


@router.get(
    "/actions",
    response_model=QueuedActionListResponse,
)
@inject
async def list_actions(
    action_status: Optional[ActionStatus] = Query(None, alias="status"),
    queue: SyncQueue = Depends(Provide[Container.usecase.sync_queue]),
) -> QueuedActionListResponse:
    """
    Список действий в порядке очереди, pending и failed отдельно по фильтру.
    """
    actions = queue.list(action_status)
    return QueuedActionListResponse(
        total=len(actions),
        items=[QueuedActionResponse.from_entity(action) for action in actions],
    )


@router.post(
    "/actions",
    response_model=QueuedActionResponse,
    status_code=status.HTTP_201_CREATED,
)
@inject
async def enqueue_action(
    body: EnqueueActionRequest,
    queue: SyncQueue = Depends(Provide[Container.usecase.sync_queue]),
) -> QueuedActionResponse:
    """
    Endpoint постановки действия в очередь
    :param body: Тип операции, ресурс и payload.
    :param queue: офлайн-очередь
    :return: QueuedActionResponse
    """
    try:
        action_id = queue.enqueue(
            body.kind,
            body.resource,
            body.payload,
            description=body.description,
        )
        return QueuedActionResponse.from_entity(queue.get(action_id))
    except AppError as exc:
        _raise_http_from_app_error("enqueue_action", exc)


@router.get(
    "/stats",
    response_model=QueueStatsResponse,
)
@inject
async def get_stats(
    queue: SyncQueue = Depends(Provide[Container.usecase.sync_queue]),
) -> QueueStatsResponse:
    return QueueStatsResponse.from_entity(queue.stats())


@router.post(
    "/sync",
    response_model=SyncReportResponse,
)
@inject
async def force_sync(
    queue: SyncQueue = Depends(Provide[Container.usecase.sync_queue]),
) -> SyncReportResponse:
    """
    Ручной запуск синхронизации.
    """
    try:
        report = await queue.force_sync()
    except AppError as exc:
        _raise_http_from_app_error("force_sync", exc)

    return SyncReportResponse.from_entity(report)


@router.post(
    "/actions/{action_id}/retry",
    response_model=QueuedActionResponse,
)
@inject
async def retry_action(
    action_id: str,
    queue: SyncQueue = Depends(Provide[Container.usecase.sync_queue]),
) -> QueuedActionResponse:
    """
    Вернуть failed действие в очередь.
    """
    try:
        action = await queue.retry(action_id)
    except AppError as exc:
        _raise_http_from_app_error("retry_action", exc)

    return QueuedActionResponse.from_entity(action)


@router.delete(
    "/actions/{action_id}",
    response_model=QueuedActionResponse,
)
@inject
async def discard_action(
    action_id: str,
    queue: SyncQueue = Depends(Provide[Container.usecase.sync_queue]),
) -> QueuedActionResponse:
    try:
        action = await queue.discard(action_id)
    except AppError as exc:
        _raise_http_from_app_error("discard_action", exc)

    return QueuedActionResponse.from_entity(action)


@router.delete(
    "/actions",
    response_model=ClearQueueResponse,
)
@inject
async def clear_queue(
    queue: SyncQueue = Depends(Provide[Container.usecase.sync_queue]),
) -> ClearQueueResponse:
    removed = await queue.clear()
    return ClearQueueResponse(removed=removed)


@router.get(
    "/network",
    response_model=NetworkStateResponse,
)
@inject
async def get_network_state(
    queue: SyncQueue = Depends(Provide[Container.usecase.sync_queue]),
) -> NetworkStateResponse:
    return NetworkStateResponse(online=queue.is_online())


@router.put(
    "/network",
    response_model=NetworkStateResponse,
)
@inject
async def set_network_state(
    body: NetworkStateRequest,
    queue: SyncQueue = Depends(Provide[Container.usecase.sync_queue]),
) -> NetworkStateResponse:
    """
    Ручное переключение online/offline для касс без проверки соединения.
    """
    queue.set_online(body.online)
    return NetworkStateResponse(online=queue.is_online())

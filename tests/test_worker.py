from __future__ import annotations

import pytest

from duka_sync import worker
from duka_sync.settings import Settings


@pytest.mark.asyncio()
async def test_worker_refuses_to_start_without_sync_ownership(monkeypatch) -> None:
    monkeypatch.setattr(
        worker,
        "settings",
        Settings(SYNC_ENABLED=False, STORAGE_BACKEND="memory", PROBE_ENABLED=False),
    )

    await worker.main()

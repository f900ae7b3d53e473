"""Unit tests for the background sweep in api/main.py."""

from __future__ import annotations

import asyncio
import logging
from types import SimpleNamespace

from api.main import _purge_loop


class FlakyService:
    """purge_expired() crashes on the first call, then succeeds."""

    def __init__(self) -> None:
        self.calls = 0

    def purge_expired(self) -> dict:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("unexpected failure")
        return {"otps": 0, "sessions": 0}


def test_unexpected_error_does_not_stop_the_loop(caplog) -> None:
    service = FlakyService()
    app = SimpleNamespace(state=SimpleNamespace(auth_service=service))

    async def run() -> bool:
        task = asyncio.create_task(_purge_loop(app, 0))
        for _ in range(200):
            if service.calls >= 2:
                break
            await asyncio.sleep(0.01)
        alive = not task.done()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return alive

    with caplog.at_level(logging.ERROR, logger="priorly.api"):
        assert asyncio.run(run()) is True
    assert service.calls >= 2
    assert "Purge crashed" in caplog.text

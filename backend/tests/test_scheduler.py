"""Tests for the periodic sweep job and scheduler lifecycle."""

from unittest.mock import patch

import pytest

from tagbrowser.config import settings
from tagbrowser.services import scheduler


@pytest.mark.asyncio
async def test_sweep_queues_root_reconcile(ctx, root_folder):
    with patch.object(ctx.queue, "enqueue", wraps=ctx.queue.enqueue) as spy:
        await scheduler.sweep_root_job(ctx)

    assert [c.kwargs["label"] for c in spy.call_args_list] == ["reconcile:/root"]
    await ctx.queue.join()


@pytest.mark.asyncio
async def test_sweep_without_root_does_nothing(ctx):
    with patch.object(ctx.queue, "enqueue") as spy:
        await scheduler.sweep_root_job(ctx)

    spy.assert_not_called()


@pytest.mark.asyncio
async def test_sweep_swallows_database_failures(ctx, caplog):
    with patch.object(scheduler.folder_repo, "get_root_folder", side_effect=RuntimeError("db down")):
        await scheduler.sweep_root_job(ctx)

    assert "Failed to queue sweep" in caplog.text


@pytest.mark.asyncio
async def test_start_scheduler_respects_disabled_sweep(ctx, monkeypatch):
    monkeypatch.setattr(settings, "sweep_enabled", False)

    assert scheduler.start_scheduler(ctx) is None
    assert scheduler.get_scheduler() is None


@pytest.mark.asyncio
async def test_start_and_stop_scheduler(ctx, monkeypatch):
    monkeypatch.setattr(settings, "sweep_enabled", True)

    started = scheduler.start_scheduler(ctx)
    try:
        assert started is not None
        assert scheduler.get_scheduler() is started
        assert started.get_job(scheduler.SWEEP_JOB_ID) is not None
        # A second start reuses the running instance
        assert scheduler.start_scheduler(ctx) is started
    finally:
        scheduler.stop_scheduler()

    assert scheduler.get_scheduler() is None

"""
Tests for the scheduled settlement sweep and its retry backoff.
"""
from datetime import timedelta
import pytest
from unittest.mock import AsyncMock, patch
from app.config.constants import SETTLEMENT_JOB_ID, SETTLEMENT_RETRY_JOB_ID
from app.core.scheduler import (
    settlement_sweep_job,
    retry_delay,
    schedule_sweep_retry,
    start_scheduler,
    shutdown_scheduler,
)
from app.services.settlement_service import SweepResult


@pytest.mark.asyncio
async def test_settlement_sweep_job_returns_summary(mock_scheduler):
    summary = SweepResult(processed=2, errors=["Date order 1: boom"])
    with patch(
        "app.services.settlement_service.SettlementService.run_settlement_sweep",
        AsyncMock(return_value=summary),
    ) as mock_sweep:
        result = await settlement_sweep_job()

    mock_sweep.assert_awaited_once()
    assert result == {"processed": 2, "errors": ["Date order 1: boom"]}
    # Per-order errors are retried by the next regular run, not by a retry job
    mock_scheduler.add_job.assert_not_called()


@pytest.mark.asyncio
async def test_settlement_sweep_job_schedules_retry_on_failure(mock_scheduler):
    with patch(
        "app.services.settlement_service.SettlementService.run_settlement_sweep",
        AsyncMock(side_effect=ConnectionError("database unreachable")),
    ):
        result = await settlement_sweep_job()

    assert result["processed"] == 0
    mock_scheduler.add_job.assert_called_once()
    kwargs = mock_scheduler.add_job.call_args.kwargs
    assert mock_scheduler.add_job.call_args.args[1] == 'date'
    assert kwargs["args"] == [1]
    assert kwargs["id"] == SETTLEMENT_RETRY_JOB_ID
    assert kwargs["replace_existing"] is True


def test_retry_delay_backs_off_exponentially():
    assert [retry_delay(n) for n in (1, 2, 3)] == [
        timedelta(minutes=1),
        timedelta(minutes=2),
        timedelta(minutes=4),
    ]


def test_schedule_sweep_retry_gives_up(mock_scheduler):
    assert schedule_sweep_retry(4) is False
    mock_scheduler.add_job.assert_not_called()


def test_schedule_sweep_retry_survives_scheduler_errors(mock_scheduler):
    mock_scheduler.add_job.side_effect = RuntimeError("jobstore down")
    assert schedule_sweep_retry(1) is False


@pytest.mark.asyncio
async def test_start_scheduler_registers_sweep(mock_scheduler):
    await start_scheduler()

    mock_scheduler.add_job.assert_called_once()
    args, kwargs = mock_scheduler.add_job.call_args
    assert args == (settlement_sweep_job, 'interval')
    assert kwargs["minutes"] == 60
    assert kwargs["id"] == SETTLEMENT_JOB_ID
    mock_scheduler.start.assert_called_once()


@pytest.mark.asyncio
async def test_shutdown_scheduler(mock_scheduler):
    mock_scheduler.running = True
    await shutdown_scheduler()
    mock_scheduler.shutdown.assert_called_once()

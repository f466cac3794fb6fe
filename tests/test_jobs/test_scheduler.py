"""Tests for the background job scheduler."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import pytest

from authority_exchange.domain.enums import DisputeStatus, UserRole, UserStatus
from authority_exchange.infrastructure.database.orm_models import AccountDispute, User
from authority_exchange.jobs import scheduler as scheduler_module
from authority_exchange.jobs.scheduler import (
    DISPUTE_SWEEP_JOB_ID,
    build_scheduler,
    run_dispute_sweep,
    sweep_status,
)
from authority_exchange.services.account_dispute_service import AccountDisputeService
from conftest import FrozenClock, RecordingRevoker, actor_for, make_user, reload


class TestBuildScheduler:
    def test_sweep_job_registered(self) -> None:
        scheduler = build_scheduler(interval_minutes=15)

        job = scheduler.get_job(DISPUTE_SWEEP_JOB_ID)

        assert job is not None
        assert job.trigger.interval == timedelta(minutes=15)
        assert job.max_instances == 1
        assert job.coalesce is True
        assert not scheduler.running


class TestSweepStatus:
    def test_stopped_without_a_scheduler(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(scheduler_module, "_scheduler", None)

        assert sweep_status() == (False, None)

    async def test_running_scheduler_reports_next_sweep(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        scheduler = build_scheduler(interval_minutes=15)
        scheduler.start(paused=True)
        monkeypatch.setattr(scheduler_module, "_scheduler", scheduler)
        try:
            running, next_run = sweep_status()
            scheduled = scheduler.get_job(DISPUTE_SWEEP_JOB_ID).next_run_time
        finally:
            scheduler.shutdown(wait=False)

        assert running is True
        assert next_run is not None
        assert next_run == scheduled


class TestRunDisputeSweep:
    async def test_sweep_job_resolves_overdue_disputes(
        self, session, session_factory, monkeypatch: pytest.MonkeyPatch  # noqa: ANN001
    ) -> None:
        long_ago = FrozenClock(datetime(2020, 1, 6, 12, 0, tzinfo=UTC))
        member = actor_for(await make_user(session, UserRole.BUYER))
        service = AccountDisputeService(
            session, revoker=RecordingRevoker(), clock=long_ago, auto_unblock_hours=24
        )
        dispute = await service.block(member.id, "A. Other", "Member Name")
        await service.submit(member, dispute.id, "Shared family card")
        await session.commit()

        @asynccontextmanager
        async def fake_scope():  # noqa: ANN202
            async with session_factory() as job_session:
                yield job_session

        monkeypatch.setattr(scheduler_module, "session_scope", fake_scope)

        assert await run_dispute_sweep() == 1
        assert (await reload(session, AccountDispute, dispute.id)).status == DisputeStatus.RESOLVED
        assert (await reload(session, User, member.id)).status == UserStatus.ACTIVE

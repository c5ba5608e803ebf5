"""Tests for the periodic cleanup job."""

from lobbyxo.scheduler import CLEANUP_JOB_ID, CleanupScheduler


def test_run_once_sweeps(service, clock, policy):
    service.create_game("G", "alice")
    clock.advance(policy.waiting_ttl)
    CleanupScheduler(service, interval=60).run_once()
    assert service.list_games() == []


def test_run_once_survives_failures(service, monkeypatch, caplog):
    def boom(policy=None):
        raise RuntimeError("sweep exploded")

    monkeypatch.setattr(service, "cleanup", boom)
    CleanupScheduler(service, interval=60).run_once()
    assert "periodic cleanup failed" in caplog.text


def test_zero_interval_never_starts(service):
    cleanup = CleanupScheduler(service, interval=0)
    cleanup.start()
    assert not cleanup.running
    cleanup.shutdown()


def test_start_registers_single_job(service):
    cleanup = CleanupScheduler(service, interval=3600)
    cleanup.start()
    try:
        assert cleanup.running
        jobs = cleanup._scheduler.get_jobs()
        assert [job.id for job in jobs] == [CLEANUP_JOB_ID]
        cleanup.start()
        assert len(cleanup._scheduler.get_jobs()) == 1
    finally:
        cleanup.shutdown()
    assert not cleanup.running

import pytest

from conftest import FakeClock, FakeGateway
from wgfops.core.errors import ClusterCommandFailed, SubmissionFailed, ToolingUnavailable
from wgfops.core.jobs import JobSpec, JobStatus
from wgfops.core.runs import run_job, wait_for_job


def _spec() -> JobSpec:
    return JobSpec(name="support-test-1-abcdefgh", namespace="staging", image="img", command=("true",))


def _run(gateway, clock=None, **kwargs):
    clock = clock or FakeClock()
    return run_job(gateway, _spec(), sleep=clock.sleep, clock=clock, **kwargs)


def test_run_job_success_follows_full_lifecycle():
    gateway = FakeGateway([JobStatus.UNKNOWN, JobStatus.PENDING, JobStatus.COMPLETE], logs="done")
    clock = FakeClock()

    result = _run(gateway, clock)

    assert result.success is True
    assert result.output == "done"
    assert result.failure_reason is None
    assert [k for k, _ in gateway.calls] == ["apply", "status", "status", "status", "logs", "delete"]
    assert clock.sleeps == [3.0, 3.0]
    assert result.elapsed_seconds == pytest.approx(6.0)


def test_run_job_failed_job_is_deleted_once():
    gateway = FakeGateway([JobStatus.FAILED], logs="HTTP_CODE:500")

    result = _run(gateway)

    assert result.success is False
    assert result.failure_reason == "job failed"
    assert result.output == "HTTP_CODE:500"
    assert gateway.count("delete") == 1


def test_run_job_timeout_is_distinct_and_bounded():
    gateway = FakeGateway([JobStatus.PENDING])
    clock = FakeClock()

    result = _run(gateway, clock, poll_interval=3, timeout=120)

    assert result.success is False
    assert result.failure_reason == "timed out after 120s"
    assert gateway.count("status") <= 120 / 3 + 1
    assert sum(clock.sleeps) == pytest.approx(120.0)
    assert result.elapsed_seconds >= 120.0
    assert gateway.count("logs") == 1
    assert gateway.count("delete") == 1


def test_run_job_submission_failure_still_cleans_up():
    gateway = FakeGateway(apply_error=SubmissionFailed("apply failed", diagnostics="forbidden"))

    with pytest.raises(SubmissionFailed, match="apply failed"):
        _run(gateway)

    assert gateway.count("status") == 0
    assert gateway.count("delete") == 1


def test_run_job_substitutes_placeholder_when_logs_unavailable():
    gateway = FakeGateway(logs_error=ClusterCommandFailed("logs failed", diagnostics="pod gone"))

    result = _run(gateway)

    assert result.success is True
    assert result.output == "(logs unavailable: pod gone)"


def test_run_job_swallows_cleanup_errors():
    gateway = FakeGateway(delete_error=ClusterCommandFailed("delete failed"))

    result = _run(gateway)

    assert result.success is True
    assert gateway.count("delete") == 1


def test_run_job_reports_progress_events():
    events = []

    _run(FakeGateway(), on_event=events.append)

    assert events[0].startswith("Creating job support-test-1-abcdefgh")
    assert events[-1] == "Cleaning up job..."


def test_wait_for_job_never_sleeps_past_deadline():
    gateway = FakeGateway([JobStatus.PENDING])
    clock = FakeClock()

    status = wait_for_job(
        gateway, "ns", "name", poll_interval=4, timeout=10, sleep=clock.sleep, clock=clock
    )

    assert status is None
    assert clock.sleeps == [4, 4, 2]


@pytest.mark.parametrize(
    "error",
    [ToolingUnavailable("kubectl vanished"), OSError("broken pipe"), KeyboardInterrupt()],
)
def test_run_job_deletes_job_when_polling_raises(error):
    gateway = FakeGateway(status_error=error)

    with pytest.raises(type(error)):
        _run(gateway)

    assert [k for k, _ in gateway.calls] == ["apply", "status", "delete"]

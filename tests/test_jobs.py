"""Unit tests for the job state model and registry."""
import pytest

from transcriber.core.errors import JobStateError
from transcriber.pipeline.jobs import Job, JobRegistry, JobStatus, Progress


def _job(**kw) -> Job:
    return Job(job_id="j1", upload_id="u1", original_name="a.mp3", **kw)


def test_new_job_is_queued_at_zero():
    reg = JobRegistry(clock=lambda: 42.0)
    job = reg.create("u1", "a.mp3")
    assert job.status is JobStatus.QUEUED
    assert job.progress == Progress(0, "queued")
    assert job.result_text is None and job.error is None
    assert job.created_at == 42.0
    assert reg.get(job.job_id) == job


def test_job_id_is_independent_of_upload_id():
    reg = JobRegistry()
    a = reg.create("same-upload", "a.mp3")
    b = reg.create("same-upload", "a.mp3")
    assert a.job_id != b.job_id
    assert a.job_id != "same-upload"


def test_done_requires_result_text():
    with pytest.raises(JobStateError):
        _job(status=JobStatus.DONE)


def test_error_requires_detail():
    with pytest.raises(JobStateError):
        _job(status=JobStatus.ERROR)


def test_result_only_on_done():
    with pytest.raises(JobStateError):
        _job(status=JobStatus.PROCESSING, result_text="x")
    with pytest.raises(JobStateError):
        _job(status=JobStatus.QUEUED, error="x")


def test_progress_pct_bounds():
    with pytest.raises(JobStateError):
        Progress(101, "too far")
    with pytest.raises(JobStateError):
        Progress(-1, "too low")


def test_happy_path_transitions():
    job = _job().advance(10, "extracting audio", now=1.0)
    assert job.status is JobStatus.PROCESSING
    assert job.started_at == 1.0
    job = job.advance(55, "transcribing audio", now=2.0)
    assert job.started_at == 1.0
    done = job.complete("hello", now=3.0)
    assert done.status is JobStatus.DONE
    assert done.progress == Progress(100, "done")
    assert done.result_text == "hello"
    assert done.finished_at == 3.0


def test_progress_never_goes_backwards():
    job = _job().advance(55, "transcribing").advance(35, "late update")
    assert job.progress.pct == 55
    assert job.progress.message == "late update"


def test_fail_resets_progress():
    job = _job().advance(55, "transcribing").fail("boom")
    assert job.status is JobStatus.ERROR
    assert job.progress == Progress(0, "error")
    assert job.error == "boom"
    assert job.result_text is None


def test_queued_job_can_fail_directly():
    assert _job().fail("no input").status is JobStatus.ERROR


def test_queued_job_can_not_complete_directly():
    with pytest.raises(JobStateError):
        _job().complete("text")


@pytest.mark.parametrize("terminal", ["done", "error"])
def test_terminal_jobs_do_not_transition(terminal):
    job = _job().advance(10, "x")
    job = job.complete("t") if terminal == "done" else job.fail("e")
    with pytest.raises(JobStateError):
        job.advance(50, "again")
    with pytest.raises(JobStateError):
        job.complete("again")
    with pytest.raises(JobStateError):
        job.fail("again")


def test_empty_result_text_is_a_valid_done():
    job = _job().advance(10, "x").complete("")
    assert job.status is JobStatus.DONE and job.result_text == ""


def test_registry_update_replaces_snapshot():
    reg = JobRegistry()
    job = reg.create("u1", "a.mp3")
    before = reg.get(job.job_id)
    reg.update(job.job_id, lambda j: j.advance(10, "extracting audio"))
    assert before.status is JobStatus.QUEUED  # old snapshot untouched
    assert reg.get(job.job_id).status is JobStatus.PROCESSING


def test_registry_unknown_job():
    reg = JobRegistry()
    assert reg.get("nope") is None
    assert "nope" not in reg
    with pytest.raises(KeyError):
        reg.update("nope", lambda j: j)


def test_status_values_match_wire_format():
    assert [s.value for s in JobStatus] == ["queued", "processing", "done", "error"]
    assert JobStatus.DONE.terminal and JobStatus.ERROR.terminal
    assert not JobStatus.PROCESSING.terminal

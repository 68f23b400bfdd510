import pytest
import pytest_asyncio

from vocab_trainer.jobs.job_queue import JobQueue, JobStatus


@pytest_asyncio.fixture
async def queue():
    queue = JobQueue(concurrency=1, attempts=3, backoff_ms=0)
    yield queue
    await queue.stop()


@pytest.mark.asyncio
async def test_enqueue_returns_immediately_and_job_completes(queue):
    seen = []

    @queue.process("demo", "echo")
    async def handle(job):
        seen.append(job.data["value"])
        return {"echo": job.data["value"]}

    await queue.start()
    job_id = await queue.enqueue("demo", "echo", {"value": 3})
    await queue.join()

    job = queue.get_job(job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.result == {"echo": 3}
    assert seen == [3]


@pytest.mark.asyncio
async def test_failed_job_is_retried_then_succeeds(queue):
    attempts = []

    async def flaky(job):
        attempts.append(job.attempts_made)
        if len(attempts) < 3:
            raise RuntimeError("provider unavailable")
        return "ok"

    queue.register("demo", "flaky", flaky)
    await queue.start()
    job_id = await queue.enqueue("demo", "flaky", {})
    await queue.join()

    assert attempts == [1, 2, 3]
    assert queue.get_job(job_id).status == JobStatus.COMPLETED
    assert queue.get_dead_letters("demo") == []


@pytest.mark.asyncio
async def test_exhausted_job_moves_to_dead_letters(queue):
    async def broken(job):
        raise RuntimeError("always fails")

    queue.register("demo", "broken", broken)
    await queue.start()
    job_id = await queue.enqueue("demo", "broken", {}, attempts=2)
    await queue.join()

    job = queue.get_job(job_id)
    assert job.status == JobStatus.FAILED
    assert job.attempts_made == 2
    assert job.error == "always fails"
    assert [j.id for j in queue.get_dead_letters("demo")] == [job_id]


@pytest.mark.asyncio
async def test_progress_listener_receives_status_changes(queue):
    statuses = []

    async def handle(job):
        return None

    queue.register("demo", "noop", handle)
    await queue.start()
    job_id = await queue.enqueue("demo", "noop", {}, delay_ms=60_000)
    queue.on_progress(job_id, lambda job: statuses.append(job.status))
    await queue._release(job_id)
    await queue.join()

    assert statuses == [JobStatus.QUEUED, JobStatus.PROCESSING, JobStatus.COMPLETED]


@pytest.mark.asyncio
async def test_same_key_reuses_active_job(queue):
    async def handle(job):
        return None

    queue.register("demo", "noop", handle)
    first = await queue.enqueue("demo", "noop", {}, key="trainer:1", delay_ms=60_000)
    second = await queue.enqueue("demo", "noop", {}, key="trainer:1")
    other = await queue.enqueue("demo", "noop", {}, key="trainer:2", delay_ms=60_000)

    assert first == second
    assert other != first


@pytest.mark.asyncio
async def test_delayed_job_can_be_removed(queue):
    job_id = await queue.enqueue("demo", "noop", {}, delay_ms=60_000)

    assert queue.get_job(job_id).status == JobStatus.DELAYED
    assert await queue.remove(job_id) is True
    assert queue.get_job(job_id) is None
    assert await queue.remove(job_id) is False


@pytest.mark.asyncio
async def test_cron_template_is_not_processed_directly(queue):
    job_id = await queue.enqueue("demo", "noop", {"email": "a@b.c"}, cron_pattern="0 9 * * *")

    job = queue.get_job(job_id)
    assert job.status == JobStatus.DELAYED
    assert job.cron_pattern == "0 9 * * *"
    assert await queue.remove(job_id) is True


@pytest.mark.asyncio
async def test_finished_jobs_are_pruned_per_queue():
    queue = JobQueue(concurrency=1, attempts=1, backoff_ms=0, keep_completed=2, keep_failed=1)

    async def handle(job):
        if job.data["fail"]:
            raise RuntimeError("boom")
        return job.data["n"]

    queue.register("demo", "work", handle)
    await queue.start()
    try:
        done = [await queue.enqueue("demo", "work", {"n": n, "fail": False}) for n in range(4)]
        failed = [await queue.enqueue("demo", "work", {"n": n, "fail": True}) for n in range(3)]
        await queue.join()
    finally:
        await queue.stop()

    assert [queue.get_job(job_id) is not None for job_id in done] == [False, False, True, True]
    assert [queue.get_job(job_id) is not None for job_id in failed] == [False, False, True]
    assert [j.id for j in queue.get_dead_letters("demo")] == [failed[-1]]
    assert len(queue.get_jobs("demo")) == 3


@pytest.mark.asyncio
async def test_key_is_released_when_job_finishes(queue):
    async def handle(job):
        return None

    queue.register("demo", "noop", handle)
    await queue.start()
    first = await queue.enqueue("demo", "noop", {}, key="trainer:1")
    await queue.join()

    assert queue.find_active("demo", "trainer:1") is None
    second = await queue.enqueue("demo", "noop", {}, key="trainer:1")
    assert second != first

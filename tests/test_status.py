import threading
import unittest

from src.common.errors import PollCancelledError, PollTimeoutError, WorkClientError
from src.common.models import Condition, Job, JobState, Resource
from src.engine.status import map_state, update_job_resource, wait_for_applied
from tests.fakes import FakeWorkClient

WORK = {"metadata": {"name": "web-00001"}, "spec": {"workload": {"manifests": []}}}


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class MapStateTests(unittest.TestCase):
    def test_latest_condition_wins(self) -> None:
        self.assertEqual(map_state([{"type": "Degraded"}, {"type": "Applied"}]), JobState.FINISHED)
        self.assertEqual(map_state([{"type": "Applied"}, {"type": "Degraded"}]), JobState.DEGRADED)
        self.assertEqual(map_state([{"type": "Available"}]), JobState.FINISHED)
        self.assertEqual(map_state([{"type": "Progressing"}]), JobState.PROGRESSING)

    def test_empty_or_unknown_is_progressing(self) -> None:
        self.assertEqual(map_state([]), JobState.PROGRESSING)
        self.assertEqual(map_state([{"type": "SomethingNew"}]), JobState.PROGRESSING)

    def test_accepts_condition_models(self) -> None:
        self.assertEqual(map_state([Condition.now("Degraded", "X", "y")]), JobState.DEGRADED)


class UpdateJobResourceTests(unittest.TestCase):
    def test_conditions_are_appended(self) -> None:
        job = Job(
            id="j1",
            type="CreateDeployment",
            resource=Resource(resource_name="web", conditions=[Condition.now("Progressing", "Job Promoted", "")]),
        )
        work = {
            "metadata": {"name": "web-abcde", "uid": "u-1"},
            "status": {"conditions": [{"type": "Applied", "status": "True"}]},
        }
        update_job_resource(job, work)
        self.assertEqual(job.state, JobState.FINISHED)
        self.assertEqual(job.resource.resource_uid, "u-1")
        self.assertEqual(job.resource.resource_name, "web-abcde")
        self.assertEqual([c.type for c in job.resource.conditions], ["Progressing", "Applied"])

    def test_absent_work_marks_deleted(self) -> None:
        job = Job(id="j1", type="DeleteDeployment", state="Finished", resource=Resource(resource_name="web"))
        update_job_resource(job, None)
        self.assertEqual(job.resource.resource_name, "")
        self.assertEqual(job.resource.latest_condition.reason, "Deleted")
        self.assertEqual(job.state, JobState.FINISHED)


class WaitForAppliedTests(unittest.TestCase):
    def test_returns_once_conditions_appear(self) -> None:
        client = FakeWorkClient(conditions_after_gets=2)
        client.add("cluster1", WORK)
        clock = FakeClock()
        work = wait_for_applied(client, "cluster1", "web-00001", 5.0, poll_interval=0.5, clock=clock, sleep=clock.sleep)
        self.assertEqual(work["status"]["conditions"][0]["type"], "Applied")
        self.assertEqual(client.verbs(), ["get", "get", "get"])
        self.assertEqual(clock.sleeps, [0.5, 0.5])

    def test_fetch_errors_are_retried(self) -> None:
        client = FakeWorkClient()
        clock = FakeClock()
        with self.assertRaises(PollTimeoutError):
            wait_for_applied(client, "cluster1", "missing", 2.0, poll_interval=0.5, clock=clock, sleep=clock.sleep)
        self.assertEqual(len(client.calls), 5)

    def test_timeout_without_conditions(self) -> None:
        client = FakeWorkClient(conditions=[])
        client.add("cluster1", WORK)
        clock = FakeClock()
        with self.assertRaises(PollTimeoutError):
            wait_for_applied(client, "cluster1", "web-00001", 1.2, poll_interval=0.5, clock=clock, sleep=clock.sleep)
        self.assertAlmostEqual(sum(clock.sleeps), 1.2)

    def test_transient_error_then_success(self) -> None:
        client = FakeWorkClient()
        client.add("cluster1", WORK)
        client.failures["get"] = WorkClientError("boom", status=500)
        clock = FakeClock()

        def sleep(seconds: float) -> None:
            client.failures.clear()
            clock.sleep(seconds)

        work = wait_for_applied(client, "cluster1", "web-00001", 5.0, clock=clock, sleep=sleep)
        self.assertTrue(work["status"]["conditions"])

    def test_cancel_aborts_wait(self) -> None:
        client = FakeWorkClient(conditions=[])
        client.add("cluster1", WORK)
        cancel = threading.Event()
        cancel.set()
        with self.assertRaises(PollCancelledError):
            wait_for_applied(client, "cluster1", "web-00001", 30.0, cancel=cancel)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()

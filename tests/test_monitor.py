import pytest

from src.common.errors import FeedbackError, WorkClientError
from src.engine.locks import ResourceLocks
from src.engine.monitor import (
    CompletionMonitor,
    KubernetesJobStatus,
    MonitorRegistry,
    MonitorState,
    job_status_from_work,
)
from tests.fakes import FakeWorkClient


def _feedback_work(succeeded=0, failed=0, name="web-job-00001"):
    return {
        "metadata": {"name": name},
        "spec": {"workload": {"manifests": []}},
        "status": {
            "conditions": [{"type": "Applied", "status": "True"}],
            "resourceStatus": {
                "manifests": [
                    {
                        "resourceMeta": {"group": "", "resource": "serviceaccounts", "name": "web-job-sa"},
                        "statusFeedback": {},
                    },
                    {
                        "resourceMeta": {"group": "batch", "resource": "jobs", "name": "web-job-1"},
                        "statusFeedback": {
                            "values": [
                                {"name": "JobActive", "fieldValue": {"type": "Integer", "integer": 1}},
                                {"name": "JobSucceeded", "fieldValue": {"type": "Integer", "integer": succeeded}},
                                {"name": "JobFailed", "fieldValue": {"type": "Integer", "integer": failed}},
                            ]
                        },
                    },
                ]
            },
        },
    }


def _monitor(client, **kwargs):
    kwargs.setdefault("interval", 0.001)
    kwargs.setdefault("timeout", 5.0)
    return CompletionMonitor(client, "cluster1", "web-job-00001", **kwargs)


class TestJobStatusFromWork:
    def test_reads_counts(self):
        assert job_status_from_work(_feedback_work(succeeded=1)) == KubernetesJobStatus(succeeded=1, failed=0)

    def test_empty_work(self):
        with pytest.raises(FeedbackError):
            job_status_from_work({})

    def test_missing_job_entry(self):
        work = _feedback_work()
        work["status"]["resourceStatus"]["manifests"].pop()
        with pytest.raises(FeedbackError, match="not found"):
            job_status_from_work(work)

    def test_non_integer_value(self):
        work = _feedback_work()
        values = work["status"]["resourceStatus"]["manifests"][1]["statusFeedback"]["values"]
        values[1]["fieldValue"] = {"type": "String", "string": "1"}
        with pytest.raises(FeedbackError):
            job_status_from_work(work)


class TestCompletionMonitor:
    def test_success_deletes_work(self):
        client = FakeWorkClient()
        client.add("cluster1", _feedback_work(succeeded=1))
        monitor = _monitor(client)
        assert monitor.run() is MonitorState.SUCCEEDED
        assert client.works == {}
        assert client.verbs() == ["get", "delete"]

    def test_failure_deletes_work(self):
        client = FakeWorkClient()
        client.add("cluster1", _feedback_work(failed=2))
        assert _monitor(client).run() is MonitorState.FAILED
        assert client.works == {}

    def test_still_running_polls_again(self):
        client = FakeWorkClient()
        client.add("cluster1", _feedback_work())
        monitor = _monitor(client)
        assert monitor.check() is MonitorState.RUNNING
        assert ("cluster1", "web-job-00001") in client.works

    def test_timeout_deletes_work(self):
        client = FakeWorkClient()
        client.add("cluster1", _feedback_work())
        monitor = _monitor(client, interval=0.01, timeout=0.05)
        assert monitor.run() is MonitorState.TIMED_OUT
        assert client.works == {}

    def test_fetch_errors_keep_polling(self):
        client = FakeWorkClient()
        client.add("cluster1", _feedback_work(succeeded=1))
        client.failures["get"] = WorkClientError("unavailable", status=503)
        assert _monitor(client).check() is MonitorState.RUNNING

    def test_delete_error_is_not_retried(self):
        client = FakeWorkClient()
        client.add("cluster1", _feedback_work(succeeded=1))
        client.failures["delete"] = WorkClientError("forbidden", status=403)
        assert _monitor(client).run() is MonitorState.SUCCEEDED
        assert client.verbs().count("delete") == 1
        assert ("cluster1", "web-job-00001") in client.works

    def test_cancel_leaves_work_in_place(self):
        client = FakeWorkClient()
        client.add("cluster1", _feedback_work(succeeded=1))
        monitor = _monitor(client, interval=60.0)
        monitor.cancel()
        assert monitor.run() is MonitorState.CANCELLED
        assert monitor.cancelled
        assert client.verbs() == []

    def test_delete_takes_the_resource_lock(self):
        locks = ResourceLocks()
        client = FakeWorkClient()
        client.add("cluster1", _feedback_work(succeeded=1))
        held = []
        delete = client.delete

        def recording_delete(namespace, name):
            held.append(len(locks))
            return delete(namespace, name)

        client.delete = recording_delete
        _monitor(client, locks=locks).run()
        assert held == [1]
        assert len(locks) == 0


class TestResourceLocks:
    def test_entries_are_dropped_after_release(self):
        locks = ResourceLocks()
        for index in range(50):
            with locks.hold("cluster1", f"job-{index:05d}"):
                assert len(locks) == 1
        assert len(locks) == 0

    def test_reentrant_hold_keeps_entry_until_outermost_release(self):
        locks = ResourceLocks()
        with locks.hold("cluster1", "web"):
            with locks.hold("cluster1", "web"):
                assert len(locks) == 1
            assert len(locks) == 1
        assert len(locks) == 0

    def test_entry_released_when_body_raises(self):
        locks = ResourceLocks()
        with pytest.raises(RuntimeError):
            with locks.hold("cluster1", "web"):
                raise RuntimeError("boom")
        assert len(locks) == 0


class TestMonitorRegistry:
    def test_start_and_join(self):
        client = FakeWorkClient()
        client.add("cluster1", _feedback_work(succeeded=1))
        registry = MonitorRegistry()
        monitor = _monitor(client)
        thread = registry.start(monitor)
        assert thread.name == "monitor-cluster1/web-job-00001"
        assert registry.join_all(5.0)
        assert monitor.state is MonitorState.SUCCEEDED
        assert registry.active() == []

    def test_shutdown_cancels_running_monitors(self):
        client = FakeWorkClient()
        client.add("cluster1", _feedback_work())
        registry = MonitorRegistry()
        monitor = _monitor(client, interval=60.0, timeout=600.0)
        registry.start(monitor)
        assert registry.shutdown(5.0)
        assert monitor.state is MonitorState.CANCELLED
        assert ("cluster1", "web-job-00001") in client.works

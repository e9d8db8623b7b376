import json

import httpx
import pytest

from src.common.errors import JobSourceError
from src.common.models import Job, ResourceStatus
from src.jobsource.client import JobManagerClient

JOBS = [
    {
        "id": "job-1",
        "job_group_id": "group-7",
        "type": "CreateDeployment",
        "namespace": "team-a",
        "targets": {"cluster_name": "cluster1"},
        "instruction": {"componentName": "web", "contents": [{"name": "web", "yaml": "kind: Namespace"}]},
    },
    {"type": "CreateDeployment"},
    {
        "id": "job-2",
        "type": "UpdateDeployment",
        "sub_type": "secure",
        "targets": {"cluster_name": "cluster1"},
        "resource": {
            "resource_name": "web",
            "remediations": [
                {
                    "remediationType": "secure",
                    "remediationTarget": {"pod": "p1", "container": "c1", "command": "ls"},
                }
            ],
        },
    },
]


def _client(handler):
    return JobManagerClient("http://jobs.local:8080/", transport=httpx.MockTransport(handler))


class TestJobManagerClient:
    def test_fetch_forwards_authorization_and_skips_malformed(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json=JOBS)

        jobs = _client(handler).fetch_executable_jobs("Bearer token")
        assert seen == {"url": "http://jobs.local:8080/jobs/executable", "auth": "Bearer token"}
        assert [job.id for job in jobs] == ["job-1", "job-2"]
        assert jobs[0].target.cluster_name == "cluster1"
        assert jobs[0].instruction.component_name == "web"
        assert jobs[1].resource.remediations[0].remediation_target.command == "ls"

    def test_unset_enums_and_times_are_accepted(self):
        record = {
            "id": "job-3",
            "type": "UpdateDeployment",
            "sub_type": "scale-up",
            "state": "",
            "orchestrator": "",
            "targets": {"cluster_name": "cluster1", "orchestrator": ""},
            "resource": {
                "resource_name": "web",
                "conditions": [{"type": "Applied", "status": "True", "lastTransitionTime": None}],
                "remediations": [{"remediationType": "", "remediationStatus": "", "resource_id": ""}],
            },
        }
        jobs = _client(lambda request: httpx.Response(200, json=[record])).fetch_executable_jobs("t")
        assert [job.id for job in jobs] == ["job-3"]
        job = jobs[0]
        assert job.state == "Created"
        assert job.orchestrator is None
        assert job.target.orchestrator is None
        assert job.resource.conditions[0].last_transition_time is None
        remediation = job.resource.remediations[0]
        assert remediation.remediation_type is None
        assert remediation.status == "Pending"

    def test_null_body_means_no_jobs(self):
        assert _client(lambda request: httpx.Response(200, content=b"null")).fetch_executable_jobs("t") == []

    def test_error_status(self):
        with pytest.raises(JobSourceError) as excinfo:
            _client(lambda request: httpx.Response(401)).fetch_executable_jobs("t")
        assert excinfo.value.status == 401

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(JobSourceError):
            _client(handler).fetch_executable_jobs("t")

    def test_non_list_body(self):
        with pytest.raises(JobSourceError):
            _client(lambda request: httpx.Response(200, json={"jobs": []})).fetch_executable_jobs("t")

    def test_update_job_puts_wire_format(self):
        captured = {}

        def handler(request):
            captured["method"] = request.method
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={})

        job = Job.model_validate(JOBS[0])
        job.state = "Finished"
        _client(handler).update_job(job, "t")
        assert captured["method"] == "PUT"
        assert captured["path"] == "/jobs/job-1"
        assert captured["body"]["state"] == "Finished"
        assert captured["body"]["targets"] == {"cluster_name": "cluster1"}
        assert captured["body"]["instruction"]["componentName"] == "web"

    def test_push_resource_status(self):
        captured = {}

        def handler(request):
            captured["path"] = request.url.path
            captured["uuid"] = request.url.params.get("uuid")
            return httpx.Response(204)

        status = ResourceStatus(id="u-1", manifest_name="web-abcde", node_target="cluster1")
        _client(handler).push_resource_status(status, "t")
        assert captured == {"path": "/jobmanager/resources/status/u-1", "uuid": "u-1"}

    def test_base_url_must_be_http(self):
        with pytest.raises(ValueError):
            JobManagerClient("jobs.local:8080")
        with pytest.raises(ValueError):
            JobManagerClient("")

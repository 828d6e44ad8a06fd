"""Integration tests for the webhook pipeline through the HTTP API."""

import asyncio
import json

import pytest
from httpx import AsyncClient

from pushdeploy.models.notification import NotificationKind
from pushdeploy.models.trace import StepStatus

from fakes import FakeCommandRunner


class TestWebhookEndpoint:
    """Tests for POST /v1/webhook."""

    @pytest.mark.asyncio
    async def test_successful_deployment(
        self, client: AsyncClient, make_push, signed_headers, channels
    ):
        """demo/main/abc123de with every phase passing deploys and notifies once per channel."""
        body = make_push()

        response = await client.post("/v1/webhook", content=body, headers=signed_headers(body))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["traceId"]
        assert data["deployment"]["success"] is True
        assert data["deployment"]["commit"] == "abc123de"
        assert data["deployment"]["phase"] == "succeeded"
        assert [n["channel"] for n in data["notifications"]] == ["console", "webhook"]

        for channel in channels:
            assert len(channel.events) == 1
            assert channel.events[0].kind == NotificationKind.SUCCESS

        trace = (await client.get(f"/v1/traces/{data['traceId']}")).json()
        assert trace["project"] == "demo"
        assert trace["success"] is True
        assert trace["phase"] == "succeeded"

    @pytest.mark.asyncio
    async def test_apply_failure_rolls_back(
        self, client: AsyncClient, make_push, signed_headers, channels, runner
    ):
        runner.exit_codes["./deploy.sh"] = 1
        body = make_push()

        response = await client.post("/v1/webhook", content=body, headers=signed_headers(body))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["deployment"]["success"] is False
        assert data["deployment"]["phase"] == "failed"
        assert data["deployment"]["rollback_attempted"] is True

        for channel in channels:
            assert [e.kind for e in channel.events] == [NotificationKind.ERROR]

        trace = (await client.get(f"/v1/traces/{data['traceId']}")).json()
        names = [step["name"] for step in trace["steps"]]
        assert "rollback-attempted" in names
        assert trace["success"] is False

    @pytest.mark.asyncio
    async def test_invalid_signature(self, client: AsyncClient, make_push, signed_headers, runner):
        body = make_push()
        headers = signed_headers(body, secret="wrong")

        response = await client.post("/v1/webhook", content=body, headers=headers)

        assert response.status_code == 401
        data = response.json()
        assert data["success"] is False
        assert runner.calls == []

        trace = (await client.get(f"/v1/traces/{data['traceId']}")).json()
        assert trace["steps"][0]["name"] == "signature-verification"
        assert trace["steps"][0]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_missing_signature(self, client: AsyncClient, make_push):
        response = await client.post(
            "/v1/webhook", content=make_push(), headers={"X-GitHub-Event": "push"}
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_malformed_payload(self, client: AsyncClient, signed_headers):
        body = b'{"repository": '

        response = await client.post("/v1/webhook", content=body, headers=signed_headers(body))

        assert response.status_code == 400
        trace = (await client.get(f"/v1/traces/{response.json()['traceId']}")).json()
        assert [s["name"] for s in trace["steps"]] == ["signature-verification", "payload-parsing"]
        assert trace["steps"][-1]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_unconfigured_project(
        self, client: AsyncClient, make_push, signed_headers, runner, channels
    ):
        """Unknown repositories are informational, never failures."""
        body = make_push(repository="unknown-repo")

        response = await client.post("/v1/webhook", content=body, headers=signed_headers(body))

        assert response.status_code == 200
        data = response.json()
        assert data["skipped"] is True
        assert data["availableProjects"] == ["demo"]
        assert runner.calls == []
        assert all(not c.events for c in channels)

        trace = (await client.get(f"/v1/traces/{data['traceId']}")).json()
        statuses = {step["status"] for step in trace["steps"]}
        assert "failed" not in statuses
        assert trace["steps"][-1]["name"] == "project-validation"
        assert trace["steps"][-1]["status"] == "skipped"

    @pytest.mark.asyncio
    async def test_branch_mismatch_is_skipped(
        self, client: AsyncClient, make_push, signed_headers, runner
    ):
        body = make_push(ref="refs/heads/other")

        response = await client.post("/v1/webhook", content=body, headers=signed_headers(body))

        assert response.status_code == 200
        data = response.json()
        assert data["skipped"] is True
        assert runner.calls == []

        trace = (await client.get(f"/v1/traces/{data['traceId']}")).json()
        branch_steps = [s for s in trace["steps"] if s["name"] == "branch-validation"]
        assert branch_steps[0]["status"] == StepStatus.SKIPPED.value

    @pytest.mark.asyncio
    async def test_ping(self, client: AsyncClient, signed_headers):
        body = json.dumps({"zen": "Keep it logically awesome."}).encode()

        response = await client.post(
            "/v1/webhook", content=body, headers=signed_headers(body, event="ping")
        )

        assert response.status_code == 200
        assert response.json()["message"] == "pong"

    @pytest.mark.asyncio
    async def test_other_events_ignored(self, client: AsyncClient, signed_headers, runner):
        body = json.dumps({"action": "opened"}).encode()

        response = await client.post(
            "/v1/webhook", content=body, headers=signed_headers(body, event="pull_request")
        )

        assert response.status_code == 200
        assert response.json()["skipped"] is True
        assert runner.calls == []

        trace = (await client.get(f"/v1/traces/{response.json()['traceId']}")).json()
        assert trace["success"] is True
        assert trace["steps"][-1]["name"] == "event-filter"
        assert trace["steps"][-1]["status"] == "skipped"

    @pytest.mark.asyncio
    async def test_concurrent_push_is_rejected(
        self, client: AsyncClient, app, make_push, signed_headers, settings
    ):
        """A second push for a busy project gets 409 instead of a parallel run."""
        gate = asyncio.Event()

        class BlockingRunner(FakeCommandRunner):
            async def run(self, command, cwd=None, env=None, timeout=None):
                if command == "node --version":
                    await gate.wait()
                return await super().run(command, cwd, env, timeout)

        app.state.orchestrator.runner = BlockingRunner()
        body = make_push()

        first = asyncio.create_task(
            client.post("/v1/webhook", content=body, headers=signed_headers(body))
        )
        for _ in range(50):
            if app.state.gateway.is_busy("demo"):
                break
            await asyncio.sleep(0.01)

        health = (await client.get("/v1/health")).json()
        second = await client.post("/v1/webhook", content=body, headers=signed_headers(body))
        gate.set()
        first_response = await first

        assert health["components"]["deployment"] == "busy"
        assert health["active_deployments"] == ["demo"]
        assert second.status_code == 409
        assert second.json()["error"] == "deployment in progress"
        assert first_response.status_code == 200
        assert app.state.gateway.is_busy() is False

    @pytest.mark.asyncio
    async def test_cancelled_deployment_is_recorded_and_released(
        self, app, make_push, signed_headers
    ):
        """Cancelling an in-flight run (server shutdown) still settles its trace and lock."""
        started = asyncio.Event()

        class HangingRunner(FakeCommandRunner):
            async def run(self, command, cwd=None, env=None, timeout=None):
                if command == "node --version":
                    started.set()
                    await asyncio.Event().wait()
                return await super().run(command, cwd, env, timeout)

        app.state.orchestrator.runner = HangingRunner()
        gateway = app.state.gateway
        body = make_push()

        task = asyncio.create_task(gateway.handle(body, signed_headers(body)))
        await asyncio.wait_for(started.wait(), timeout=1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        trace = await app.state.recorder.get_latest_trace()
        assert trace.success is False
        assert trace.phase == "failed"
        assert trace.steps_named("interrupted")
        assert gateway.is_busy("demo") is False

    @pytest.mark.asyncio
    async def test_tolerated_test_failure_sends_warning(
        self, client: AsyncClient, make_push, signed_headers, runner, channels
    ):
        runner.exit_codes["npm test"] = 1
        body = make_push()

        response = await client.post("/v1/webhook", content=body, headers=signed_headers(body))

        data = response.json()
        assert data["success"] is True
        assert data["deployment"]["tolerated_failures"] == ["test: npm test"]
        for channel in channels:
            assert [e.kind for e in channel.events] == [
                NotificationKind.WARNING,
                NotificationKind.SUCCESS,
            ]
            assert "npm test" in channel.events[0].message

        trace = (await client.get(f"/v1/traces/{data['traceId']}")).json()
        assert "notify-warning" in [step["name"] for step in trace["steps"]]

    @pytest.mark.asyncio
    async def test_internal_fault_returns_500_with_trace(
        self, client: AsyncClient, app, make_push, signed_headers
    ):
        def broken_loader():
            raise RuntimeError("registry exploded")

        app.state.gateway.registry_loader = broken_loader
        body = make_push()

        response = await client.post("/v1/webhook", content=body, headers=signed_headers(body))

        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert "registry exploded" in data["error"]
        assert data["traceId"]

    @pytest.mark.asyncio
    async def test_failing_channel_does_not_fail_request(
        self, client: AsyncClient, make_push, signed_headers, channels
    ):
        channels[0].fail = True
        body = make_push()

        response = await client.post("/v1/webhook", content=body, headers=signed_headers(body))

        data = response.json()
        assert response.status_code == 200
        assert data["success"] is True
        assert [n["success"] for n in data["notifications"]] == [False, True]


class TestManualDeploy:
    """Tests for POST /v1/projects/{name}/deploy."""

    @pytest.mark.asyncio
    async def test_manual_deploy(self, client: AsyncClient, channels):
        response = await client.post("/v1/projects/demo/deploy")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["traceId"].startswith("manual-")
        assert len(channels[0].events) == 1

    @pytest.mark.asyncio
    async def test_unknown_project(self, client: AsyncClient):
        response = await client.post("/v1/projects/nope/deploy")

        assert response.status_code == 404
        assert response.json()["availableProjects"] == ["demo"]


class TestTraceEndpoints:
    """Tests for trace queries."""

    @pytest.mark.asyncio
    async def test_latest_and_project_traces(self, client: AsyncClient):
        first = (await client.post("/v1/projects/demo/deploy")).json()["traceId"]
        second = (await client.post("/v1/projects/demo/deploy")).json()["traceId"]

        latest = await client.get("/v1/traces/latest")
        project_traces = await client.get("/v1/traces/project/demo")

        assert latest.json()["id"] == second
        assert [t["id"] for t in project_traces.json()] == [second, first]

    @pytest.mark.asyncio
    async def test_unknown_trace(self, client: AsyncClient):
        response = await client.get("/v1/traces/missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "TRACENOTFOUNDERROR"

    @pytest.mark.asyncio
    async def test_no_traces_yet(self, client: AsyncClient):
        response = await client.get("/v1/traces/latest")

        assert response.status_code == 404


class TestStatusEndpoints:
    """Tests for health and status endpoints."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"]
        assert data["environment"] == "development"
        assert data["components"] == {
            "webhook": "online",
            "tracing": "active",
            "notifications": "ready",
            "deployment": "idle",
        }
        assert data["active_deployments"] == []
        assert data["uptime_seconds"] >= 0

    @pytest.mark.asyncio
    async def test_webhook_status(self, client: AsyncClient):
        response = await client.get("/v1/webhook/status")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    @pytest.mark.asyncio
    async def test_list_projects(self, client: AsyncClient):
        response = await client.get("/v1/projects")

        data = response.json()
        assert data["total"] == 1
        assert data["projects"][0]["name"] == "demo"
        assert data["projects"][0]["branch"] == "main"

    @pytest.mark.asyncio
    async def test_events_for_unknown_project(self, client: AsyncClient):
        response = await client.get("/v1/projects/nope/events")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delivery_id_becomes_request_id(
        self, client: AsyncClient, signed_headers
    ):
        """Responses echo the GitHub delivery id for log correlation."""
        body = json.dumps({"zen": "Keep it simple."}).encode()

        response = await client.post(
            "/v1/webhook", content=body, headers=signed_headers(body, event="ping")
        )

        assert response.headers["X-Request-ID"] == "delivery-1"
        assert response.headers["X-Response-Time"].endswith("ms")

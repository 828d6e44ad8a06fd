"""Webhook gateway: the trust boundary in front of the orchestrator."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from pushdeploy.config import Settings
from pushdeploy.core.exceptions import DeploymentInProgressError
from pushdeploy.core.notifications import (
    NotificationRouter,
    build_deployment_info,
    deployment_failed,
    deployment_started,
    deployment_succeeded,
    deployment_warning,
)
from pushdeploy.core.orchestrator import DeploymentOrchestrator
from pushdeploy.core.registry import ProjectRegistry
from pushdeploy.core.signature import verify_signature
from pushdeploy.core.tracing import TraceRecorder
from pushdeploy.models.deployment import DeploymentResult, DeploymentTrigger
from pushdeploy.models.notification import ChannelResult, NotificationEvent
from pushdeploy.models.project import ProjectConfig
from pushdeploy.models.trace import StepStatus
from pushdeploy.models.webhook import PushEvent
from pushdeploy.utils.logging import get_logger

EVENT_HEADER = "x-github-event"
DELIVERY_HEADER = "x-github-delivery"
SIGNATURE_HEADER = "x-hub-signature-256"


@dataclass
class GatewayResponse:
    """Status code and JSON body for the HTTP layer."""

    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


class WebhookGateway:
    """Verifies, routes and runs inbound deployment requests.

    Projects are reloaded through ``registry_loader`` on every request. At
    most one deployment per project runs at a time; a concurrent request for
    a busy project is rejected with 409.
    """

    def __init__(
        self,
        settings: Settings,
        recorder: TraceRecorder,
        orchestrator: DeploymentOrchestrator,
        notifier: NotificationRouter,
        registry_loader: Callable[[], ProjectRegistry] | None = None,
    ):
        self.settings = settings
        self.recorder = recorder
        self.orchestrator = orchestrator
        self.notifier = notifier
        self.registry_loader = registry_loader or (
            lambda: ProjectRegistry.load(settings.projects_config_path)
        )
        self.logger = get_logger("gateway")
        self._in_flight: set[str] = set()

    @property
    def active_deployments(self) -> list[str]:
        return sorted(self._in_flight)

    def is_busy(self, project: str | None = None) -> bool:
        if project is None:
            return bool(self._in_flight)
        return project in self._in_flight

    async def handle(self, raw_body: bytes, headers: Mapping[str, str]) -> GatewayResponse:
        """Process one signed webhook delivery."""
        headers = {key.lower(): value for key, value in headers.items()}
        event = headers.get(EVENT_HEADER, "push")
        delivery_id = headers.get(DELIVERY_HEADER)

        trace_id = await self.recorder.start_trace(
            "webhook", {"source": "webhook", "event": event, "delivery_id": delivery_id}
        )
        log = self.logger.bind(trace_id=trace_id, delivery_id=delivery_id)

        try:
            if not verify_signature(
                raw_body, headers.get(SIGNATURE_HEADER), self.settings.webhook_secret
            ):
                log.warning("gateway.signature_rejected")
                await self.recorder.log_step(
                    trace_id,
                    "signature-verification",
                    StepStatus.FAILED,
                    {"error": "Invalid or missing signature"},
                )
                await self.recorder.complete_trace(trace_id, False)
                return GatewayResponse(
                    401,
                    {"success": False, "error": "Invalid signature", "traceId": trace_id},
                )
            await self.recorder.log_step(
                trace_id, "signature-verification", StepStatus.COMPLETED
            )

            if event == "ping":
                await self.recorder.log_step(trace_id, "ping", StepStatus.COMPLETED)
                await self.recorder.complete_trace(trace_id, True)
                return GatewayResponse(
                    200, {"success": True, "message": "pong", "traceId": trace_id}
                )

            if event != "push":
                log.info("gateway.event_ignored", github_event=event)
                await self.recorder.log_step(
                    trace_id, "event-filter", StepStatus.SKIPPED, {"event": event}
                )
                await self.recorder.complete_trace(trace_id, True)
                return GatewayResponse(
                    200,
                    {
                        "success": True,
                        "skipped": True,
                        "message": f"Event '{event}' ignored",
                        "traceId": trace_id,
                    },
                )

            try:
                push = PushEvent.model_validate_json(raw_body)
            except ValidationError as e:
                return await self._reject_payload(trace_id, f"{e.error_count()} invalid field(s)")
            repository_name = push.repository_name
            if not repository_name:
                return await self._reject_payload(trace_id, "repository name missing")

            await self.recorder.annotate(
                trace_id, project=repository_name, commit=push.commit, branch=push.branch
            )
            await self.recorder.log_step(
                trace_id,
                "payload-parsing",
                StepStatus.COMPLETED,
                {"repository": repository_name, "ref": push.ref, "commit": push.commit},
            )

            registry = self.registry_loader()
            project = registry.resolve(repository_name)
            if project is None:
                available = registry.list_available()
                log.info("gateway.project_unconfigured", repository=repository_name)
                await self.recorder.log_step(
                    trace_id,
                    "project-validation",
                    StepStatus.SKIPPED,
                    {"repository": repository_name, "available": available},
                )
                await self.recorder.complete_trace(trace_id, True)
                return GatewayResponse(
                    200,
                    {
                        "success": True,
                        "skipped": True,
                        "message": f"Project '{repository_name}' is not configured",
                        "availableProjects": available,
                        "traceId": trace_id,
                    },
                )
            await self.recorder.log_step(
                trace_id, "project-validation", StepStatus.COMPLETED, {"project": project.name}
            )

            if push.ref != project.target_ref:
                log.info(
                    "gateway.branch_ignored",
                    project=project.name,
                    ref=push.ref,
                    tracked=project.branch,
                )
                await self.recorder.log_step(
                    trace_id,
                    "branch-validation",
                    StepStatus.SKIPPED,
                    {"ref": push.ref, "tracked": project.branch},
                )
                await self.recorder.complete_trace(trace_id, True)
                return GatewayResponse(
                    200,
                    {
                        "success": True,
                        "skipped": True,
                        "message": (
                            f"Branch '{push.branch}' ignored; "
                            f"{project.name} deploys '{project.branch}'"
                        ),
                        "traceId": trace_id,
                    },
                )
            await self.recorder.log_step(
                trace_id, "branch-validation", StepStatus.COMPLETED, {"branch": push.branch}
            )

            head = push.head_commit
            trigger = DeploymentTrigger(
                source="webhook",
                commit=push.commit,
                message=head.message if head else None,
                author=head.author.name if head and head.author else None,
                branch=push.branch,
                delivery_id=delivery_id,
            )
            return await self._deploy(project, trigger, trace_id)

        except Exception as e:
            return await self._internal_fault(trace_id, e)

    async def trigger_manual(self, project_name: str) -> GatewayResponse:
        """Operator-initiated deployment. No signature, same pipeline."""
        registry = self.registry_loader()
        project = registry.resolve(project_name)
        if project is None:
            return GatewayResponse(
                404,
                {
                    "success": False,
                    "error": f"Project '{project_name}' not found",
                    "availableProjects": registry.list_available(),
                },
            )

        trace_id = await self.recorder.start_trace(
            "manual",
            {"source": "manual", "project": project.name, "branch": project.branch},
        )
        trigger = DeploymentTrigger(source="manual", branch=project.branch)
        try:
            return await self._deploy(project, trigger, trace_id)
        except Exception as e:
            return await self._internal_fault(trace_id, e)

    async def _deploy(
        self, project: ProjectConfig, trigger: DeploymentTrigger, trace_id: str
    ) -> GatewayResponse:
        try:
            self._acquire(project.name)
        except DeploymentInProgressError as e:
            self.logger.warning(
                "gateway.deployment_in_progress", project=project.name, trace_id=trace_id
            )
            await self.recorder.log_step(
                trace_id, "single-flight", StepStatus.SKIPPED, {"error": e.message}
            )
            await self.recorder.complete_trace(trace_id, False)
            return GatewayResponse(
                409,
                {
                    "success": False,
                    "error": "deployment in progress",
                    "project": project.name,
                    "traceId": trace_id,
                },
            )

        try:
            info = build_deployment_info(project, trigger.commit, trigger.branch, trace_id)
            if self.settings.notify_on_start:
                await self._notify(trace_id, deployment_started(info), "notify-start")

            try:
                result = await self.orchestrator.execute(project, trigger, trace_id)
            except asyncio.CancelledError:
                await self.recorder.complete_trace(trace_id, False, phase="failed")
                raise

            info = build_deployment_info(
                project, trigger.commit, trigger.branch, trace_id, result
            )
            if result.success and result.tolerated_failures:
                warning = "Deployed with tolerated failures: " + "; ".join(
                    result.tolerated_failures
                )
                await self._notify(trace_id, deployment_warning(info, warning), "notify-warning")
            event = deployment_succeeded(info) if result.success else deployment_failed(info)
            notifications = await self._notify(trace_id, event, "notifications")

            await self.recorder.complete_trace(
                trace_id, result.success, phase=result.phase.value
            )
        finally:
            self._in_flight.discard(project.name)

        return GatewayResponse(200, self._deployment_body(result, notifications, trace_id))

    def _acquire(self, project: str) -> None:
        if project in self._in_flight:
            raise DeploymentInProgressError(project)
        self._in_flight.add(project)

    async def _notify(
        self, trace_id: str, event: NotificationEvent, step: str
    ) -> list[ChannelResult]:
        results = await self.notifier.send(event)
        failed = [r.channel for r in results if not r.success]
        await self.recorder.log_step(
            trace_id,
            step,
            StepStatus.COMPLETED if not failed else StepStatus.FAILED,
            {
                "title": event.title,
                "delivered": len(results) - len(failed),
                "total": len(results),
                "failed_channels": failed,
            },
        )
        return results

    def _deployment_body(
        self,
        result: DeploymentResult,
        notifications: list[ChannelResult],
        trace_id: str,
    ) -> dict[str, Any]:
        return {
            "success": result.success,
            "traceId": trace_id,
            "deployment": result.model_dump(mode="json"),
            "notifications": [n.model_dump(mode="json") for n in notifications],
        }

    async def _reject_payload(self, trace_id: str, error: str) -> GatewayResponse:
        self.logger.warning("gateway.payload_rejected", trace_id=trace_id, error=error)
        await self.recorder.log_step(
            trace_id, "payload-parsing", StepStatus.FAILED, {"error": error}
        )
        await self.recorder.complete_trace(trace_id, False)
        return GatewayResponse(
            400,
            {"success": False, "error": f"Invalid payload: {error}", "traceId": trace_id},
        )

    async def _internal_fault(self, trace_id: str, error: Exception) -> GatewayResponse:
        self.logger.exception(
            "gateway.internal_error", trace_id=trace_id, error=str(error)
        )
        await self.recorder.log_step(
            trace_id, "internal-error", StepStatus.FAILED, {"error": str(error)}
        )
        await self.recorder.complete_trace(trace_id, False)
        return GatewayResponse(
            500, {"success": False, "error": str(error), "traceId": trace_id}
        )

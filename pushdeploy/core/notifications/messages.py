"""Notification message builders."""

from pushdeploy.models.deployment import DeploymentResult
from pushdeploy.models.notification import (
    DeploymentInfo,
    NotificationEvent,
    NotificationKind,
)
from pushdeploy.models.project import ProjectConfig


def extract_primary_link(
    deployment: DeploymentInfo | None, kind: NotificationKind
) -> str | None:
    """The one actionable link for a notification.

    success opens the live site, error opens the logs, anything else opens
    the commit.
    """
    if deployment is None:
        return None
    kind = NotificationKind(kind)
    if kind == NotificationKind.SUCCESS:
        return deployment.production_url
    if kind == NotificationKind.ERROR:
        return deployment.logs_url
    return deployment.commit_url


def format_duration(ms: int) -> str:
    seconds = ms // 1000
    minutes, seconds = divmod(seconds, 60)
    if minutes:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def build_deployment_info(
    project: ProjectConfig,
    commit: str | None,
    branch: str | None,
    trace_id: str | None = None,
    result: DeploymentResult | None = None,
) -> DeploymentInfo:
    """Collect the fields every channel may render."""
    info = DeploymentInfo(
        project=project.name,
        commit=commit,
        branch=branch or project.branch,
        status="started",
        trace_id=trace_id,
        production_url=project.production_url,
        commit_url=project.commit_url(commit),
        logs_url=project.resolved_logs_url,
    )
    if result is not None:
        info.status = "success" if result.success else "failed"
        info.phase = result.phase.value
        info.duration = format_duration(result.duration_ms)
        info.error = result.error
    return info


def _footer(lines: list[str], label: str, link: str | None, info: DeploymentInfo) -> None:
    if link:
        lines.extend(["", label, link])
    if info.commit_url and info.commit_url != link:
        lines.extend(["", f"Commit: {info.commit_url}"])


def deployment_started(info: DeploymentInfo) -> NotificationEvent:
    """Build the deployment started notification."""
    lines = [
        "Starting deployment...",
        "",
        f"Project: {info.project}",
        f"Commit: {info.commit or 'unknown'}",
        f"Branch: {info.branch or 'unknown'}",
    ]
    _footer(lines, "FOLLOW PROGRESS:", extract_primary_link(info, NotificationKind.INFO), info)
    return NotificationEvent(
        title="Deployment Started",
        message="\n".join(lines),
        kind=NotificationKind.INFO,
        deployment=info,
    )


def deployment_succeeded(info: DeploymentInfo) -> NotificationEvent:
    """Build the deployment success notification."""
    lines = [
        f"Deployed successfully in {info.duration or 'N/A'}!",
        "",
        f"Project: {info.project}",
        f"Commit: {info.commit or 'unknown'}",
        f"Branch: {info.branch or 'unknown'}",
    ]
    _footer(
        lines, "VIEW LIVE SITE:", extract_primary_link(info, NotificationKind.SUCCESS), info
    )
    return NotificationEvent(
        title="Deployment Success",
        message="\n".join(lines),
        kind=NotificationKind.SUCCESS,
        deployment=info,
    )


def deployment_failed(info: DeploymentInfo) -> NotificationEvent:
    """Build the deployment failure notification."""
    lines = [
        info.error or "Unknown error",
        "",
        f"Project: {info.project}",
        f"Commit: {info.commit or 'unknown'}",
        f"Branch: {info.branch or 'unknown'}",
        f"Phase: {info.phase or 'unknown'}",
    ]
    _footer(lines, "VIEW LOGS:", extract_primary_link(info, NotificationKind.ERROR), info)
    return NotificationEvent(
        title="Deployment Failed",
        message="\n".join(lines),
        kind=NotificationKind.ERROR,
        deployment=info,
    )


def deployment_warning(info: DeploymentInfo, warning: str) -> NotificationEvent:
    """Build a deployment warning notification."""
    lines = [
        warning,
        "",
        f"Project: {info.project}",
        f"Commit: {info.commit or 'unknown'}",
        f"Branch: {info.branch or 'unknown'}",
    ]
    _footer(
        lines, "CHECK DETAILS:", extract_primary_link(info, NotificationKind.WARNING), info
    )
    return NotificationEvent(
        title="Deployment Warning",
        message="\n".join(lines),
        kind=NotificationKind.WARNING,
        deployment=info,
    )

"""Slack Web API integration for run notifications."""

import logging
from dataclasses import dataclass

from swarm_code.core.orchestrator import ProgressCallback, ProgressEvent
from swarm_code.models import RunState

logger = logging.getLogger(__name__)

# Events worth a message; per-attempt starts would flood a channel
NOTIFY_EVENTS = ("wp-failed", "wave-done", "all-done")


class SlackError(Exception):
    """Raised when a Slack operation fails."""


@dataclass
class SlackMessage:
    channel: str
    ts: str
    text: str


def get_client(token: str | None):
    """Get a Slack WebClient. Returns None if no token provided."""
    if not token:
        return None
    from slack_sdk import WebClient
    return WebClient(token=token)


def send_message(
    token: str | None,
    channel: str,
    text: str,
    blocks: list[dict] | None = None,
) -> SlackMessage:
    """Send a message to a Slack channel."""
    client = get_client(token)
    if not client:
        raise SlackError("Slack not configured: SLACK_BOT_TOKEN not set")

    response = client.chat_postMessage(
        channel=channel,
        text=text,
        blocks=blocks,
    )

    return SlackMessage(
        channel=response["channel"],
        ts=response["ts"],
        text=text,
    )


def format_progress_event(event: ProgressEvent, project: str) -> list[dict]:
    """Format a progress event as Slack blocks."""
    event_emoji = {
        "wave-start": ":ocean:",
        "wp-start": ":large_blue_circle:",
        "wp-done": ":white_check_mark:",
        "wp-failed": ":x:",
        "wave-done": ":checkered_flag:",
        "all-done": ":tada:",
    }
    emoji = event_emoji.get(event.type, ":grey_question:")
    text = f"{emoji} *{project}*: {event.message}"
    if event.wp is not None and event.wp.error and event.type == "wp-failed":
        text += f"\nError: `{event.wp.error}`"
    return [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]


def format_run_summary(state: RunState, project: str) -> list[dict]:
    """Format a run summary as Slack blocks."""
    counts = state.counts()
    total = len(state.work_packages)
    progress = counts["done"] / total * 100 if total > 0 else 0
    duration = f" | Duration: {state.duration:.0f}s" if state.duration is not None else ""

    lines = [
        f":bar_chart: *Swarm run: {project}* (target `{state.config.branch}`)",
        (
            f":white_check_mark: Done: {counts['done']} | "
            f":x: Failed: {counts['failed']} | "
            f":large_blue_circle: Running: {counts['running']} | "
            f":white_circle: Pending: {counts['pending']}"
        ),
        f"Progress: {progress:.0f}% ({counts['done']}/{total}){duration}",
    ]
    failed = [wp for wp in state.work_packages if wp.status == "failed"]
    for wp in failed[:10]:
        lines.append(f"• `{wp.id}` {wp.name}: {wp.error or 'failed'}")

    return [{"type": "section", "text": {"type": "mrkdwn", "text": "\n".join(lines)}}]


def make_progress_notifier(token: str | None, channel: str, project: str) -> ProgressCallback:
    """A progress callback that posts selected events to Slack, best-effort."""

    def notify(event: ProgressEvent) -> None:
        if event.type not in NOTIFY_EVENTS:
            return
        try:
            send_message(token, channel, event.message, format_progress_event(event, project))
        except Exception:
            logger.exception("Failed to send Slack notification for %s", event.type)

    return notify

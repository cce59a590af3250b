"""Tests for Slack notifications."""

from unittest.mock import MagicMock, patch

import pytest

from swarm_code.core.orchestrator import ProgressEvent
from swarm_code.integrations import slack as slack_mod
from swarm_code.models import RunState, SwarmConfig, WorkPackage


def failed_wp():
    return WorkPackage(id="wp-2", name="API", description="d", branch="b",
                       status="failed", error="Merge conflicts: api.py")


class TestSendMessage:
    def test_requires_token(self):
        with pytest.raises(slack_mod.SlackError, match="SLACK_BOT_TOKEN"):
            slack_mod.send_message(None, "#builds", "hi")

    @patch("swarm_code.integrations.slack.get_client")
    def test_posts_message(self, mock_get_client):
        client = MagicMock()
        client.chat_postMessage.return_value = {"channel": "C123", "ts": "1700000000.0001"}
        mock_get_client.return_value = client

        msg = slack_mod.send_message("xoxb-test", "#builds", "hi", [{"type": "section"}])
        assert msg.channel == "C123"
        assert msg.ts == "1700000000.0001"
        client.chat_postMessage.assert_called_once_with(
            channel="#builds", text="hi", blocks=[{"type": "section"}]
        )


class TestFormatting:
    def test_progress_event_includes_error(self):
        event = ProgressEvent(type="wp-failed", message="WP wp-2: failed after 3 attempts", wp=failed_wp())
        blocks = slack_mod.format_progress_event(event, "demo")
        text = blocks[0]["text"]["text"]
        assert ":x:" in text
        assert "*demo*" in text
        assert "Merge conflicts: api.py" in text

    def test_run_summary(self):
        done = WorkPackage(id="wp-1", name="Schema", description="d", branch="b", status="done")
        state = RunState(config=SwarmConfig(branch="main"), work_packages=[done, failed_wp()])
        text = slack_mod.format_run_summary(state, "demo")[0]["text"]["text"]
        assert "Done: 1" in text
        assert "Failed: 1" in text
        assert "Progress: 50% (1/2)" in text
        assert "`wp-2` API: Merge conflicts: api.py" in text


class TestNotifier:
    @patch("swarm_code.integrations.slack.send_message")
    def test_only_selected_events(self, mock_send):
        notify = slack_mod.make_progress_notifier("xoxb-test", "#builds", "demo")
        notify(ProgressEvent(type="wp-start", message="WP wp-1: starting (attempt 1)"))
        notify(ProgressEvent(type="wave-start", message="Wave 1: 2 work packages", wave=1))
        notify(ProgressEvent(type="wave-done", message="Wave 1 complete", wave=1))
        notify(ProgressEvent(type="all-done", message="All waves complete"))
        assert [c.args[2] for c in mock_send.call_args_list] == ["Wave 1 complete", "All waves complete"]

    @patch("swarm_code.integrations.slack.send_message")
    def test_send_errors_are_swallowed(self, mock_send):
        mock_send.side_effect = slack_mod.SlackError("no token")
        notify = slack_mod.make_progress_notifier(None, "#builds", "demo")
        notify(ProgressEvent(type="all-done", message="All waves complete"))
        mock_send.assert_called_once()

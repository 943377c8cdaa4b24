"""
Unit tests for the taskbell CLI.

Commands read their configuration from the isolated environment set up
in conftest; network access is replaced by the mocked registry.
"""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from taskbell.cli.main import cli
from taskbell.config import ClientConfig
from taskbell.models import NotificationKind, PermissionState
from taskbell.platform import LocalPushPlatform
from taskbell.store import NotificationStore


@pytest.fixture
def cli_runner():
    """Create a Click CLI runner."""
    return CliRunner()


@pytest.fixture
def history(client_config, make_record):
    store = NotificationStore(client_config.history_path)
    store.append(make_record("t1", related_task_id=42))
    store.append(
        make_record(
            "f1",
            title="Follower Baru!",
            body="Siti Aminah mulai mengikuti Anda",
            kind=NotificationKind.USER_FOLLOWED,
            related_task_id=None,
            related_username="siti",
        )
    )
    return store


@pytest.fixture
def registry_patch(mock_registry):
    mock_registry.__aenter__.return_value = mock_registry
    mock_registry.__aexit__.return_value = False
    with patch("taskbell.cli.push.build_registry", return_value=mock_registry):
        yield mock_registry


class TestMain:
    def test_version(self, cli_runner):
        result = cli_runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "taskbell" in result.output

    def test_help_lists_commands(self, cli_runner):
        result = cli_runner.invoke(cli, ["--help"])

        for command in ("start", "notifications", "push", "config"):
            assert command in result.output


class TestConfigCommands:
    def test_show_masks_token(self, cli_runner, client_config):
        result = cli_runner.invoke(cli, ["config", "show"])

        assert result.exit_code == 0
        assert "http://tasks.test" in result.output
        assert "1|te...oken" in result.output
        assert "1|test-token" not in result.output

    def test_set_session(self, cli_runner, isolated_environment):
        result = cli_runner.invoke(cli, ["config", "set-session", "7", "2|abc"])

        assert result.exit_code == 0
        config = ClientConfig()
        assert config.user_id == 7
        assert config.api_token == "2|abc"

    def test_clear_session(self, cli_runner, client_config):
        result = cli_runner.invoke(cli, ["config", "clear-session"])

        assert result.exit_code == 0
        assert ClientConfig().is_authenticated is False

    def test_set_server(self, cli_runner, isolated_environment):
        result = cli_runner.invoke(cli, ["config", "set-server", "https://tasks.example.sch.id/"])

        assert result.exit_code == 0
        assert ClientConfig().server_url == "https://tasks.example.sch.id"

    def test_set_server_invalid(self, cli_runner, isolated_environment):
        result = cli_runner.invoke(cli, ["config", "set-server", "not-a-url"])

        assert result.exit_code == 1
        assert "Invalid URL" in result.output

    def test_set_realtime(self, cli_runner, isolated_environment):
        result = cli_runner.invoke(
            cli, ["config", "set-realtime", "--host", "ws.example.sch.id", "--port", "443",
                  "--scheme", "https"],
        )

        assert result.exit_code == 0
        assert "wss://ws.example.sch.id:443/app/local-key" in result.output

    def test_set_realtime_invalid_port(self, cli_runner, isolated_environment):
        result = cli_runner.invoke(cli, ["config", "set-realtime", "--port", "0"])

        assert result.exit_code == 1

    def test_set_and_disable_push_service(self, cli_runner, isolated_environment):
        result = cli_runner.invoke(
            cli, ["config", "set-push-service", "https://push.example.test/send"]
        )
        assert result.exit_code == 0
        assert ClientConfig().push_service_url == "https://push.example.test/send"

        result = cli_runner.invoke(cli, ["config", "set-push-service"])
        assert result.exit_code == 0
        assert ClientConfig().push_service_url == ""

    def test_set_language(self, cli_runner, client_config):
        result = cli_runner.invoke(cli, ["config", "set-language", "id"])

        assert result.exit_code == 0
        assert ClientConfig().language == "id"

        result = cli_runner.invoke(cli, ["config", "show"])
        assert "Language:      id" in result.output

    def test_set_language_rejects_unknown(self, cli_runner, client_config):
        result = cli_runner.invoke(cli, ["config", "set-language", "fr"])

        assert result.exit_code != 0
        assert ClientConfig().language == "en"


class TestNotificationsCommands:
    def test_list_empty(self, cli_runner, client_config):
        result = cli_runner.invoke(cli, ["notifications", "list"])

        assert result.exit_code == 0
        assert "No notifications." in result.output

    def test_list(self, cli_runner, history):
        result = cli_runner.invoke(cli, ["notifications", "list"])

        assert result.exit_code == 0
        assert "2 unread of 2 notifications" in result.output
        assert result.output.index("Follower Baru!") < result.output.index("Tugas Baru")

    def test_list_json(self, cli_runner, history):
        result = cli_runner.invoke(cli, ["notifications", "list", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["unread_count"] == 2
        assert [n["id"] for n in data["notifications"]] == ["f1", "t1"]
        assert data["notifications"][0]["route"] == "/profile/siti"
        assert data["notifications"][1]["route"] == "/dashboard/42"

    def test_list_unread_only(self, cli_runner, history):
        history.mark_read("f1")

        result = cli_runner.invoke(cli, ["notifications", "list", "--unread", "--json"])

        assert [n["id"] for n in json.loads(result.output)["notifications"]] == ["t1"]

    def test_read(self, cli_runner, history, client_config):
        result = cli_runner.invoke(cli, ["notifications", "read", "t1"])

        assert result.exit_code == 0
        assert "Marked as read." in result.output
        assert NotificationStore(client_config.history_path).load()[1].read is True

    def test_read_twice(self, cli_runner, history):
        cli_runner.invoke(cli, ["notifications", "read", "t1"])
        result = cli_runner.invoke(cli, ["notifications", "read", "t1"])

        assert result.exit_code == 0
        assert "already read" in result.output

    def test_read_unknown(self, cli_runner, history):
        result = cli_runner.invoke(cli, ["notifications", "read", "missing"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_read_all(self, cli_runner, history):
        result = cli_runner.invoke(cli, ["notifications", "read-all"])

        assert result.exit_code == 0
        assert "Marked 2 notification(s)" in result.output

    def test_open_prints_route(self, cli_runner, history, client_config):
        result = cli_runner.invoke(cli, ["notifications", "open", "f1"])

        assert result.exit_code == 0
        assert result.output.strip() == "/profile/siti"
        assert NotificationStore(client_config.history_path).load()[0].read is True

    def test_clear(self, cli_runner, history, client_config):
        result = cli_runner.invoke(cli, ["notifications", "clear", "--yes"])

        assert result.exit_code == 0
        assert not client_config.history_path.exists()

    def test_clear_aborted(self, cli_runner, history, client_config):
        result = cli_runner.invoke(cli, ["notifications", "clear"], input="n\n")

        assert "Aborted." in result.output
        assert client_config.history_path.exists()

    def test_delivered_push_shows_up(self, cli_runner, client_config):
        payload = json.dumps({"title": "Tugas Baru", "body": "Bab 4", "data": {"taskId": 9}})

        delivered = cli_runner.invoke(cli, ["push", "deliver", payload])
        assert delivered.exit_code == 0
        assert "Queued push message" in delivered.output

        result = cli_runner.invoke(cli, ["notifications", "list"])
        assert result.exit_code == 0
        assert "Bab 4" in result.output
        assert len(NotificationStore(client_config.history_path).load()) == 1


class TestPushCommands:
    def test_status_json(self, cli_runner, client_config, registry_patch):
        result = cli_runner.invoke(cli, ["push", "status", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["supported"] is True
        assert data["permission"] == "default"
        assert data["subscribed"] is False

    def test_status_unsupported(self, cli_runner, client_config, registry_patch, monkeypatch):
        monkeypatch.setenv("TASKBELL_PUSH_SERVICE_URL", "")

        result = cli_runner.invoke(cli, ["push", "status"])

        assert result.exit_code == 0
        assert "set-push-service" in result.output

    def test_subscribe(self, cli_runner, client_config, registry_patch):
        LocalPushPlatform(client_config.push_state_dir, client_config.push_service_url) \
            .set_permission(PermissionState.GRANTED)

        result = cli_runner.invoke(cli, ["push", "subscribe"])

        assert result.exit_code == 0, result.output
        assert "enabled" in result.output
        registry_patch.subscribe.assert_awaited_once()

    def test_subscribe_denied(self, cli_runner, client_config, registry_patch):
        LocalPushPlatform(client_config.push_state_dir, client_config.push_service_url) \
            .set_permission(PermissionState.DENIED)

        result = cli_runner.invoke(cli, ["push", "subscribe"])

        assert result.exit_code == 1
        assert "PermissionDenied" in result.output
        registry_patch.subscribe.assert_not_called()

    def test_subscribe_requires_session(self, cli_runner, client_config, registry_patch):
        client_config.clear_session()
        client_config.save()

        result = cli_runner.invoke(cli, ["push", "subscribe"])

        assert result.exit_code == 1
        assert "No user session" in result.output

    def test_unsubscribe_without_subscription(self, cli_runner, client_config, registry_patch):
        result = cli_runner.invoke(cli, ["push", "unsubscribe"])

        assert result.exit_code == 1
        assert "No active push subscription" in result.output

    def test_test_push(self, cli_runner, client_config, registry_patch):
        result = cli_runner.invoke(cli, ["push", "test"])

        assert result.exit_code == 0
        assert "Test notification sent." in result.output

    def test_count(self, cli_runner, client_config, registry_patch):
        registry_patch.get_subscriptions_count.return_value = 3

        result = cli_runner.invoke(cli, ["push", "count"])

        assert result.exit_code == 0
        assert "Active subscriptions: 3" in result.output

    def test_reset_permission(self, cli_runner, client_config):
        platform = LocalPushPlatform(client_config.push_state_dir, client_config.push_service_url)
        platform.set_permission(PermissionState.DENIED)

        result = cli_runner.invoke(cli, ["push", "reset-permission"])

        assert result.exit_code == 0
        assert platform.permission() == PermissionState.DEFAULT


class TestStartCommand:
    def test_requires_session(self, cli_runner, isolated_environment):
        result = cli_runner.invoke(cli, ["start"])

        assert result.exit_code == 1
        assert "No user session" in result.output

    def test_runs_client(self, cli_runner, client_config):
        with patch("taskbell.cli.start.run_client", return_value=0) as mock_run:
            result = cli_runner.invoke(cli, ["start"])

        assert result.exit_code == 0
        assert "Starting TaskBell client for user 42" in result.output
        mock_run.assert_called_once()

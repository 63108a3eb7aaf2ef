"""
Tests for the interactive shell.
"""

import asyncio
import json
import logging
from io import StringIO

import pytest

from cbshell.commands import COMMANDS
from cbshell.exceptions import CommandUsageError, FanOutFailedError
from cbshell.execution.cancellation import CancellationToken
from cbshell.execution.executor import FanOutExecutor
from cbshell.registry.cluster_registry import ClusterRegistry
from cbshell.shell import Shell
from cbshell.utils.logging import get_command_context

from conftest import make_record, routed_handler, transport_factory


@pytest.fixture
def shell(populated_registry):
    """Shell writing into string buffers; every cluster answers 404."""
    return Shell(
        populated_registry,
        executor=FanOutExecutor(populated_registry, cancel_grace_period=0.1),
        client_factory=transport_factory(routed_handler({})),
        stdout=StringIO(),
        stderr=StringIO()
    )


def printed_rows(shell):
    return json.loads(shell.stdout.getvalue())


@pytest.mark.unit
class TestSplitCommand:
    """Test command line splitting."""

    def test_longest_command_wins(self):
        definition, argv = Shell.split_command("clusters register dev dev.example.com --username a")

        assert definition is COMMANDS["clusters register"]
        assert argv == ["dev", "dev.example.com", "--username", "a"]

    def test_single_word_command(self):
        definition, argv = Shell.split_command("clusters --clusters 'prod-*'")

        assert definition is COMMANDS["clusters"]
        assert argv == ["--clusters", "prod-*"]

    def test_quoted_arguments(self):
        definition, argv = Shell.split_command('query "SELECT * FROM `travel-sample` LIMIT 1"')

        assert definition is COMMANDS["query"]
        assert argv == ["SELECT * FROM `travel-sample` LIMIT 1"]

    def test_unknown_command(self):
        with pytest.raises(CommandUsageError) as exc_info:
            Shell.split_command("frobnicate now")

        assert exc_info.value.details["command"] == "frobnicate"

    def test_empty_and_unbalanced_lines(self):
        with pytest.raises(CommandUsageError):
            Shell.split_command("   ")
        with pytest.raises(CommandUsageError):
            Shell.split_command('query "unterminated')


class TestShell:
    """Test Shell class."""

    @pytest.mark.asyncio
    async def test_run_line_prints_rows(self, shell):
        status = await shell.run_line("clusters --clusters prod-*")

        assert status == 0
        rows = printed_rows(shell)
        assert [row["identifier"] for row in rows] == ["prod-a", "prod-b"]
        assert rows[0]["active"] is True
        assert "password" not in rows[0]

    @pytest.mark.asyncio
    async def test_run_line_changes_active_cluster(self, shell, populated_registry):
        assert await shell.run_line("use cluster staging-1") == 0

        assert await populated_registry.active_cluster_id() == "staging-1"
        assert printed_rows(shell)[0]["cluster"] == "staging-1"

    @pytest.mark.asyncio
    async def test_errors_print_to_stderr(self, shell):
        status = await shell.run_line("use cluster nope")

        assert status == 1
        assert shell.stdout.getvalue() == ""
        assert shell.stderr.getvalue().startswith("error: ")
        assert "nope" in shell.stderr.getvalue()

    @pytest.mark.asyncio
    async def test_usage_errors_keep_shell_running(self, shell):
        assert await shell.run_line("doc get") == 1
        assert "doc get" in shell.stderr.getvalue()

        assert await shell.run_line("use") == 0

    @pytest.mark.asyncio
    async def test_non_utf8_input_file_is_an_error(self, shell, tmp_path):
        input_file = tmp_path / "docs.json"
        input_file.write_bytes(b"\xff\xfe")

        status = await shell.run_line(f"doc upsert --input {input_file} --bucket travel")

        assert status == 1
        assert shell.stderr.getvalue().startswith("error: ")
        assert "not UTF-8" in shell.stderr.getvalue()

    @pytest.mark.asyncio
    async def test_unexpected_error_keeps_shell_running(self, shell, monkeypatch, caplog):
        """Test that an error outside the shell's own hierarchy is reported, not raised."""
        async def broken(line, token=None):
            raise RuntimeError("boom")

        monkeypatch.setattr(shell, "execute", broken)
        with caplog.at_level(logging.ERROR):
            status = await shell.run_line("use")

        assert status == 1
        assert shell.stderr.getvalue() == "error: boom\n"
        assert "Command failed: boom" in caplog.text

        monkeypatch.undo()
        assert await shell.run_line("use") == 0

    @pytest.mark.asyncio
    async def test_partial_failure_prints_warnings(self, shell):
        shell.client_factory = transport_factory(routed_handler({
            "prod-a.example.com": {"/whoami": {"id": "Administrator", "domain": "admin", "roles": []}},
        }))

        status = await shell.run_line("whoami --clusters prod-a,prod-b")

        assert status == 0
        assert printed_rows(shell)[0]["cluster"] == "prod-a"
        assert shell.stderr.getvalue().startswith("warning: prod-b: operation_failed")

    @pytest.mark.asyncio
    async def test_blank_and_comment_lines(self, shell):
        assert await shell.run_line("") == 0
        assert await shell.run_line("   # a comment") == 0
        assert shell.stdout.getvalue() == ""

    @pytest.mark.asyncio
    async def test_help(self, shell):
        assert await shell.run_line("help") == 0

        output = shell.stdout.getvalue()
        assert "clusters register" in output
        assert COMMANDS["nodes"].usage in output

    @pytest.mark.asyncio
    async def test_execute_returns_output(self, shell):
        output = await shell.execute("use")

        assert output.rows[0]["cluster"] == "prod-a"
        assert output.warnings == []
        assert get_command_context() == {}

    @pytest.mark.asyncio
    async def test_execute_with_cancelled_token(self, shell):
        """Test that a cancelled command token cancels every target."""
        token = CancellationToken()
        token.cancel()

        with pytest.raises(FanOutFailedError) as exc_info:
            await shell.execute("whoami --clusters prod-*", token)

        assert list(exc_info.value.failures) == ["prod-a", "prod-b"]
        assert all(reason.startswith("cancelled") for reason in exc_info.value.failures.values())
        assert not shell.interrupt_token.is_cancelled

    @pytest.mark.asyncio
    async def test_interrupt_token_cancels_running_command(self, shell):
        """Test that firing the session token cancels the command in flight."""
        async def slow(request):
            await asyncio.sleep(10)

        shell.client_factory = transport_factory(slow)

        async def run():
            token = shell.interrupt_token.child()
            asyncio.get_running_loop().call_later(0.05, shell.interrupt_token.cancel)
            return await shell.execute("whoami", token)

        with pytest.raises(FanOutFailedError) as exc_info:
            await run()

        assert exc_info.value.failures["prod-a"].startswith("cancelled")

    @pytest.mark.asyncio
    async def test_prompt(self, shell):
        assert shell.prompt("prod-a") == "prod-a> "
        assert shell.prompt(None) == "(no cluster)> "


class TestRunScript:
    """Test non-interactive execution."""

    def test_stops_at_first_failure(self, mock_storage):
        loop = asyncio.new_event_loop()
        try:
            registry = ClusterRegistry(mock_storage)
            loop.run_until_complete(registry.initialize())
            loop.run_until_complete(registry.register_cluster(make_record("dev")))
            shell = Shell(registry, stdout=StringIO(), stderr=StringIO())

            status = shell.run_script(loop, ["use cluster dev", "use cluster missing", "use bucket travel"])

            assert status == 1
            selection = loop.run_until_complete(registry.active_selection())
            assert selection.cluster == "dev"
            assert selection.bucket is None
        finally:
            loop.close()

"""Unit tests for the moexfeed command line."""

from unittest.mock import AsyncMock

import pytest
from typer.testing import CliRunner

from moexfeed import cli
from moexfeed.ingestion.collector import CycleResult, CycleStatus
from moexfeed.ingestion.exceptions import FetchError

runner = CliRunner()


@pytest.fixture
def no_observability(mocker):
    return mocker.patch.object(cli, "_setup_observability")


class TestWatermarkCommands:
    def test_show_without_file(self, tmp_path):
        result = runner.invoke(cli.app, ["watermark", "show", "--path", str(tmp_path / "wm")])

        assert result.exit_code == 0
        assert "No watermark" in result.output

    def test_set_then_show(self, tmp_path):
        path = str(tmp_path / "wm")

        set_result = runner.invoke(cli.app, ["watermark", "set", "0009876543210", "--path", path])
        show_result = runner.invoke(cli.app, ["watermark", "show", "--path", path])

        assert set_result.exit_code == 0
        assert "9876543210" in show_result.output
        assert (tmp_path / "wm").read_text(encoding="utf-8") == "9876543210"

    def test_set_rejects_blank(self, tmp_path):
        result = runner.invoke(cli.app, ["watermark", "set", "  ", "--path", str(tmp_path / "wm")])

        assert result.exit_code != 0
        assert not (tmp_path / "wm").exists()

    def test_set_rejects_non_numeric(self, tmp_path):
        result = runner.invoke(cli.app, ["watermark", "set", "abc", "--path", str(tmp_path / "wm")])

        assert result.exit_code != 0
        assert not (tmp_path / "wm").exists()

    def test_set_failure_exits_nonzero(self, tmp_path):
        (tmp_path / "wm").mkdir()

        result = runner.invoke(cli.app, ["watermark", "set", "5", "--path", str(tmp_path / "wm")])

        assert result.exit_code == 1


class TestOnceCommand:
    def test_prints_cycle_outcome(self, mocker, no_observability):
        outcome = CycleResult(
            status=CycleStatus.PUBLISHED,
            published=3,
            watermark_before="100",
            watermark_after="103",
            checkpointed=True,
            duration_seconds=0.25,
        )
        mocker.patch.object(cli, "_run_once", AsyncMock(return_value=outcome))

        result = runner.invoke(cli.app, ["once"])

        assert result.exit_code == 0
        assert "published" in result.output
        assert "103" in result.output
        no_observability.assert_called_once_with(expose_metrics=False)

    def test_cycle_failure_exits_nonzero(self, mocker, no_observability):
        mocker.patch.object(
            cli, "_run_once", AsyncMock(side_effect=FetchError("ISS returned status 503", 503)),
        )

        result = runner.invoke(cli.app, ["once"])

        assert result.exit_code == 1
        assert "Cycle failed" in result.output

"""Tests for runner.py -- one scan cycle end to end with a fixed clock."""

from datetime import datetime
from unittest.mock import patch

import pytest
from conftest import FakeConnector, make_target

from artifact_relay.concurrency import RunContext
from artifact_relay.config import RelayConfig
from artifact_relay.events import EventBus
from artifact_relay.history import MemoryHistory
from artifact_relay.models import HistoryAction
from artifact_relay.runner import ScanRunner

NOW = datetime(2026, 2, 11, 12, 0)
FRESH = "2026_02_11_03_34(1.3.7.P18)"
STALE = "2026_02_09_10_00(1.3.7.P18)"


def _version_task(share, version="1.3.7.P18", **kwargs):
    task = {
        "name": f"{share.name} {version}",
        "remote_path": str(share),
        "rule": {"kind": "version", "version": version},
    }
    task.update(kwargs)
    return task


def _build(share, name, files=None):
    folder = share / name
    folder.mkdir(parents=True)
    for rel, data in (files or {"app.tar.gz": b"payload"}).items():
        (folder / rel).write_bytes(data)
    return folder


@pytest.fixture
def share(tmp_path):
    share = tmp_path / "share"
    _build(share, FRESH)
    _build(share, STALE)
    return share


@pytest.fixture
def history():
    return MemoryHistory()


def _runner(config, history, connector=None, context=None):
    return ScanRunner(
        config,
        context or RunContext(poll_interval=0.01),
        EventBus("test"),
        history,
        connector=connector or FakeConnector(),
        clock=lambda: NOW,
    )


def _config(tmp_path, **kwargs):
    return RelayConfig(_env_file=None, local_path=tmp_path / "local", **kwargs)


class TestScanCycle:
    def test_copies_newest_recent_build(self, tmp_path, share, history):
        config = _config(tmp_path, tasks=[_version_task(share)])
        result = _runner(config, history).run()

        assert result.scanned_paths == 1
        assert result.found_folders == [FRESH]
        assert result.copied_folders == [FRESH]
        assert result.errors == []
        assert result.cancelled is False
        assert (tmp_path / "local" / FRESH / "app.tar.gz").read_bytes() == b"payload"
        assert not (tmp_path / "local" / STALE).exists()
        assert result.finished_at == NOW

    def test_second_cycle_skips(self, tmp_path, share, history):
        config = _config(tmp_path, tasks=[_version_task(share)])
        _runner(config, history).run()
        result = _runner(config, history).run()
        assert result.copied_folders == []
        assert result.skipped_folders == [FRESH]

    def test_stale_only_copies_nothing(self, tmp_path, history):
        share = tmp_path / "share"
        _build(share, STALE)
        config = _config(tmp_path, tasks=[_version_task(share)])
        result = _runner(config, history).run()
        assert result.found_folders == []
        assert result.errors == []

    def test_unreadable_share_is_task_error(self, tmp_path, share, history):
        config = _config(
            tmp_path,
            tasks=[_version_task(tmp_path / "offline"), _version_task(share)],
        )
        result = _runner(config, history).run()
        assert len(result.errors) == 1
        assert "Failed to read" in result.errors[0]
        assert result.copied_folders == [FRESH]
        assert result.scanned_paths == 2

    def test_unexpected_error_isolated(self, tmp_path, share, history):
        config = _config(tmp_path, tasks=[_version_task(share)])
        runner = _runner(config, history)
        with patch.object(ScanRunner, "find_candidate", side_effect=RuntimeError("boom")):
            result = runner.run()
        assert result.errors == [f"[{share.name} 1.3.7.P18] Unexpected error: boom"]

    def test_disabled_task_skipped(self, tmp_path, share, history):
        config = _config(tmp_path, tasks=[_version_task(share, enabled=False)])
        result = _runner(config, history).run()
        assert result.scanned_paths == 0
        assert result.copied_folders == []

    def test_task_local_path_override(self, tmp_path, share, history):
        override = tmp_path / "override"
        config = _config(tmp_path, tasks=[_version_task(share, local_path=str(override))])
        _runner(config, history).run()
        assert (override / FRESH).is_dir()
        assert not (tmp_path / "local").exists()

    def test_legacy_fields(self, tmp_path, share, history):
        config = _config(tmp_path, remote_paths=[str(share)], target_versions=["1.3.7.P18", "9.9"])
        result = _runner(config, history).run()
        assert result.scanned_paths == 2
        assert result.copied_folders == [FRESH]

    def test_outside_time_window(self, tmp_path, share, history):
        config = _config(tmp_path, tasks=[_version_task(share)], time_ranges=["01:00-02:00"])
        result = _runner(config, history).run()
        assert result.window_skipped is True
        assert result.scanned_paths == 0
        assert not (tmp_path / "local").exists()

    def test_inside_time_window(self, tmp_path, share, history):
        config = _config(tmp_path, tasks=[_version_task(share)], time_ranges=["11:00-13:00"])
        result = _runner(config, history).run()
        assert result.window_skipped is False
        assert result.copied_folders == [FRESH]


class TestDateMatch:
    def _task(self, share):
        return {"name": "nightly", "remote_path": str(share), "rule": {"kind": "date"}}

    def test_copies_todays_folder(self, tmp_path, history):
        share = tmp_path / "share"
        _build(share, "260211")
        _build(share, "260210")
        config = _config(tmp_path, tasks=[self._task(share)])
        result = _runner(config, history).run()
        assert result.copied_folders == ["260211"]

    def test_missing_today_is_not_an_error(self, tmp_path, history):
        share = tmp_path / "share"
        _build(share, "260210")
        config = _config(tmp_path, tasks=[self._task(share)])
        result = _runner(config, history).run()
        assert result.found_folders == []
        assert result.errors == []


class TestDeployHandoff:
    def test_completed_copy_deployed(self, tmp_path, share, history):
        connector = FakeConnector()
        config = _config(
            tmp_path,
            tasks=[_version_task(share)],
            deploy_enabled=True,
            servers=[make_target("1").model_dump()],
            post_commands=["install ${filename}"],
        )
        result = _runner(config, history, connector).run()

        (report,) = result.deployments
        assert report.artifact_name == FRESH
        assert report.succeeded == 1
        assert connector.sessions["1"].commands == ["install app"]
        assert history.entries()[0].action_type == HistoryAction.DEPLOY

    def test_deploy_failure_keeps_copy(self, tmp_path, share, history):
        config = _config(
            tmp_path,
            tasks=[_version_task(share)],
            deploy_enabled=True,
            servers=[make_target("1").model_dump()],
        )
        result = _runner(config, history, FakeConnector(fail={"1"})).run()
        assert result.copied_folders == [FRESH]
        assert result.errors == []
        assert result.deployments[0].failed == 1

    def test_skipped_copy_not_deployed(self, tmp_path, share, history):
        (tmp_path / "local" / FRESH).mkdir(parents=True)
        connector = FakeConnector()
        config = _config(
            tmp_path,
            tasks=[_version_task(share)],
            deploy_enabled=True,
            servers=[make_target("1").model_dump()],
        )
        result = _runner(config, history, connector).run()
        assert result.deployments == []
        assert connector.calls == []

    def test_only_enabled_servers_handed_to_fanout(self, tmp_path, share, history):
        connector = FakeConnector()
        config = _config(
            tmp_path,
            tasks=[_version_task(share)],
            deploy_enabled=True,
            servers=[
                make_target("1", enabled=False).model_dump(),
                make_target("2").model_dump(),
            ],
        )
        runner = _runner(config, history, connector)
        with patch.object(runner.fanout, "deploy", wraps=runner.fanout.deploy) as deploy:
            result = runner.run()

        targets = deploy.call_args.args[2]
        assert [t.id for t in targets] == ["2"]
        assert connector.calls == ["2"]
        assert [o.target_id for o in result.deployments[0].outcomes] == ["2"]


class TestCancellation:
    def test_cancelled_before_first_task(self, tmp_path, share, history):
        context = RunContext(poll_interval=0.01)
        context.cancel()
        config = _config(tmp_path, tasks=[_version_task(share)])
        result = _runner(config, history, context=context).run()
        assert result.cancelled is True
        assert result.errors == []
        assert result.scanned_paths == 0
        assert history.entries()[0].action_type == HistoryAction.CANCEL

    def test_cancel_during_copy_stops_cycle(self, tmp_path, history):
        share_a = tmp_path / "a"
        share_b = tmp_path / "b"
        _build(share_a, FRESH, {f"f{i}.bin": b"x" for i in range(3)})
        _build(share_b, FRESH)
        context = RunContext(poll_interval=0.01)
        config = _config(
            tmp_path,
            tasks=[
                _version_task(share_a, local_path=str(tmp_path / "la")),
                _version_task(share_b, local_path=str(tmp_path / "lb")),
            ],
        )
        runner = _runner(config, history, context=context)
        original = runner.engine._copy_file

        def copy_then_cancel(*args):
            original(*args)
            context.cancel()

        runner.engine._copy_file = copy_then_cancel
        result = runner.run()

        assert result.cancelled is True
        assert result.copied_folders == []
        assert result.scanned_paths == 1
        assert not (tmp_path / "lb").exists()

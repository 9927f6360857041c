import pytest

from leakprobe import cli
from leakprobe.base.config import get_config, set_config
from leakprobe.engine.pipeline import LeakProbePipeline, ProbeResult
from leakprobe.reporting.types import Report


@pytest.fixture
def fake_run(monkeypatch, probe_config):
    set_config(probe_config)
    monkeypatch.setattr(cli, "setup_logging", lambda config: None)
    seen = {}

    def install(result):
        async def run(self):
            seen["config"] = self.config
            return result

        monkeypatch.setattr(LeakProbePipeline, "run", run)
        return seen

    return install


def _result(delivered=True, supported=True):
    report = Report("t", "ua", "8.8.8.8", (), (), (), {}) if supported else None
    return ProbeResult(run_id="r1", content="REPORT TEXT", delivered=delivered, report=report)


def test_probe_exit_ok_and_print(fake_run, capsys):
    fake_run(_result())
    assert cli.main(["probe", "--print"]) == cli.EXIT_OK
    assert "REPORT TEXT" in capsys.readouterr().out


def test_probe_undelivered(fake_run):
    fake_run(_result(delivered=False))
    assert cli.main(["probe"]) == cli.EXIT_UNDELIVERED


def test_probe_unsupported(fake_run):
    fake_run(_result(supported=False))
    assert cli.main(["probe"]) == cli.EXIT_UNSUPPORTED


def test_overrides_reach_the_pipeline(fake_run):
    seen = fake_run(_result())
    cli.main(["probe", "--window", "0.5", "--ice-server", "stun:a.test", "--ice-server", "stun:b.test",
              "--sink", "https://other.test/log"])

    config = seen["config"]
    assert config.collector.window_seconds == 0.5
    assert config.collector.ice_servers == ("stun:a.test", "stun:b.test")
    assert config.sink.url == "https://other.test/log"
    assert get_config() is config


def test_non_positive_window_is_rejected(fake_run):
    fake_run(_result())
    with pytest.raises(SystemExit):
        cli.main(["probe", "--window", "0"])

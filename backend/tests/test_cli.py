import json

import pytest

import run_picks
from scanner.errors import UniverseUnavailableError


class StubSnapshot:
    def __init__(self, symbol, span):
        self.symbol = symbol
        self.span = span

    def to_dict(self):
        return {"symbol": self.symbol, "span": self.span}


class StubPipeline:
    """Stands in for ScannerPipeline; records what the CLI asks for."""

    instances = []

    def __init__(self, config):
        self.config = config
        self.charts = []
        StubPipeline.instances.append(self)

    def chart(self, symbol, span):
        self.charts.append((symbol, span))
        return StubSnapshot(symbol, span)

    def top_picks(self, serve_stale=False):
        raise UniverseUnavailableError("No constituents could be fetched from any index")


@pytest.fixture
def stub_pipeline(monkeypatch):
    StubPipeline.instances = []
    monkeypatch.setattr(run_picks, "ScannerPipeline", StubPipeline)
    return StubPipeline


@pytest.mark.parametrize("raw, expected", [
    ("brk.b", "BRK-B"), ("nvda", "NVDA"), (" bf.b ", "BF-B"),
])
def test_chart_symbol_is_normalized(stub_pipeline, capsys, raw, expected):
    assert run_picks.main(["--json", "chart", raw, "--span", "month"]) == 0
    assert stub_pipeline.instances[0].charts == [(expected, "month")]
    assert json.loads(capsys.readouterr().out) == {"symbol": expected, "span": "month"}


def test_invalid_config_exits_with_message(stub_pipeline, tmp_path, capsys):
    path = tmp_path / "scanner.yaml"
    path.write_text("indices:\n  custom:\n    name: Custom\n    format: xml\n")

    assert run_picks.main(["--config", str(path), "chart", "AAPL"]) == 1
    assert "✗" in capsys.readouterr().err
    assert stub_pipeline.instances == []


def test_missing_config_exits_with_message(stub_pipeline, tmp_path, capsys):
    assert run_picks.main(["--config", str(tmp_path / "nope.yaml"), "top"]) == 1
    assert "✗" in capsys.readouterr().err


def test_scanner_error_exits_with_message(stub_pipeline, capsys):
    assert run_picks.main(["top", "--top", "5"]) == 1
    assert stub_pipeline.instances[0].config.top_picks_count == 5
    assert "No constituents" in capsys.readouterr().err

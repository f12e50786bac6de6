"""
End-to-end tests of the command line against the built-in sample source.
"""
import json

import pytest

from marketdash.cli import main


@pytest.fixture
def sample_config(tmp_path, write_config):
    write_config(source={"kind": "sample"})
    return str(tmp_path / "config" / "marketdash.yaml")


def _run(argv):
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    return excinfo.value.code


class TestCli:
    def test_lookup_prints_stats(self, sample_config, capsys):
        assert _run(["--config", sample_config, "lookup", "Austin, TX", "--range", "1M"]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["city"] == "Austin"
        assert len(payload["points"]) == 2

    def test_lookup_not_found(self, sample_config):
        assert _run(["--config", sample_config, "lookup", "Nowhere, ZZ"]) == 1

    def test_search(self, sample_config, capsys):
        assert _run(["--config", sample_config, "search", "detroit"]) == 0
        assert "Detroit, MI" in capsys.readouterr().out

    def test_use_source_and_sources(self, sample_config, capsys):
        assert _run(["--config", sample_config, "use-source", "sample"]) == 0
        assert _run(["--config", sample_config, "sources"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert any(line.startswith("* sample") for line in lines)
        assert _run(["--config", sample_config, "use-source", "default"]) == 0

    def test_unknown_source_rejected(self, sample_config):
        assert _run(["--config", sample_config, "use-source", "ftp"]) == 2

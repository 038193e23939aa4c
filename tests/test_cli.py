"""Tests for the CLI module."""

import json
from io import StringIO

import pytest

from plugin_pipeline.cli import coerce_option, main, parse_settings, setup_logging
from plugin_pipeline.config import PipelineConfig
from plugin_pipeline.pipeline import PluginPipeline
from plugin_pipeline.plugins import OptionField, OptionType


@pytest.fixture
def cli(tmp_path, monkeypatch):
    """Run the CLI against a private config and state file."""
    for name in ["HISTORY_LIMIT", "PLUGIN_TIMEOUT", "STORAGE", "STATE_PATH", "LOG_LEVEL"]:
        monkeypatch.delenv(f"PLUGIN_PIPELINE_{name}", raising=False)
    monkeypatch.chdir(tmp_path)

    config_path = tmp_path / "pipeline.yml"
    config_path.write_text("storage:\n  backend: json\n")
    state_path = tmp_path / "state.json"

    def run(*args):
        main(["--config", str(config_path), "--state", str(state_path), *args])

    run.state_path = state_path
    run.state = lambda: json.loads(state_path.read_text())
    return run


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_logging_default(self):
        """Test default logging setup."""
        setup_logging(verbose=False)

    def test_setup_logging_verbose(self):
        """Test verbose logging setup."""
        setup_logging(verbose=True)


class TestCoerceOption:
    """Tests for option value parsing."""

    def test_text(self):
        """Test text values pass through."""
        field = OptionField("find", "Find")
        assert coerce_option(field, "42") == "42"
        assert coerce_option(None, "raw") == "raw"

    def test_boolean(self):
        """Test boolean spellings."""
        field = OptionField("flag", "Flag", OptionType.BOOLEAN)

        assert coerce_option(field, "yes") is True
        assert coerce_option(field, "Off") is False
        with pytest.raises(ValueError):
            coerce_option(field, "maybe")

    def test_number(self):
        """Test integers and floats."""
        field = OptionField("n", "N", OptionType.NUMBER)

        assert coerce_option(field, "3") == 3
        assert coerce_option(field, "2.5") == 2.5
        with pytest.raises(ValueError):
            coerce_option(field, "three")

    def test_select(self):
        """Test select values must be one of the choices."""
        field = OptionField("pos", "Pos", OptionType.SELECT, choices=["prefix", "suffix"])

        assert coerce_option(field, "prefix") == "prefix"
        with pytest.raises(ValueError):
            coerce_option(field, "middle")

    def test_parse_settings(self):
        """Test key=value parsing against a plugin schema."""
        pipeline = PluginPipeline.from_config(PipelineConfig())

        parsed = parse_settings(pipeline, "find_replace", ["find=a=b", "use_regex=true"])

        assert parsed == {"find": "a=b", "use_regex": True}
        with pytest.raises(ValueError):
            parse_settings(pipeline, "find_replace", ["novalue"])


class TestCommands:
    """Tests for the CLI commands."""

    def test_no_command(self, capsys):
        """Test running without a command prints help and exits."""
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 1

    def test_plugins(self, cli, capsys):
        """Test listing plugins."""
        cli("plugins")

        output = capsys.readouterr().out
        assert "upper_case" in output
        assert "find_replace" in output
        assert "use_regex (boolean)" in output

    def test_enable_persists(self, cli, capsys):
        """Test activation survives to the next invocation."""
        cli("enable", "upper_case", "trim_whitespace")

        assert cli.state()["plugins"]["upper_case"] == {"active": True}
        assert "trim_whitespace, upper_case" in capsys.readouterr().out

    def test_enable_unknown_warns(self, cli, capsys):
        """Test enabling an unknown id warns but still stores it."""
        cli("enable", "ghost")

        assert "not a registered plugin" in capsys.readouterr().err

    def test_disable(self, cli):
        """Test deactivation."""
        cli("enable", "upper_case")
        cli("disable", "upper_case")

        assert cli.state()["plugins"]["upper_case"] == {"active": False}

    def test_run_active(self, cli, capsys):
        """Test running the active plugins in registration order."""
        cli("enable", "upper_case", "trim_whitespace")
        capsys.readouterr()

        cli("run", "  hello    world  ")

        assert capsys.readouterr().out == "HELLO WORLD\n"
        history = cli.state()["history"]
        assert [entry["pluginId"] for entry in history] == ["trim_whitespace", "upper_case"]

    def test_run_reads_stdin(self, cli, capsys, monkeypatch):
        """Test the message is read from stdin when omitted."""
        cli("enable", "upper_case")
        capsys.readouterr()
        monkeypatch.setattr("sys.stdin", StringIO("from stdin"))

        cli("run")

        assert capsys.readouterr().out == "FROM STDIN\n"

    def test_run_specific_with_options(self, cli, capsys):
        """Test explicit plugins with per-run options."""
        cli(
            "run", "grey cat",
            "--plugins", "find_replace", "upper_case",
            "--option", "find_replace.find=grey",
            "--option", "find_replace.replace=black",
        )

        assert capsys.readouterr().out == "BLACK CAT\n"
        assert cli.state()["pluginOptions"]["find_replace"] == {}

    def test_run_option_requires_plugins(self, cli):
        """Test per-run options without an explicit list are rejected."""
        with pytest.raises(SystemExit) as exc_info:
            cli("run", "x", "--option", "find_replace.find=x")

        assert exc_info.value.code == 1

    def test_configure_merges(self, cli, capsys):
        """Test configure merges into stored options and coerces types."""
        cli("configure", "find_replace", "find=colour")
        cli("configure", "find_replace", "replace=color", "ignore_case=true")

        options = cli.state()["pluginOptions"]["find_replace"]
        assert options["find"] == "colour"
        assert options["replace"] == "color"
        assert options["ignore_case"] is True

    def test_configure_replace(self, cli):
        """Test --replace discards earlier settings."""
        cli("configure", "find_replace", "find=colour")
        cli("configure", "find_replace", "replace=x", "--replace")

        assert cli.state()["pluginOptions"]["find_replace"] == {"replace": "x"}

    def test_configure_unknown_plugin(self, cli, capsys):
        """Test configuring an unknown plugin fails."""
        with pytest.raises(SystemExit) as exc_info:
            cli("configure", "ghost", "a=b")

        assert exc_info.value.code == 1
        assert "Unknown plugin" in capsys.readouterr().err

    def test_configure_bad_value(self, cli, capsys):
        """Test a value that does not fit the schema fails."""
        with pytest.raises(SystemExit):
            cli("configure", "text_analyzer", "include_word_count=perhaps")

        assert "not a boolean" in capsys.readouterr().err

    def test_queue_success(self, cli, capsys):
        """Test a clean queue run prints every result."""
        cli("queue", "  hi  ", "--plugins", "trim_whitespace", "upper_case")

        results = json.loads(capsys.readouterr().out)
        assert [r["pluginId"] for r in results] == ["trim_whitespace", "upper_case"]
        assert results[-1]["output"] == "HI"

    def test_queue_stops_on_failure(self, cli, capsys):
        """Test a failing step ends the chain and the exit status is 1."""
        cli("configure", "find_replace", "find=(", "use_regex=true")
        capsys.readouterr()

        with pytest.raises(SystemExit) as exc_info:
            cli("queue", "x", "--plugins", "find_replace", "upper_case")

        assert exc_info.value.code == 1
        captured = capsys.readouterr()
        results = json.loads(captured.out)
        assert len(results) == 1
        assert results[0]["success"] is False
        assert "Queue stopped at 'find_replace'" in captured.err
        assert cli.state()["history"][-1]["pluginId"] == "find_replace"

    def test_history(self, cli, capsys):
        """Test history output in both formats."""
        cli("run", "abc", "--plugins", "upper_case")
        capsys.readouterr()

        cli("history", "--json")
        entries = json.loads(capsys.readouterr().out)
        assert entries[0]["output"] == "ABC"

        cli("history")
        assert "upper_case" in capsys.readouterr().out

    def test_history_clear(self, cli, capsys):
        """Test clearing history."""
        cli("run", "abc", "--plugins", "upper_case")
        cli("history", "--clear")

        assert cli.state()["history"] == []

    def test_reset(self, cli):
        """Test reset deactivates everything and restores defaults."""
        cli("enable", "upper_case")
        cli("configure", "find_replace", "find=x")

        cli("reset")

        state = cli.state()
        assert state["plugins"]["upper_case"] == {"active": False}
        assert state["pluginOptions"]["find_replace"]["find"] == ""

    def test_config_activation_applies_on_first_start(self, tmp_path, monkeypatch, capsys):
        """Test plugins listed in the config file start active."""
        monkeypatch.chdir(tmp_path)
        config_path = tmp_path / "pipeline.yml"
        config_path.write_text("plugins:\n  - id: upper_case\n    active: true\n")

        main(["--config", str(config_path), "--state", str(tmp_path / "s.json"), "run", "hi"])

        assert capsys.readouterr().out == "HI\n"

    def test_missing_config(self, tmp_path, capsys):
        """Test a missing config file exits with an error."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(tmp_path / "missing.yml"), "plugins"])

        assert exc_info.value.code == 1
        assert "Config file not found" in capsys.readouterr().err

    def test_corrupt_state(self, cli, capsys):
        """Test unreadable state exits with an error."""
        cli.state_path.write_text("{broken")

        with pytest.raises(SystemExit) as exc_info:
            cli("plugins")

        assert exc_info.value.code == 1
        assert "Error loading state" in capsys.readouterr().err

    def test_malformed_history_entry(self, cli, capsys):
        """Test a non-mapping history entry exits with an error."""
        cli.state_path.write_text(json.dumps({"plugins": {}, "history": ["junk"]}))

        with pytest.raises(SystemExit) as exc_info:
            cli("plugins")

        assert exc_info.value.code == 1
        assert "Error loading state" in capsys.readouterr().err


    def test_init(self, tmp_path, capsys):
        """Test creating a default config file."""
        path = tmp_path / ".plugin-pipeline.yml"

        main(["init", str(path)])

        assert path.exists()
        assert "Created" in capsys.readouterr().out

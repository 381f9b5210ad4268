"""Tests for config loading and run option resolution."""

import json
from pathlib import Path

import pytest

from cytopipe.config import ConfigError, build_pipeline, build_run_options, load_config
from cytopipe.config.schema import build_pipeline_run_config

PIPELINE_TOML = """
[pipeline]
experiment = "exp"
samples = ["data/s1.csv", { name = "s2", path = "/abs/s2.csv", metadata = { donor = "d7" } }]

[run]
parallel = true
workers = 3
queues = "pre, counts"

[[queues.pre]]
name = "read"
function = "read_sample_csv"
arguments = { path = { "$sample" = "path" } }

[[queues.counts]]
name = "read"
function = "read_sample_csv"
arguments = { path = { "$sample" = "path" } }
"""


class TestLoadConfig:
    """Test file format handling."""

    def test_toml(self, tmp_path):
        """Test TOML configs load into plain mappings."""
        path = tmp_path / "pipeline.toml"
        path.write_text(PIPELINE_TOML, encoding="utf-8")
        payload = load_config(path)
        assert payload["pipeline"]["experiment"] == "exp"
        assert len(payload["queues"]["pre"]) == 1

    def test_yaml(self, tmp_path):
        """Test YAML configs are supported."""
        path = tmp_path / "pipeline.yaml"
        path.write_text("pipeline:\n  experiment: exp\n  samples: [a.csv]\n", encoding="utf-8")
        assert load_config(path)["pipeline"]["samples"] == ["a.csv"]

    def test_json(self, tmp_path):
        """Test JSON configs are supported."""
        path = tmp_path / "pipeline.json"
        path.write_text(json.dumps({"pipeline": {"experiment": "exp"}}), encoding="utf-8")
        assert load_config(path) == {"pipeline": {"experiment": "exp"}}

    def test_missing_file(self, tmp_path):
        """Test a missing file is reported as ConfigError."""
        with pytest.raises(ConfigError, match="does not exist"):
            load_config(tmp_path / "absent.toml")

    def test_unsupported_extension(self, tmp_path):
        """Test unknown suffixes are rejected."""
        path = tmp_path / "pipeline.ini"
        path.write_text("[pipeline]\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="unsupported"):
            load_config(path)

    def test_parse_error(self, tmp_path):
        """Test malformed files raise ConfigError."""
        path = tmp_path / "pipeline.toml"
        path.write_text("[pipeline\nexperiment = ", encoding="utf-8")
        with pytest.raises(ConfigError, match="could not be parsed"):
            load_config(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        """Test a YAML list at the top level is rejected."""
        path = tmp_path / "pipeline.yml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)


class TestBuildPipeline:
    """Test pipeline construction from config payloads."""

    def test_relative_samples_resolved(self, tmp_path):
        """Test relative sample paths are resolved against the config directory."""
        path = tmp_path / "pipeline.toml"
        path.write_text(PIPELINE_TOML, encoding="utf-8")
        run_cfg = build_pipeline_run_config(payload=load_config(path), config_path=path)
        s1, s2 = run_cfg.pipeline.samples
        assert s1.name == "s1"
        assert Path(s1.path) == tmp_path.resolve() / "data" / "s1.csv"
        assert s2.path == "/abs/s2.csv"
        assert s2.metadata == {"donor": "d7"}
        assert run_cfg.pipeline.list_queues() == ["pre", "counts"]

    def test_queue_list_form(self):
        """Test queues may be given as a list of named entries."""
        payload = {
            "pipeline": {"experiment": "exp"},
            "queues": [{"name": "q", "steps": [{"name": "a", "function": "count_events"}]}],
        }
        assert build_pipeline(payload).list_steps("q") == ["a"]

    def test_missing_experiment(self):
        """Test the experiment name is required."""
        with pytest.raises(ConfigError, match="experiment"):
            build_pipeline({"pipeline": {"samples": []}})

    def test_duplicate_step_is_config_error(self):
        """Test structural errors surface as ConfigError."""
        payload = {
            "pipeline": {"experiment": "exp"},
            "queues": {"q": [{"name": "a", "function": "f"}, {"name": "a", "function": "g"}]},
        }
        with pytest.raises(ConfigError, match="already contains"):
            build_pipeline(payload)


class TestRunOptions:
    """Test run options and CLI-style overrides."""

    def test_defaults(self):
        """Test defaults when no run table is present."""
        options = build_run_options({})
        assert options.cache_dir == ".cytopipe_cache"
        assert options.parallel is False
        assert options.queues is None
        assert options.backend == "thread"

    def test_values_from_config(self):
        """Test comma-separated names and typed values."""
        options = build_run_options({"run": {"parallel": "yes", "workers": 3, "queues": "pre, counts"}})
        assert options.parallel is True
        assert options.workers == 3
        assert options.queues == ("pre", "counts")

    def test_overrides(self):
        """Test non-None overrides replace config values."""
        options = build_run_options(
            {"run": {"parallel": True, "workers": 3}},
            {"parallel": False, "workers": None, "samples": "s1,s2", "cache_dir": "/tmp/c"},
        )
        assert options.parallel is False
        assert options.workers == 3
        assert options.samples == ("s1", "s2")
        assert options.cache_dir == "/tmp/c"

    def test_unknown_override(self):
        """Test unknown override keys are rejected."""
        with pytest.raises(ConfigError, match="unknown run option"):
            build_run_options({}, {"threads": 2})

    def test_invalid_workers(self):
        """Test worker counts must be positive integers."""
        with pytest.raises(ConfigError):
            build_run_options({"run": {"workers": 0}})
        with pytest.raises(ConfigError):
            build_run_options({"run": {"workers": "many"}})

    def test_invalid_bool(self):
        """Test non-boolean flags are rejected."""
        with pytest.raises(ConfigError):
            build_run_options({"run": {"parallel": "sometimes"}})

"""Tests for read-only cache queries."""

import pytest

from cytopipe.errors import PipelineConfigError
from cytopipe.pipeline import (
    PipelineExecutor,
    cache_table,
    collect_artifacts,
    get_artifact,
    restore_pipeline,
)


@pytest.fixture
def executed(registry, memory_cache, make_pipeline):
    pipeline = make_pipeline(samples=("s1", "s2", "s3"), load_args={"fail_samples": ["s3"]})
    PipelineExecutor(memory_cache, registry=registry).execute(pipeline, samples=["s1", "s3"])
    return pipeline


class TestInspection:
    """Test artifact lookup and cache tables."""

    def test_get_artifact_errors(self, memory_cache, executed):
        """Test absent and failed entries raise LookupError."""
        with pytest.raises(LookupError, match="no cached result"):
            get_artifact(memory_cache, "exp", "main", "A", "s2")
        with pytest.raises(LookupError, match="is a failure"):
            get_artifact(memory_cache, "exp", "main", "A", "s3")

    def test_collect_artifacts(self, memory_cache, executed):
        """Test one step is collected across samples with successes only."""
        collected = collect_artifacts(memory_cache, executed, "main", "B")
        assert list(collected) == ["s1"]
        assert collected["s1"]["values"] == [2.0, 4.0, 6.0]

    def test_collect_unknown_step(self, memory_cache, executed):
        """Test collecting an undeclared step is a configuration error."""
        with pytest.raises(PipelineConfigError):
            collect_artifacts(memory_cache, executed, "main", "Z")

    def test_cache_table(self, memory_cache, executed):
        """Test every declared key gets a row, with missing ones marked."""
        rows = cache_table(memory_cache, executed)
        assert len(rows) == 6
        by_key = {(row["step"], row["sample"]): row for row in rows}
        assert by_key[("A", "s1")]["status"] == "success"
        assert by_key[("A", "s2")]["status"] == "missing"
        assert by_key[("A", "s3")]["status"] == "failed"
        assert by_key[("A", "s3")]["error_kind"] == "invocation_failure"
        assert by_key[("B", "s3")]["status"] == "missing"

    def test_cache_table_filtered(self, memory_cache, executed):
        """Test restricting the table to one step."""
        rows = cache_table(memory_cache, executed, queue="main", step="B")
        assert {row["step"] for row in rows} == {"B"}

    def test_restore_pipeline(self, memory_cache, executed):
        """Test the stored description rebuilds an equivalent pipeline."""
        restored = restore_pipeline(memory_cache, "exp")
        assert restored.describe() == executed.describe()
        with pytest.raises(LookupError):
            restore_pipeline(memory_cache, "unknown")

    def test_outdated_success_is_stale(self, registry, memory_cache, make_pipeline):
        """Test a success left behind by a failed upstream rerun is stale, not current."""
        executor = PipelineExecutor(memory_cache, registry=registry)
        executor.execute(make_pipeline())
        rerun = make_pipeline(load_args={"fail_samples": ["s1"]})
        executor.execute(rerun)

        by_key = {(row["step"], row["sample"]): row["status"] for row in cache_table(memory_cache, rerun)}
        assert by_key[("A", "s1")] == "failed"
        assert by_key[("B", "s1")] == "stale"
        assert by_key[("B", "s2")] == "success"
        assert list(collect_artifacts(memory_cache, rerun, "main", "B")) == ["s2"]

    def test_edited_definition_marks_stale(self, registry, memory_cache, make_pipeline):
        """Test entries under an edited step and its successors are stale before rerunning."""
        PipelineExecutor(memory_cache, registry=registry).execute(make_pipeline(factor=2.0))
        edited = make_pipeline(factor=5.0)
        statuses = {row["status"] for row in cache_table(memory_cache, edited, step="B")}
        assert statuses == {"stale"}
        assert {row["status"] for row in cache_table(memory_cache, edited, step="A")} == {"success"}
        assert collect_artifacts(memory_cache, edited, "main", "B") == {}

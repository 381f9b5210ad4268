"""Tests for the builtin event-table steps."""

import numpy as np
import pytest

from cytopipe.steps import EventTable
from cytopipe.steps.builtin import (
    arcsinh_transform,
    count_events,
    filter_range,
    read_sample_csv,
    remove_margins,
    select_channels,
    summarize_channels,
)


@pytest.fixture
def table():
    values = np.array(
        [
            [0.0, 10.0, 150.0],
            [5.0, 20.0, 300.0],
            [7.0, 30.0, 450.0],
            [9.0, 40.0, 600.0],
        ]
    )
    return EventTable(channels=("FSC-A", "SSC-A", "CD3"), values=values)


class TestEventTable:
    """Test the event table container."""

    def test_shape_checked(self):
        """Test the column count must match the channels."""
        with pytest.raises(ValueError):
            EventTable(channels=("a",), values=np.zeros((3, 2)))

    def test_unknown_channel(self, table):
        """Test unknown channels raise KeyError."""
        with pytest.raises(KeyError, match="unknown channel"):
            table.column("CD8")


class TestSteps:
    """Test the channel-wise operations."""

    def test_read_sample_csv(self, tmp_path):
        """Test a CSV with a header row becomes an event table."""
        path = tmp_path / "s1.csv"
        path.write_text("FSC-A,SSC-A\n1,2\n3,4\n5,6\n", encoding="utf-8")
        result = read_sample_csv(str(path))
        assert result.channels == ("FSC-A", "SSC-A")
        assert result.n_events == 3
        np.testing.assert_array_equal(result.column("SSC-A"), [2.0, 4.0, 6.0])

    def test_read_single_row(self, tmp_path):
        """Test a single event still yields a 2D table."""
        path = tmp_path / "s1.csv"
        path.write_text("FSC-A,SSC-A\n1,2\n", encoding="utf-8")
        assert read_sample_csv(str(path), channels=["SSC-A"]).values.shape == (1, 1)

    def test_read_missing_file(self, tmp_path):
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            read_sample_csv(str(tmp_path / "absent.csv"))

    def test_select_channels(self, table):
        """Test selection keeps the requested order."""
        result = select_channels(table, ["CD3", "FSC-A"])
        assert result.channels == ("CD3", "FSC-A")
        np.testing.assert_array_equal(result.values[:, 0], table.column("CD3"))

    def test_arcsinh_per_channel(self, table):
        """Test a cofactor mapping transforms only the listed channels."""
        result = arcsinh_transform(table, cofactor={"CD3": 150.0})
        np.testing.assert_allclose(result.column("CD3"), np.arcsinh(table.column("CD3") / 150.0))
        np.testing.assert_array_equal(result.column("FSC-A"), table.column("FSC-A"))

    def test_arcsinh_rejects_non_positive(self, table):
        """Test a zero cofactor is an error."""
        with pytest.raises(ValueError, match="positive"):
            arcsinh_transform(table, cofactor=0.0)

    def test_remove_margins_observed(self, table):
        """Test events on the observed min or max are dropped."""
        result = remove_margins(table, channels=["FSC-A"])
        np.testing.assert_array_equal(result.column("FSC-A"), [5.0, 7.0])

    def test_remove_margins_explicit_limits(self, table):
        """Test explicit limits override the observed range."""
        result = remove_margins(table, channels=["SSC-A"], limits={"SSC-A": [0.0, 35.0]})
        assert result.n_events == 3

    def test_filter_range(self, table):
        """Test inclusive range filtering on one channel."""
        assert count_events(filter_range(table, "CD3", minimum=300.0, maximum=450.0)) == 2

    def test_summarize(self, table):
        """Test per-channel summary statistics."""
        summary = summarize_channels(table, ["SSC-A"])
        assert summary == {"SSC-A": {"count": 4, "mean": 25.0, "median": 25.0, "min": 10.0, "max": 40.0}}

    def test_summarize_empty(self, table):
        """Test empty tables summarise without statistics."""
        empty = table.with_values(np.empty((0, 3)))
        assert summarize_channels(empty, "CD3")["CD3"]["mean"] is None

    def test_wrong_input_type(self):
        """Test steps reject inputs that are not event tables."""
        with pytest.raises(TypeError):
            count_events([1, 2, 3])

"""Tests for io helpers and logging setup."""

import io
import logging

import numpy as np
import pytest

from cytopipe.core import (
    atomic_write_bytes,
    canonical_json,
    configure_logging,
    get_logger,
    path_component,
    sanitize_name,
)


class TestIoUtils:
    """Test name sanitising and atomic writes."""

    def test_path_component_distinguishes_names(self):
        """Test names that sanitise alike still map to distinct components."""
        assert sanitize_name("a/b") == sanitize_name("a:b") == "a_b"
        assert path_component("a/b") != path_component("a:b")
        assert path_component("a/b").startswith("a_b-")

    def test_atomic_write(self, tmp_path):
        """Test the target holds the full payload and no temp files remain."""
        target = tmp_path / "nested" / "entry.joblib"
        atomic_write_bytes(target, b"first")
        atomic_write_bytes(target, b"second")
        assert target.read_bytes() == b"second"
        assert [p.name for p in target.parent.iterdir()] == ["entry.joblib"]

    def test_canonical_json_ignores_key_order(self):
        """Test canonical JSON is stable under key reordering."""
        assert canonical_json({"b": 1, "a": [1, {"d": 2, "c": 3}]}) == canonical_json(
            {"a": [1, {"c": 3, "d": 2}], "b": 1}
        )

    def test_canonical_json_hashes_full_array_content(self):
        """Test large arrays differing in one element get different canonical forms."""
        base = np.zeros(5000)
        edited = base.copy()
        edited[2500] = 1.0
        assert canonical_json({"w": base}) == canonical_json({"w": base.copy()})
        assert canonical_json({"w": base}) != canonical_json({"w": edited})
        assert canonical_json({"w": base}) != canonical_json({"w": base.astype(np.float32)})
        assert canonical_json(b"abc") != canonical_json(b"abd")

    def test_canonical_json_rejects_opaque_values(self):
        """Test values without a stable content form are refused instead of repr'd."""
        with pytest.raises(TypeError):
            canonical_json({"f": object()})
        with pytest.raises(TypeError):
            canonical_json(np.array([object()], dtype=object))


class TestLogging:
    """Test the package logging setup."""

    def test_verbosity_and_single_handler(self):
        """Test repeated setup keeps one handler and honours verbosity."""
        stream = io.StringIO()
        configure_logging(0)
        logger = configure_logging(1, stream=stream)
        tagged = [h for h in logger.handlers if getattr(h, "_cytopipe_handler", False)]
        assert len(tagged) == 1
        assert logger.level == logging.INFO

        get_logger("cytopipe.pipeline.executor").info("ran main/A")
        get_logger("cytopipe.pipeline.executor").debug("hidden")
        output = stream.getvalue()
        assert "ran main/A" in output
        assert "hidden" not in output
        configure_logging(0)

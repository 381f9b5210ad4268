"""Tests for the generic registry and the step resolver."""

import pytest

from cytopipe.errors import ArgumentMismatch, PipelineConfigError, UnknownFunction
from cytopipe.registries import Registry
from cytopipe.steps import STEP_REGISTRY, StepRegistry, import_step_modules, validate_arguments


class TestRegistry:
    """Test name-to-item registration."""

    def test_register_decorator_uses_key(self):
        """Test decorator registration under an explicit key."""
        reg = Registry[object]("things")

        @reg.register("alpha")
        def build():
            return 1

        assert reg.get("alpha") is build
        assert "alpha" in reg
        assert len(reg) == 1

    def test_duplicate_key_rejected(self):
        """Test registering the same key twice fails."""
        reg = Registry[int]("numbers")
        reg.add("one", 1)
        with pytest.raises(ValueError, match="already registered"):
            reg.add("one", 2)

    def test_missing_key_lists_available(self):
        """Test lookup errors mention what is registered."""
        reg = Registry[int]("numbers")
        reg.add("one", 1)
        with pytest.raises(KeyError, match="available=one"):
            reg.get("two")

    def test_remove(self):
        """Test removal returns the item."""
        reg = Registry[int]("numbers")
        reg.add("one", 1)
        assert reg.remove("one") == 1
        assert reg.list() == []


class TestStepRegistry:
    """Test function resolution and argument validation."""

    def test_resolve_unknown_function(self):
        """Test unregistered identifiers raise UnknownFunction."""
        reg = StepRegistry()
        reg.add("known", lambda x: x)
        with pytest.raises(UnknownFunction) as info:
            reg.resolve("unknwon")
        assert info.value.function == "unknwon"
        assert info.value.to_dict()["kind"] == "unknown_function"

    def test_non_callable_rejected(self):
        """Test only callables can be registered."""
        reg = StepRegistry()
        with pytest.raises(TypeError):
            reg.add("value", 3)

    def test_missing_required_argument(self):
        """Test a missing required parameter is reported."""

        def step(data, factor=1.0):
            return data

        with pytest.raises(ArgumentMismatch) as info:
            validate_arguments(step, {"factor": 2.0}, function_id="step")
        assert info.value.missing == ["data"]
        assert info.value.unexpected == []

    def test_unexpected_argument(self):
        """Test a misspelled keyword is reported as unexpected."""

        def step(data, factor=1.0):
            return data

        with pytest.raises(ArgumentMismatch) as info:
            validate_arguments(step, {"data": 1, "factr": 2.0})
        assert info.value.unexpected == ["factr"]

    def test_var_keyword_accepts_anything(self):
        """Test functions with **kwargs accept undeclared names."""

        def step(data, **options):
            return data

        validate_arguments(step, {"data": 1, "anything": True})

    def test_copy_is_independent(self):
        """Test copying a registry does not share later registrations."""
        reg = StepRegistry()
        reg.add("a", lambda: 1)
        clone = reg.copy()
        clone.add("b", lambda: 2)
        assert reg.list() == ["a"]
        assert clone.list() == ["a", "b"]

    def test_builtins_registered(self):
        """Test the default registry carries the builtin steps."""
        for name in ("read_sample_csv", "arcsinh_transform", "remove_margins", "count_events"):
            assert name in STEP_REGISTRY

    def test_import_step_modules_failure(self):
        """Test an unimportable module is a configuration error."""
        with pytest.raises(PipelineConfigError, match="import failed"):
            import_step_modules(["cytopipe_missing_module_for_tests"])

    def test_import_step_modules_skips_blank(self):
        """Test blank entries are ignored."""
        assert import_step_modules(["", "cytopipe.steps.builtin"]) == ["cytopipe.steps.builtin"]

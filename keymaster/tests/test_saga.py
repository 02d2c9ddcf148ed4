"""Unit tests for the saga orchestrator."""

import pytest

from keymaster.saga import Saga


class TestSaga:
    """Test forward execution and compensation."""

    def test_runs_steps_in_order(self):
        calls = []
        saga = Saga("test")
        saga.add_step("one", lambda: calls.append("one") or 1)
        saga.add_step("two", lambda: calls.append("two") or 2)

        assert saga.run() == [1, 2]
        assert calls == ["one", "two"]

    def test_failure_compensates_completed_steps_in_reverse(self):
        """Test compensation order and that the failed step is not compensated."""
        calls = []

        def fail():
            raise ValueError("step three failed")

        saga = (
            Saga("test")
            .add_step("one", lambda: calls.append("one"), lambda: calls.append("undo one"))
            .add_step("two", lambda: calls.append("two"), lambda: calls.append("undo two"))
            .add_step("three", fail, lambda: calls.append("undo three"))
        )

        with pytest.raises(ValueError, match="step three failed"):
            saga.run()
        assert calls == ["one", "two", "undo two", "undo one"]

    def test_compensation_failure_does_not_mask_original_error(self):
        calls = []

        def broken_undo():
            raise RuntimeError("undo failed")

        def fail():
            raise KeyError("original")

        saga = Saga("test")
        saga.add_step("one", lambda: calls.append("one"), lambda: calls.append("undo one"))
        saga.add_step("two", lambda: None, broken_undo)
        saga.add_step("three", fail)

        with pytest.raises(KeyError, match="original"):
            saga.run()
        assert calls == ["one", "undo one"]

    def test_steps_without_compensation_are_skipped(self):
        def fail():
            raise ValueError()

        saga = Saga("test").add_step("one", lambda: None).add_step("two", fail)
        with pytest.raises(ValueError):
            saga.run()
        assert saga.completed == []

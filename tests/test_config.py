"""Tests for PollSpec / ResourceTimeouts validation and env-driven settings."""

import pytest
from pydantic import ValidationError

from converge.core.config import PollSpec, ResourceTimeouts
from converge.core.settings import ConvergeSettings


class TestPollSpec:

    def test_defaults(self):
        spec = PollSpec(pending={"creating"}, target={"active"})

        assert spec.interval == 5.0
        assert spec.timeout == 1800
        assert spec.not_found_checks == 20
        assert spec.delay == 0
        assert not spec.waits_for_absence

    def test_empty_target_waits_for_absence(self):
        assert PollSpec(pending={"deleting"}).waits_for_absence

    def test_overlapping_sets_are_rejected(self):
        with pytest.raises(ValidationError, match="both pending and target"):
            PollSpec(pending={"creating", "active"}, target={"active"})

    @pytest.mark.parametrize(
        "field, value",
        [("interval", 0), ("timeout", -1), ("not_found_checks", 0), ("delay", -0.5)],
    )
    def test_out_of_range_values_are_rejected(self, field, value):
        with pytest.raises(ValidationError):
            PollSpec(pending={"creating"}, target={"active"}, **{field: value})

    def test_unknown_fields_are_rejected(self):
        with pytest.raises(ValidationError):
            PollSpec(pending={"creating"}, retries=3)

    def test_spec_is_immutable(self):
        spec = PollSpec(pending={"creating"}, target={"active"})

        with pytest.raises(ValidationError):
            spec.timeout = 10


class TestSettings:

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CONVERGE_LOG_LEVEL", "debug")
        monkeypatch.setenv("CONVERGE_POLL_INTERVAL", "2.5")
        monkeypatch.setenv("CONVERGE_NOT_FOUND_CHECKS", "3")
        monkeypatch.setenv("CONVERGE_DELETE_TIMEOUT", "90")

        settings = ConvergeSettings(_env_file=None)

        assert settings.CONVERGE_LOG_LEVEL == "DEBUG"
        assert settings.CONVERGE_POLL_INTERVAL == 2.5
        assert settings.CONVERGE_NOT_FOUND_CHECKS == 3
        assert settings.CONVERGE_DELETE_TIMEOUT == 90

    def test_timeouts_from_settings(self, monkeypatch):
        monkeypatch.setenv("CONVERGE_CREATE_TIMEOUT", "600")
        monkeypatch.setenv("CONVERGE_UPDATE_TIMEOUT", "300")

        timeouts = ResourceTimeouts.from_app_settings(ConvergeSettings(_env_file=None))

        assert timeouts.create == 600
        assert timeouts.update == 300
        assert timeouts.delete == 1800

    def test_invalid_number_is_rejected(self, monkeypatch):
        monkeypatch.setenv("CONVERGE_POLL_INTERVAL", "soon")

        with pytest.raises(ValidationError):
            ConvergeSettings(_env_file=None)

"""
Tests for the YAML-backed agency SLA configuration and the sweep scheduler.
"""

from datetime import timedelta

import pytest

from src.config import IssuePriority
from src.core import ConfigurationException
from src.issues.domain import SLACalculator
from src.issues.infrastructure import AgencyConfigManager, OverdueSweepScheduler
from tests.conftest import T0

AGENCY_YAML = """
agencies:
  agency-42:
    emergency_response_hours: 2
    urgent_response_hours: 12
    maintenance_response_days: 5
  agency-77:
    urgent_response_hours: 8
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "agency_sla.yaml"
    path.write_text(AGENCY_YAML)
    return path


class TestAgencyConfigManager:
    """Loading and hot-reloading agency overrides."""

    def test_load(self, config_file):
        manager = AgencyConfigManager()
        configs = manager.load(config_file)

        assert set(configs) == {"agency-42", "agency-77"}
        assert manager.agency_ids == ["agency-42", "agency-77"]
        assert manager.get("agency-42").urgent_response_hours == 12
        assert manager.get("agency-77").routine_response_hours is None

    async def test_acts_as_config_provider(self, config_file):
        manager = AgencyConfigManager()
        manager.load(config_file)

        config = await manager.get_sla_configuration("agency-42")

        assert SLACalculator.resolve_deadline(T0, IssuePriority.LOW, config) == T0 + timedelta(days=5)
        assert await manager.get_sla_configuration("agency-unknown") is None

    def test_missing_file_means_no_overrides(self, tmp_path):
        manager = AgencyConfigManager()

        assert manager.load(tmp_path / "absent.yaml") == {}
        assert manager.get("agency-42") is None

    def test_reload_picks_up_changes(self, config_file):
        manager = AgencyConfigManager()
        manager.load(config_file)

        config_file.write_text("agencies:\n  agency-42:\n    urgent_response_hours: 6\n")

        assert manager.reload() is True
        assert manager.get("agency-42").urgent_response_hours == 6
        assert manager.get("agency-77") is None

    def test_bad_reload_keeps_previous_config(self, config_file):
        manager = AgencyConfigManager()
        manager.load(config_file)

        config_file.write_text("agencies:\n  agency-42:\n    urgent_response_hours: [not, a, number]\n")

        assert manager.reload() is False
        assert manager.get("agency-42").urgent_response_hours == 12

    def test_malformed_yaml_keeps_previous_config(self, config_file):
        manager = AgencyConfigManager()
        manager.load(config_file)

        config_file.write_text("agencies: [unclosed\n")

        assert manager.reload() is False
        assert manager.get("agency-77").urgent_response_hours == 8

    def test_agencies_must_be_a_mapping(self, tmp_path):
        path = tmp_path / "agency_sla.yaml"
        path.write_text("agencies:\n  - agency-42\n")

        with pytest.raises(ConfigurationException):
            AgencyConfigManager().load(path)

    def test_reload_before_load(self):
        assert AgencyConfigManager().reload() is False

    def test_watch_requires_load(self):
        with pytest.raises(RuntimeError):
            AgencyConfigManager().start_watching()

    def test_start_and_stop_watching(self, config_file):
        manager = AgencyConfigManager()
        manager.load(config_file)

        manager.start_watching()
        manager.stop_watching()
        manager.stop_watching()


class TestOverdueSweepScheduler:
    """APScheduler lifecycle."""

    async def test_start_and_stop(self):
        async def job():
            return None

        scheduler = OverdueSweepScheduler(interval_seconds=3600)
        await scheduler.start(job)
        assert scheduler.is_running is True

        await scheduler.start(job)
        assert scheduler.is_running is True

        await scheduler.stop()
        assert scheduler.is_running is False

    async def test_stop_when_not_started(self):
        scheduler = OverdueSweepScheduler()

        await scheduler.stop()

        assert scheduler.is_running is False

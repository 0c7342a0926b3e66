"""
Issue External Integrations
===========================

Services that sit outside the request path:
- YAML agency SLA config with file watcher (hot reload)
- APScheduler driver for the periodic overdue sweep
"""

import threading
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from src.core import ConfigurationException
from src.issues.application import IAgencyConfigProvider
from src.issues.domain import SLAConfiguration
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for agency config file changes."""

    def __init__(self, config_manager: "AgencyConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("Agency config file changed", extra={"path": event.src_path})
            self.config_manager.reload()


class AgencyConfigManager(IAgencyConfigProvider):
    """
    Thread-safe agency SLA configuration backed by a YAML file.

    Expected layout:

        agencies:
          agency-42:
            emergency_response_hours: 2
            urgent_response_hours: 12
            routine_response_hours: 48
            maintenance_response_days: 5

    A reload only affects issues raised afterwards; deadlines already
    stamped on existing issues never move.
    """

    def __init__(self):
        self._configs: Dict[str, SLAConfiguration] = {}
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> Dict[str, SLAConfiguration]:
        """Initial configuration load."""
        self._path = path
        configs = self._load_from_file(path)
        with self._lock:
            self._configs = configs
        return dict(configs)

    def _load_from_file(self, path: Path) -> Dict[str, SLAConfiguration]:
        if not path.exists():
            logger.warning("Agency config file not found, using defaults", extra={"path": str(path)})
            return {}

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        agencies = data.get("agencies") or {}
        if not isinstance(agencies, dict):
            raise ConfigurationException(f"'agencies' in {path} must be a mapping")

        configs = {}
        for agency_id, values in agencies.items():
            try:
                configs[str(agency_id)] = SLAConfiguration(**(values or {}))
            except (TypeError, ValidationError) as e:
                raise ConfigurationException(
                    f"Invalid SLA configuration for agency '{agency_id}'",
                    details={"error": str(e)}
                )
        return configs

    def reload(self) -> bool:
        """Reload configuration from file; keeps the previous one if the new file is bad."""
        if self._path is None:
            return False

        try:
            new_configs = self._load_from_file(self._path)
        except (ConfigurationException, yaml.YAMLError, OSError) as e:
            logger.error("Failed to reload agency config", extra={"error": str(e)})
            return False

        with self._lock:
            self._configs = new_configs
        logger.info("Agency configuration reloaded", extra={"agency_count": len(new_configs)})
        return True

    def start_watching(self) -> None:
        """
        Start watching the configuration file for changes.

        Skipped when the file doesn't exist or the platform can't watch it.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info("Agency config file doesn't exist, skipping file watch", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching agency config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get(self, agency_id: str) -> Optional[SLAConfiguration]:
        with self._lock:
            return self._configs.get(agency_id)

    async def get_sla_configuration(self, agency_id: str) -> Optional[SLAConfiguration]:
        return self.get(agency_id)

    @property
    def agency_ids(self) -> list:
        with self._lock:
            return sorted(self._configs)


class OverdueSweepScheduler:
    """
    Wrapper for APScheduler running the overdue sweep.

    Manages the lifecycle of the scheduler and its single job.
    """

    def __init__(self, interval_seconds: int = 300):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[None]]) -> None:
        if self._running:
            logger.warning("Overdue sweep scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="overdue_sweep",
            name="Overdue Sweep Job",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("Overdue sweep scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("Overdue sweep scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running

"""
Station Health Monitor - Periodic liveness reports to SatHub
"""

import threading
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from .api import HealthResponse, StationApiClient
from .context import PipelineContext
from .errors import ApiError


class HealthMonitor:
    """
    Sends a station health check every health_check_interval seconds.

    Each response may carry server-side settings, which are applied to the
    runtime timing settings. The interval is re-read every cycle, so a
    change takes effect after the current wait; reschedule() cuts that
    wait short.
    """

    def __init__(self, context: PipelineContext, api_client: StationApiClient):
        """
        Initialize the health monitor.

        Args:
            context: Shared configuration, runtime settings and loggers
            api_client: SatHub API client used for the health checks
        """
        self.context = context
        self.api_client = api_client
        self.logger = context.get_logger('HealthMonitor')

        self.start_time = time.time()
        self.metrics = {
            'checks_sent': 0,
            'checks_failed': 0,
            'settings_applied': 0,
            'last_heartbeat': None,
            'station_id': None,
            'errors': []
        }

        self.monitoring = False
        self.monitor_thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._wake = threading.Event()

    def check(self) -> Optional[HealthResponse]:
        """Send one health check. Failures are logged and recorded, never raised."""
        try:
            health = self.api_client.station_health()
        except ApiError as e:
            self.metrics['checks_failed'] += 1
            self.record_error(str(e))
            self.logger.warning(f"Health check failed: {e}")
            return None

        self.metrics['checks_sent'] += 1
        self.metrics['last_heartbeat'] = time.time()
        if health.station_id:
            self.metrics['station_id'] = health.station_id

        if self.context.settings.apply_server_settings(health.settings):
            self.metrics['settings_applied'] += 1
            timing = self.context.settings.timing
            self.logger.info(f"Applied server settings: health check every {timing.health_check_interval}s, "
                             f"process delay {timing.process_delay}s")
        self.logger.info("Health check successful")
        return health

    def start_monitoring(self):
        """Start health monitoring thread."""
        if self.monitoring:
            return
        self.monitoring = True
        self._stop.clear()
        self._wake.clear()
        self.monitor_thread = threading.Thread(target=self._monitor_loop, name="HealthMonitor", daemon=True)
        self.monitor_thread.start()
        self.logger.info(f"Health monitoring started, interval {self.context.settings.health_check_interval}s")

    def stop_monitoring(self):
        """Stop health monitoring thread."""
        self.monitoring = False
        self._stop.set()
        self._wake.set()
        if self.monitor_thread:
            self.monitor_thread.join(timeout=1.0)
            self.monitor_thread = None
        self.logger.info("Health monitoring stopped")

    def reschedule(self):
        """Restart the current wait using the latest interval."""
        self._wake.set()

    def _monitor_loop(self):
        """Main monitoring loop."""
        while not self._stop.is_set():
            interval = self.context.settings.health_check_interval
            woken = self._wake.wait(interval)
            if self._stop.is_set():
                break
            if woken:
                self._wake.clear()
                self.logger.info(f"Health check interval updated to {self.context.settings.health_check_interval}s")
                continue
            try:
                self.check()
            except Exception as e:
                self.metrics['checks_failed'] += 1
                self.record_error(str(e))
                self.logger.exception(f"Health check crashed: {e}")

    def record_error(self, error: str):
        """Record an error."""
        self.metrics['errors'].append({
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'error': error
        })

        # Keep only last 100 errors
        if len(self.metrics['errors']) > 100:
            self.metrics['errors'] = self.metrics['errors'][-100:]

    def get_health_status(self) -> Dict[str, Any]:
        """Get health status."""
        uptime = time.time() - self.start_time
        return {
            'status': 'running' if self.monitoring else 'stopped',
            'uptime_seconds': uptime,
            'uptime_human': self._format_uptime(uptime),
            'interval_seconds': self.context.settings.health_check_interval,
            'metrics': {k: (list(v) if isinstance(v, list) else v) for k, v in self.metrics.items()},
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

    def _format_uptime(self, seconds: float) -> str:
        """Format uptime in human readable format."""
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"

"""
Station Service - Wires the pipeline together and runs the station's main loop
"""

from typing import Dict, Any, Optional

from .api import StationApiClient
from .context import PipelineContext
from .control import ControlChannel, RestartRequested, SettingsChanged, StopRequested
from .coordinator import PipelineCoordinator
from .errors import ConfigError
from .health import HealthMonitor

EXIT_OK = 0
# A supervisor (systemd Restart=always) brings the process back up
EXIT_RESTART = 1

CONTROL_POLL_SECONDS = 1.0


class StationService:
    """
    Top-level station process.

    1. Checks in with SatHub (a failure here aborts startup)
    2. Starts the dispatch coordinator and the periodic health monitor
    3. Consumes control messages until asked to stop or restart
    """

    def __init__(self,
                 context: PipelineContext,
                 api_client: Optional[StationApiClient] = None,
                 control: Optional[ControlChannel] = None,
                 coordinator: Optional[PipelineCoordinator] = None,
                 health_monitor: Optional[HealthMonitor] = None):
        """
        Initialize the station service.

        Args:
            context: Shared configuration, runtime settings and loggers
            api_client: SatHub client; built from the config when omitted
            control: Channel the main loop reads control messages from
            coordinator: Dispatch coordinator for pass directories
            health_monitor: Periodic health check thread
        """
        self.context = context
        self.logger = context.get_logger('StationService')
        config = context.config

        if api_client is None:
            api_client = StationApiClient(config.api_url, config.token, insecure=config.insecure)
        self.api_client = api_client
        self.control = control if control is not None else ControlChannel()
        if coordinator is None:
            coordinator = PipelineCoordinator(context, self.api_client)
        self.coordinator = coordinator
        if health_monitor is None:
            health_monitor = HealthMonitor(context, self.api_client)
        self.health_monitor = health_monitor
        self.station_id: Optional[str] = None

    def run(self) -> int:
        """
        Run until a stop or restart message arrives and return the exit code.

        Startup failures (initial health check, archive directory, watcher)
        propagate to the caller.
        """
        config = self.context.config
        self.logger.info(f"Starting station client: api {config.api_url}, "
                         f"watching {', '.join(str(p) for p in config.watch_paths)}, "
                         f"processed dir {config.processed_dir}")

        self.logger.info("Testing API connection...")
        health = self.api_client.station_health()
        self.station_id = health.station_id or None
        if self.context.settings.apply_server_settings(health.settings):
            self.logger.info("Applied server settings to configuration")

        timing = self.context.settings.timing
        self.logger.info(f"Health check interval {timing.health_check_interval}s, "
                         f"process delay {timing.process_delay}s")

        self.coordinator.start()
        try:
            self.health_monitor.start_monitoring()
            self.logger.info("Station client started successfully")
            return self._control_loop()
        finally:
            self.shutdown()

    def _control_loop(self) -> int:
        while True:
            message = self.control.get(timeout=CONTROL_POLL_SECONDS)
            if message is None:
                continue

            if isinstance(message, SettingsChanged):
                self.apply_settings(message)
            elif isinstance(message, RestartRequested):
                self.logger.info("Restart requested, shutting down gracefully...")
                return EXIT_RESTART
            elif isinstance(message, StopRequested):
                self.logger.info(f"Received shutdown signal {message.reason}".rstrip())
                return EXIT_OK

    def apply_settings(self, message: SettingsChanged):
        """Apply a settings update from the server and persist it."""
        self.logger.info(f"Received settings update: health check every {message.health_check_interval}s, "
                         f"process delay {message.process_delay}s")

        self.context.settings.update(
            process_delay=message.process_delay,
            health_check_interval=message.health_check_interval,
        )
        config = self.context.config
        config.update_intervals(message.health_check_interval, message.process_delay)
        try:
            config.save()
        except ConfigError as e:
            self.logger.error(f"Failed to save updated configuration: {e}")
        else:
            self.logger.info("Configuration updated and saved")

        self.health_monitor.reschedule()

    def request_stop(self, reason: str = ""):
        self.control.post(StopRequested(reason))

    def shutdown(self):
        self.health_monitor.stop_monitoring()
        self.coordinator.stop()

    def get_status(self) -> Dict[str, Any]:
        return {
            'service': 'StationService',
            'station_id': self.station_id,
            'coordinator': self.coordinator.get_status(),
            'health_monitor': self.health_monitor.get_health_status()
        }

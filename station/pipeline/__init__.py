"""
Pass ingestion pipeline for the SatHub station client
"""

from .ingest import PassWatcher
from .packager import PassPackager, is_complete_pass
from .uploader import PassUploader
from .coordinator import PipelineCoordinator
from .health import HealthMonitor
from .service import StationService

__all__ = [
    'PassWatcher',
    'PassPackager',
    'is_complete_pass',
    'PassUploader',
    'PipelineCoordinator',
    'HealthMonitor',
    'StationService'
]

"""
Utility functions and monitoring tools.
"""

from .monitoring import (
    setup_prometheus_metrics,
    track_request_metrics,
    track_facility_operation,
    track_blood_request_transition,
    track_notification,
    track_api_error,
    get_prometheus_metrics
)

__all__ = [
    "setup_prometheus_metrics",
    "track_request_metrics",
    "track_facility_operation",
    "track_blood_request_transition",
    "track_notification",
    "track_api_error",
    "get_prometheus_metrics"
]

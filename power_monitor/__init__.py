"""power_monitor package entrypoint.

Device liveness monitoring: pings promote devices to up, a periodic sweep
demotes silent ones to down, and every transition is persisted and announced
to the device's chat.
"""

__all__ = [
    "config",
    "models",
    "registry",
    "database",
    "event_store",
    "devices",
    "notifier",
    "runtime_status",
    "bootstrap",
    "service",
    "monitor",
    "http_api",
    "app",
    "cli",
]

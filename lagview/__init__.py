"""HTTP API for inspecting Kafka consumer lag, configuration and metrics."""

__version__ = "0.1.0"

__all__ = [
    "config_handlers",
    "coordinator",
    "kafka_handlers",
    "metrics",
    "models",
    "responses",
    "settings",
]
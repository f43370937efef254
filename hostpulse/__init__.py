"""hostpulse: tiered resource-metrics collection and alerting."""

__version__ = "0.1.0"

"""Server pool model, metrics registry, Slack notifications and HTTP handlers for an autoscaler."""

__version__ = "0.1.0"
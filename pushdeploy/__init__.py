"""pushdeploy - signed push webhooks to multi-phase deployments."""

__version__ = "1.0.0"

"""OpenShips: live AIS ingestion into current vessel state and a deduplicated position history."""

__version__ = "0.1.0"

from fleetctl.config.settings import Settings
from fleetctl.config.topology import default_endpoint, default_name, DEFAULT_FLEET_SIZE

__all__ = ["Settings", "default_endpoint", "default_name", "DEFAULT_FLEET_SIZE"]

"""BMC tester - CLI tool for Redfish boot-once and power control."""

__version__ = "0.1.0"

from .client import RedfishClient, RedfishError
from .bmc import RedfishBMC

__all__ = ["RedfishClient", "RedfishError", "RedfishBMC"]

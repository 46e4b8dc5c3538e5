"""Discovery utility for Temporal workflows and activities."""

import importlib
import pkgutil

from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)

COMPONENT_PACKAGES = (
    "legal_intel.temporal.activities",
    "legal_intel.temporal.workflows",
)


def discover_package(package_name: str) -> int:
    """Import every module in a package so its registry decorators run."""
    package = importlib.import_module(package_name)
    imported = 0
    for _, mod_name, _ in pkgutil.walk_packages(package.__path__, f"{package_name}."):
        importlib.import_module(mod_name)
        LOGGER.debug(f"Imported Temporal component module: {mod_name}")
        imported += 1
    return imported


def discover_all() -> None:
    """Discover all Temporal components."""
    for package_name in COMPONENT_PACKAGES:
        discover_package(package_name)
    LOGGER.info("All Temporal workflows and activities discovered and registered successfully")

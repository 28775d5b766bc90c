"""crx-sync - deploy packages to content repository instances and watch their state."""

__version__ = "0.1.0"

from crx_sync.core.config import Settings
from crx_sync.core.models import Instance
from crx_sync.instance.sync import InstanceSync, for_each_instance

__all__ = ["Settings", "Instance", "InstanceSync", "for_each_instance", "__version__"]

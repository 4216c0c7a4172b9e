# pronlab/adapters/__init__.py
# =============================
# Vendor Adapter Layer - PronLab
#
# One adapter per pronunciation-assessment vendor. Each maps its vendor's
# response into a StandardizedResult and raises AdapterError on failure.
#
# Public API:
#   build_registry(settings) → AdapterRegistry

from pronlab.adapters.base import (  # noqa: F401
    AdapterError,
    Capabilities,
    StandardizedResult,
    VendorAdapter,
)
from pronlab.adapters.azure import AzureAdapter  # noqa: F401
from pronlab.adapters.generic import GenericJSONAdapter  # noqa: F401
from pronlab.adapters.registry import AdapterRegistry, build_registry  # noqa: F401
from pronlab.adapters.speechsuper import SpeechSuperAdapter  # noqa: F401

__all__ = [
    "AdapterError",
    "AdapterRegistry",
    "AzureAdapter",
    "Capabilities",
    "GenericJSONAdapter",
    "SpeechSuperAdapter",
    "StandardizedResult",
    "VendorAdapter",
    "build_registry",
]

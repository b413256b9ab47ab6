"""Tech pack model, manifest loading and the pack catalog."""

from .models import Component, ComponentType, Pack
from .registry import PackCatalog

__all__ = ["Component", "ComponentType", "Pack", "PackCatalog"]

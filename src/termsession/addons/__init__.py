"""Terminal addons and the registry that toggles them."""

from .builtin import (
    AddonBase,
    AttachAddon,
    FitAddon,
    SearchAddon,
    SearchOptions,
    Unicode11Addon,
    WebglAddon,
    WebLinksAddon,
)
from .registry import ACCELERATED_RENDERER, ADDON_CATALOGUE, AddonDescriptor, AddonRegistry

__all__ = [
    "ACCELERATED_RENDERER",
    "ADDON_CATALOGUE",
    "AddonBase",
    "AddonDescriptor",
    "AddonRegistry",
    "AttachAddon",
    "FitAddon",
    "SearchAddon",
    "SearchOptions",
    "Unicode11Addon",
    "WebLinksAddon",
    "WebglAddon",
]

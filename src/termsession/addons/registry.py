"""Catalogue of terminal addons and their live instances."""

from __future__ import annotations

import asyncio
import logging as py_logging
from collections.abc import Callable
from dataclasses import dataclass

from termsession.addons.builtin import (
    AttachAddon,
    FitAddon,
    SearchAddon,
    Unicode11Addon,
    WebglAddon,
    WebLinksAddon,
)
from termsession.errors import ExitCode, InvalidStateError, TermSessionError
from termsession.presentation import Checkbox, Document, Element, add_dom_listener
from termsession.terminal.surface import Addon, TerminalSurface

logger = py_logging.getLogger(__name__)

ACCELERATED_RENDERER = "webgl"
IMMUTABLE_TITLE = "This addon is needed for the session to operate"

Scheduler = Callable[[Callable[[], None]], object]


@dataclass
class AddonDescriptor:
    name: str
    constructor: Callable[..., Addon]
    mutable: bool
    instance: Addon | None = None

    @property
    def loaded(self) -> bool:
        return self.instance is not None


ADDON_CATALOGUE: tuple[tuple[str, Callable[..., Addon], bool], ...] = (
    ("attach", AttachAddon, False),
    ("fit", FitAddon, False),
    ("search", SearchAddon, True),
    ("web-links", WebLinksAddon, True),
    (ACCELERATED_RENDERER, WebglAddon, True),
    ("unicode11", Unicode11Addon, True),
)


def call_soon(callback: Callable[[], None]) -> object:
    return asyncio.get_running_loop().call_soon(callback)


class AddonRegistry:
    def __init__(
        self,
        terminal: TerminalSurface,
        document: Document,
        *,
        schedule: Scheduler = call_soon,
        catalogue: tuple[tuple[str, Callable[..., Addon], bool], ...] = ADDON_CATALOGUE,
    ) -> None:
        self._terminal = terminal
        self._document = document
        self._schedule = schedule
        self._descriptors = {
            name: AddonDescriptor(name=name, constructor=constructor, mutable=mutable)
            for name, constructor, mutable in catalogue
        }
        self._controls: dict[str, Checkbox] = {}
        terminal.register(self._release_all)

    def descriptor(self, name: str) -> AddonDescriptor:
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            raise TermSessionError(
                f"Unknown addon: {name}",
                code=ExitCode.VALIDATION_ERROR,
                hint=f"Use one of: {', '.join(self._descriptors)}.",
            )
        return descriptor

    def descriptors(self) -> list[AddonDescriptor]:
        return list(self._descriptors.values())

    def get(self, name: str) -> Addon | None:
        return self.descriptor(name).instance

    def snapshot(self) -> dict[str, bool]:
        return {name: item.loaded for name, item in self._descriptors.items()}

    def load(self, name: str, *args: object, **kwargs: object) -> Addon:
        descriptor = self.descriptor(name)
        if descriptor.instance is not None:
            raise InvalidStateError(
                f"Addon already loaded: {name}",
                hint="Unload the addon before loading it again.",
            )
        instance = descriptor.constructor(*args, **kwargs)
        self._terminal.load_addon(instance)
        descriptor.instance = instance
        logger.debug("Addon loaded name=%s", name)
        if name == ACCELERATED_RENDERER:
            self._schedule(lambda: self._attach_atlas(descriptor, instance))
        self._sync_control(descriptor)
        return instance

    def unload(self, name: str) -> None:
        descriptor = self.descriptor(name)
        if not descriptor.mutable:
            raise InvalidStateError(
                f"Addon cannot be unloaded: {name}",
                hint="Only optional addons can be toggled during a session.",
            )
        instance = descriptor.instance
        if instance is None:
            raise InvalidStateError(
                f"Addon is not loaded: {name}",
                hint="Load the addon before unloading it.",
            )
        if name == ACCELERATED_RENDERER:
            self._detach_atlas(instance)
        descriptor.instance = None
        self._terminal.unload_addon(instance)
        logger.debug("Addon unloaded name=%s", name)
        self._sync_control(descriptor)

    def toggle(self, name: str, enabled: bool) -> None:
        descriptor = self.descriptor(name)
        if enabled and not descriptor.loaded:
            self.load(name)
        elif not enabled and descriptor.loaded:
            self.unload(name)

    def render_controls(self, container: Element) -> dict[str, Checkbox]:
        container.clear_children()
        self._controls.clear()
        for descriptor in self._descriptors.values():
            checkbox = Checkbox(f"addon-{descriptor.name}", checked=descriptor.loaded)
            checkbox.disabled = not descriptor.mutable
            add_dom_listener(
                self._terminal,
                checkbox,
                "change",
                lambda _event, name=descriptor.name, box=checkbox: self.toggle(name, box.checked),
            )
            label = Element(text=descriptor.name)
            label.classes.add("addon")
            if not descriptor.mutable:
                label.title = IMMUTABLE_TITLE
            label.append_child(checkbox)
            wrapper = Element()
            wrapper.classes.add("addon")
            wrapper.append_child(label)
            container.append_child(wrapper)
            self._controls[descriptor.name] = checkbox
        return dict(self._controls)

    def _attach_atlas(self, descriptor: AddonDescriptor, instance: Addon) -> None:
        if descriptor.instance is not instance or self._terminal.disposed:
            logger.debug("Skipping texture atlas attach for stale %s instance", descriptor.name)
            return
        atlas = getattr(instance, "texture_atlas", None)
        if isinstance(atlas, Element):
            self._document.body.append_child(atlas)

    def _detach_atlas(self, instance: Addon) -> None:
        atlas = getattr(instance, "texture_atlas", None)
        if isinstance(atlas, Element) and atlas.parent is not None:
            atlas.parent.remove_child(atlas)

    def _sync_control(self, descriptor: AddonDescriptor) -> None:
        control = self._controls.get(descriptor.name)
        if control is not None:
            control.checked = descriptor.loaded

    def _release_all(self) -> None:
        for descriptor in self._descriptors.values():
            if descriptor.instance is None:
                continue
            if descriptor.name == ACCELERATED_RENDERER:
                self._detach_atlas(descriptor.instance)
            descriptor.instance = None
            self._sync_control(descriptor)

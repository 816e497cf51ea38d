"""Schema-driven view and edit surface over live terminal options."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from termsession.errors import ExitCode, TermSessionError
from termsession.presentation import Checkbox, Element, NumberInput, Select, TextInput, ValueInput, add_dom_listener
from termsession.terminal.surface import TerminalSurface

logger = py_logging.getLogger(__name__)

BLACKLISTED_OPTIONS = frozenset(
    {
        # Internal only options
        "cancelEvents",
        "convertEol",
        "handler",
        "screenKeys",
        "termName",
        "useFlowControl",
        # Complex option
        "theme",
    }
)
FONT_WEIGHTS = ("normal", "bold", "100", "200", "300", "400", "500", "600", "700", "800", "900")


class OptionKind(str, Enum):
    BOOLEAN = "boolean"
    NUMBER = "number"
    ENUM_STRING = "enumString"
    FREE_STRING = "freeString"


class OptionEdit(str, Enum):
    PLAIN = "plain"
    FLOAT_RESIZE = "float-resize"
    RESIZE = "resize"


@dataclass(frozen=True)
class OptionSpec:
    kind: OptionKind
    allowed: tuple[object, ...] = ()
    step: float = 1
    edit: OptionEdit = OptionEdit.PLAIN


@dataclass(frozen=True)
class OptionDescriptor:
    name: str
    kind: OptionKind
    current_value: object
    allowed_values: tuple[object, ...] | None = None


def _boolean() -> OptionSpec:
    return OptionSpec(OptionKind.BOOLEAN)


def _number(*, edit: OptionEdit = OptionEdit.PLAIN) -> OptionSpec:
    return OptionSpec(OptionKind.NUMBER, step=0.1 if edit == OptionEdit.FLOAT_RESIZE else 1, edit=edit)


def _choice(*allowed: object) -> OptionSpec:
    return OptionSpec(OptionKind.ENUM_STRING, allowed=allowed)


def _free() -> OptionSpec:
    return OptionSpec(OptionKind.FREE_STRING)


OPTION_SCHEMA: dict[str, OptionSpec] = {
    "allowTransparency": _boolean(),
    "cursorBlink": _boolean(),
    "disableStdin": _boolean(),
    "drawBoldTextInBrightColors": _boolean(),
    "macOptionClickForcesSelection": _boolean(),
    "macOptionIsMeta": _boolean(),
    "rightClickSelectsWord": _boolean(),
    "screenReaderMode": _boolean(),
    "windowsMode": _boolean(),
    "cols": _number(edit=OptionEdit.RESIZE),
    "rows": _number(edit=OptionEdit.RESIZE),
    "fastScrollSensitivity": _number(),
    "fontSize": _number(),
    "letterSpacing": _number(),
    "lineHeight": _number(edit=OptionEdit.FLOAT_RESIZE),
    "minimumContrastRatio": _number(),
    "scrollSensitivity": _number(edit=OptionEdit.FLOAT_RESIZE),
    "scrollback": _number(),
    "tabStopWidth": _number(),
    "bellSound": _free(),
    "bellStyle": _choice("none", "sound"),
    "cursorStyle": _choice("block", "underline", "bar"),
    "fastScrollModifier": _choice("alt", "ctrl", "shift", None),
    "fontFamily": _free(),
    "fontWeight": _choice(*FONT_WEIGHTS),
    "fontWeightBold": _choice(*FONT_WEIGHTS),
    "logLevel": _choice("debug", "info", "warn", "error", "off"),
    "rendererType": _choice("dom", "canvas"),
    "wordSeparator": _free(),
}

GeometryCallback = Callable[[], None]


def validate_schema(option_names: Iterable[str], *, strict: bool = False) -> list[str]:
    """Compare an engine's declared options against the schema.

    Returns the declared keys that are neither blacklisted nor described by
    the schema. In strict mode any drift between the two sets raises.
    """
    declared = {name for name in option_names if name not in BLACKLISTED_OPTIONS}
    unknown = sorted(declared - OPTION_SCHEMA.keys())
    missing = sorted(OPTION_SCHEMA.keys() - declared)
    for name in unknown:
        logger.warning('Unrecognized option: "%s"', name)
    if strict and (unknown or missing):
        raise TermSessionError(
            "Terminal option set drifted from the known schema.",
            code=ExitCode.VALIDATION_ERROR,
            hint=f"unknown={unknown} missing={missing}",
        )
    return unknown


class ConfigurationIntrospector:
    def __init__(
        self,
        terminal: TerminalSurface,
        *,
        on_geometry_change: GeometryCallback | None = None,
        strict: bool = False,
    ) -> None:
        self._terminal = terminal
        self._on_geometry_change = on_geometry_change
        self._strict = strict
        self.controls: dict[str, Element] = {}

    def validate(self) -> list[str]:
        return validate_schema(self._terminal.option_names(), strict=self._strict)

    def describe(self) -> list[OptionDescriptor]:
        declared = set(self._terminal.option_names())
        return [
            OptionDescriptor(
                name=name,
                kind=spec.kind,
                current_value=self._terminal.get_option(name),
                allowed_values=spec.allowed if spec.kind == OptionKind.ENUM_STRING else None,
            )
            for name, spec in OPTION_SCHEMA.items()
            if name in declared
        ]

    def render(self, container: Element) -> list[OptionDescriptor]:
        self.validate()
        descriptors = self.describe()
        container.clear_children()
        self.controls.clear()
        boolean_group, number_group, string_group = Element(), Element(), Element()
        groups = {
            OptionKind.BOOLEAN: boolean_group,
            OptionKind.NUMBER: number_group,
            OptionKind.ENUM_STRING: string_group,
            OptionKind.FREE_STRING: string_group,
        }
        for group in (boolean_group, number_group, string_group):
            group.classes.add("option-group")
            container.append_child(group)

        for descriptor in descriptors:
            control = self._build_control(descriptor)
            option = Element(text=descriptor.name)
            option.classes.add("option")
            option.append_child(control)
            groups[descriptor.kind].append_child(option)
            self.controls[descriptor.name] = control
            add_dom_listener(
                self._terminal,
                control,
                "change",
                lambda _event, name=descriptor.name, source=control: self._on_change(name, source),
            )
        logger.debug("Rendered %s option controls", len(self.controls))
        return descriptors

    def apply_edit(self, name: str, value: object) -> None:
        spec = self._spec(name)
        if spec.kind == OptionKind.BOOLEAN:
            self._terminal.set_option(name, bool(value))
            return
        if spec.kind == OptionKind.NUMBER:
            self._apply_number(name, spec, value)
            return
        if spec.kind == OptionKind.ENUM_STRING and value not in spec.allowed:
            raise TermSessionError(
                f"Invalid value for {name}: {value!r}",
                code=ExitCode.VALIDATION_ERROR,
                hint=f"Use one of: {', '.join(str(item) for item in spec.allowed)}.",
            )
        self._terminal.set_option(name, value if spec.kind == OptionKind.ENUM_STRING else str(value))

    def _apply_number(self, name: str, spec: OptionSpec, value: object) -> None:
        if spec.edit == OptionEdit.RESIZE:
            self._terminal.set_option(name, _parse_int(name, value))
            self._recompute_geometry()
        elif spec.edit == OptionEdit.FLOAT_RESIZE:
            self._terminal.set_option(name, _parse_float(name, value))
            self._recompute_geometry()
        else:
            self._terminal.set_option(name, _parse_int(name, value))

    def _recompute_geometry(self) -> None:
        if self._on_geometry_change is not None:
            self._on_geometry_change()

    def _on_change(self, name: str, control: Element) -> None:
        value = control.checked if isinstance(control, Checkbox) else getattr(control, "value", None)
        logger.debug("change %s %r", name, value)
        try:
            self.apply_edit(name, value)
        except TermSessionError as exc:
            logger.warning("Rejected option edit name=%s value=%r: %s", name, value, exc.message)
        self._show_live_value(name, control)

    def _show_live_value(self, name: str, control: Element) -> None:
        live = self._terminal.get_option(name)
        if isinstance(control, Checkbox):
            control.checked = bool(live)
        elif isinstance(control, ValueInput):
            control.value = live

    def _build_control(self, descriptor: OptionDescriptor) -> Element:
        control_id = f"opt-{descriptor.name}"
        spec = OPTION_SCHEMA[descriptor.name]
        if descriptor.kind == OptionKind.BOOLEAN:
            return Checkbox(control_id, checked=bool(descriptor.current_value))
        if descriptor.kind == OptionKind.NUMBER:
            return NumberInput(control_id, value=descriptor.current_value, step=spec.step)
        if descriptor.kind == OptionKind.ENUM_STRING:
            return Select(control_id, options=spec.allowed, value=descriptor.current_value)
        return TextInput(control_id, value=descriptor.current_value)

    def _spec(self, name: str) -> OptionSpec:
        spec = OPTION_SCHEMA.get(name)
        if spec is None or name in BLACKLISTED_OPTIONS:
            raise TermSessionError(
                f"Option is not editable: {name}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Only schema options can be edited through controls.",
            )
        return spec


def _parse_int(name: str, value: object) -> int:
    try:
        return int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError) as exc:
        raise TermSessionError(
            f"Invalid number for {name}: {value!r}",
            code=ExitCode.VALIDATION_ERROR,
            hint="Enter a numeric value.",
        ) from exc


def _parse_float(name: str, value: object) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError) as exc:
        raise TermSessionError(
            f"Invalid number for {name}: {value!r}",
            code=ExitCode.VALIDATION_ERROR,
            hint="Enter a numeric value.",
        ) from exc

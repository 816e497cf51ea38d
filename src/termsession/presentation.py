"""Headless presentation surface: document tree, controls and listeners."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Protocol

from termsession.errors import InvalidStateError

EventHandler = Callable[[object], None]


@dataclass(frozen=True)
class KeyboardEvent:
    key: str


TERMINAL_CONTAINER_ID = "terminal-container"
OPTIONS_CONTAINER_ID = "options-container"
ADDONS_CONTAINER_ID = "addons-container"
FIND_NEXT_ID = "find-next"
FIND_PREVIOUS_ID = "find-previous"
REGEX_ID = "regex"
WHOLE_WORD_ID = "whole-word"
CASE_SENSITIVE_ID = "case-sensitive"
PADDING_ID = "padding"
DISPOSE_BUTTON_ID = "dispose"


class Registrar(Protocol):
    def register(self, item: Callable[[], None]) -> object: ...


class Element:
    tag = "div"

    def __init__(self, element_id: str = "", *, text: str = "") -> None:
        self.element_id = element_id
        self.text = text
        self.title = ""
        self.disabled = False
        self.classes: set[str] = set()
        self.style: dict[str, str] = {}
        self.children: list[Element] = []
        self.parent: Element | None = None
        self._listeners: dict[str, list[EventHandler]] = {}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.element_id!r}>"

    def add_event_listener(self, event_type: str, handler: EventHandler) -> None:
        self._listeners.setdefault(event_type, []).append(handler)

    def remove_event_listener(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._listeners.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, []))

    def dispatch(self, event_type: str, event: object = None) -> None:
        if self.disabled:
            return
        for handler in list(self._listeners.get(event_type, [])):
            handler(event)

    def append_child(self, child: Element) -> Element:
        if child.parent is not None:
            child.parent.remove_child(child)
        child.parent = self
        self.children.append(child)
        return child

    def remove_child(self, child: Element) -> Element:
        if child not in self.children:
            raise InvalidStateError(
                f"Node {child!r} is not a child of {self!r}.",
                hint="Detach nodes only from their current parent.",
            )
        self.children.remove(child)
        child.parent = None
        return child

    def clear_children(self) -> None:
        for child in list(self.children):
            self.remove_child(child)

    def contains(self, node: Element) -> bool:
        return any(item is node for item in self.walk())

    def walk(self) -> Iterator[Element]:
        yield self
        for child in self.children:
            yield from child.walk()


class Checkbox(Element):
    tag = "input[checkbox]"

    def __init__(self, element_id: str = "", *, checked: bool = False, text: str = "") -> None:
        super().__init__(element_id, text=text)
        self.checked = checked

    def change(self, checked: bool) -> None:
        if self.disabled:
            return
        self.checked = checked
        self.dispatch("change")


class ValueInput(Element):
    def __init__(self, element_id: str = "", *, value: object = "", text: str = "") -> None:
        super().__init__(element_id, text=text)
        self.value = value

    def change(self, value: object) -> None:
        if self.disabled:
            return
        self.value = value
        self.dispatch("change")

    def keyup(self, key: str, *, value: object | None = None) -> None:
        if value is not None:
            self.value = value
        self.dispatch("keyup", KeyboardEvent(key=key))


class TextInput(ValueInput):
    tag = "input[text]"


class NumberInput(ValueInput):
    tag = "input[number]"

    def __init__(self, element_id: str = "", *, value: object = 0, step: float = 1, text: str = "") -> None:
        super().__init__(element_id, value=value, text=text)
        self.step = step


class Select(ValueInput):
    tag = "select"

    def __init__(
        self,
        element_id: str = "",
        *,
        options: tuple[object, ...] = (),
        value: object = None,
        text: str = "",
    ) -> None:
        super().__init__(element_id, value=value, text=text)
        self.options = options

    def change(self, value: object) -> None:
        if value not in self.options:
            raise InvalidStateError(
                f"Value {value!r} is not offered by selector {self.element_id!r}.",
                hint="Choose one of the listed values.",
            )
        super().change(value)


class Button(Element):
    tag = "button"

    def click(self) -> None:
        self.dispatch("click")


class Document:
    def __init__(self) -> None:
        self.body = Element("body")

    def get_element(self, element_id: str) -> Element:
        for node in self.body.walk():
            if node.element_id == element_id:
                return node
        raise InvalidStateError(
            f"Element not found: {element_id}",
            hint="Build the document with build_document() before creating a session.",
        )


def build_document() -> Document:
    document = Document()
    body = document.body
    body.append_child(Element(TERMINAL_CONTAINER_ID))
    body.append_child(Button(DISPOSE_BUTTON_ID, text="Dispose terminal"))
    body.append_child(TextInput(FIND_NEXT_ID))
    body.append_child(TextInput(FIND_PREVIOUS_ID))
    body.append_child(Checkbox(REGEX_ID))
    body.append_child(Checkbox(WHOLE_WORD_ID))
    body.append_child(Checkbox(CASE_SENSITIVE_ID))
    body.append_child(NumberInput(PADDING_ID, value=0))
    body.append_child(Element(OPTIONS_CONTAINER_ID))
    body.append_child(Element(ADDONS_CONTAINER_ID))
    return document


def add_dom_listener(owner: Registrar, element: Element, event_type: str, handler: EventHandler) -> None:
    element.add_event_listener(event_type, handler)
    owner.register(lambda: element.remove_event_listener(event_type, handler))

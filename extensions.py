"""Hooks and loadable extensions for bfvm.

An extension is a Python file defining ``bfvm_register(ext)``. It receives an
``ExtensionAPI`` and subscribes to the interpreter's five events or asks to be
called every N executed instructions. ``.bfx`` files list extension paths,
one per line, relative to the ``.bfx`` file; they may list other ``.bfx``
files.
"""

from __future__ import annotations

import importlib.util
import os
from dataclasses import dataclass, field
from types import ModuleType
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Sequence, Set

if TYPE_CHECKING:
    from interpreter import Interpreter
    from translator import Instruction


EXTENSION_API_VERSION = 1


class BFExtensionError(Exception):
    pass


@dataclass(frozen=True)
class StepContext:
    step_index: int
    pc: int
    rule: str
    location: Any  # SourceLocation | None


ProgramStartHandler = Callable[["Interpreter", List["Instruction"]], None]
ProgramEndHandler = Callable[["Interpreter", int], None]
ByteHandler = Callable[["Interpreter", int], None]
ErrorHandler = Callable[["Interpreter", BaseException], None]
StepHandler = Callable[["Interpreter", StepContext], None]

# event -> what the handler receives after the interpreter
EVENTS: Dict[str, str] = {
    "program_start": "the Halt-terminated instruction list",
    "program_end": "the exit status (always 0)",
    "on_output": "the byte just written",
    "on_input": "the byte just stored",
    "on_error": "the exception that stopped the run",
}


@dataclass
class Hook:
    handler: Callable[..., None]
    priority: int
    source: str


@dataclass
class StepRule:
    every_n: int
    handler: StepHandler
    source: str


@dataclass
class HookRegistry:
    events: Dict[str, List[Hook]] = field(default_factory=lambda: {name: [] for name in EVENTS})
    step_rules: List[StepRule] = field(default_factory=list)

    def add(self, event: str, handler: Callable[..., None], *, priority: int = 0, source: str = "<host>") -> None:
        hooks = self.events.get(event)
        if hooks is None:
            raise BFExtensionError(f"Unknown event '{event}' (expected one of {', '.join(EVENTS)})")
        hooks.append(Hook(handler, priority, source))
        # Stable sort: equal priorities keep registration order.
        hooks.sort(key=lambda hook: -hook.priority)

    def add_step_rule(self, every_n: int, handler: StepHandler, *, source: str = "<host>") -> None:
        if every_n <= 0:
            raise BFExtensionError(f"Step interval must be >= 1, got {every_n}")
        self.step_rules.append(StepRule(every_n, handler, source))

    def emit(self, event: str, interpreter: "Interpreter", payload: Any) -> None:
        for hook in self.events[event]:
            hook.handler(interpreter, payload)

    def has_handlers(self, event: str) -> bool:
        return bool(self.events.get(event))

    @property
    def has_step_rules(self) -> bool:
        return bool(self.step_rules)

    def after_step(self, interpreter: "Interpreter", ctx: StepContext) -> None:
        for rule in self.step_rules:
            if ctx.step_index % rule.every_n == 0:
                rule.handler(interpreter, ctx)


@dataclass(frozen=True)
class ExtensionMetadata:
    name: str
    version: str
    path: str


@dataclass
class RuntimeServices:
    metadata: List[ExtensionMetadata] = field(default_factory=list)
    hook_registry: HookRegistry = field(default_factory=HookRegistry)


class ExtensionAPI:
    """What ``bfvm_register`` sees. Every hook method also works as a decorator."""

    def __init__(self, *, services: RuntimeServices, name: str, path: str) -> None:
        self._services = services
        self._name = name
        self._path = path

    def metadata(self, *, version: str) -> None:
        self._services.metadata.append(ExtensionMetadata(self._name, version, self._path))

    def on_program_start(self, handler: Optional[ProgramStartHandler] = None, *, priority: int = 0):
        return self._subscribe("program_start", handler, priority)

    def on_program_end(self, handler: Optional[ProgramEndHandler] = None, *, priority: int = 0):
        return self._subscribe("program_end", handler, priority)

    def on_output(self, handler: Optional[ByteHandler] = None, *, priority: int = 0):
        return self._subscribe("on_output", handler, priority)

    def on_input(self, handler: Optional[ByteHandler] = None, *, priority: int = 0):
        return self._subscribe("on_input", handler, priority)

    def on_error(self, handler: Optional[ErrorHandler] = None, *, priority: int = 0):
        return self._subscribe("on_error", handler, priority)

    def every_n_steps(self, every_n: int, handler: Optional[StepHandler] = None):
        registry = self._services.hook_registry
        if handler is None:
            def deco(fn: StepHandler) -> StepHandler:
                registry.add_step_rule(every_n, fn, source=self._name)
                return fn
            return deco
        registry.add_step_rule(every_n, handler, source=self._name)
        return handler

    def _subscribe(self, event: str, handler: Optional[Callable[..., None]], priority: int):
        registry = self._services.hook_registry
        if handler is None:
            def deco(fn: Callable[..., None]) -> Callable[..., None]:
                registry.add(event, fn, priority=priority, source=self._name)
                return fn
            return deco
        registry.add(event, handler, priority=priority, source=self._name)
        return handler


def extension_paths(paths: Sequence[str], _seen: Optional[Set[str]] = None) -> Iterator[str]:
    """Yield absolute extension file paths, expanding ``.bfx`` lists in place."""
    seen = set() if _seen is None else _seen
    for path in paths:
        path = os.path.abspath(path)
        if not path.lower().endswith(".bfx"):
            yield path
            continue
        if path in seen:
            raise BFExtensionError(f".bfx file includes itself: {path}")
        seen.add(path)
        yield from extension_paths(_read_bfx(path), seen)


def _read_bfx(path: str) -> List[str]:
    if not os.path.isfile(path):
        raise BFExtensionError(f".bfx file not found: {path}")
    base_dir = os.path.dirname(path)
    entries: List[str] = []
    with open(path, "r", encoding="utf-8") as handle:
        for raw in handle:
            entry = raw.split("#", 1)[0].strip()
            if entry:
                entries.append(os.path.join(base_dir, entry))
    return entries


def _import_extension(path: str, slot: int) -> ModuleType:
    if not os.path.isfile(path):
        raise BFExtensionError(f"Extension not found: {path}")
    spec = importlib.util.spec_from_file_location(f"bfvm_ext_{slot}", path)
    if spec is None or spec.loader is None:
        raise BFExtensionError(f"Not an importable Python file: {path}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise BFExtensionError(f"Extension {path} failed to import: {exc}") from exc
    return module


def load_runtime_services(paths: Sequence[str]) -> RuntimeServices:
    services = RuntimeServices()
    loaded: Dict[str, str] = {}
    for slot, path in enumerate(extension_paths(paths)):
        module = _import_extension(path, slot)
        api_version = getattr(module, "BFVM_EXTENSION_API_VERSION", EXTENSION_API_VERSION)
        if api_version != EXTENSION_API_VERSION:
            raise BFExtensionError(
                f"Extension {path} requires API {api_version}, bfvm provides {EXTENSION_API_VERSION}"
            )
        register = getattr(module, "bfvm_register", None)
        if not callable(register):
            raise BFExtensionError(f"Extension {path} must define callable bfvm_register(ext)")
        name = str(getattr(module, "BFVM_EXTENSION_NAME", os.path.splitext(os.path.basename(path))[0]))
        if name in loaded:
            raise BFExtensionError(f"Extension '{name}' loaded twice ({loaded[name]} and {path})")
        loaded[name] = path
        register(ExtensionAPI(services=services, name=name, path=path))
    return services

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple


EVENTS = (
    "program_start",
    "before_instruction",
    "after_instruction",
    "on_error",
    "program_end",
)


class SASMHookError(Exception):
    pass


@dataclass(frozen=True)
class StepContext:
    step_index: int
    rule: str
    position: int
    location: Any  # SourceLocation | None


StepHandler = Callable[[Any, StepContext], None]


@dataclass
class HookRegistry:
    # event -> list[(priority, handler, owner)]
    _events: Dict[str, List[Tuple[int, Callable[..., None], str]]] = field(default_factory=dict)
    # list[(every_n, handler, owner, name)]
    _step_rules: List[Tuple[int, StepHandler, str, str]] = field(default_factory=list)

    def on_event(self, event: str, handler: Callable[..., None], *, priority: int = 0, owner: str = "") -> None:
        if event not in EVENTS:
            raise SASMHookError(f"Unknown event '{event}'")
        self._events.setdefault(event, []).append((priority, handler, owner))
        self._events[event].sort(key=lambda t: t[0], reverse=True)

    def emit(self, event: str, *args: Any, **kwargs: Any) -> None:
        for _priority, handler, _owner in self._events.get(event, []):
            handler(*args, **kwargs)

    def has_handlers(self, event: str) -> bool:
        return bool(self._events.get(event))

    def add_step_rule(self, *, name: str, every_n: int, handler: StepHandler, owner: str = "") -> None:
        if every_n <= 0:
            raise SASMHookError("every_n_steps must be >= 1")
        self._step_rules.append((every_n, handler, owner, name))

    def after_step(self, interpreter: Any, ctx: StepContext) -> None:
        for every_n, handler, _owner, _name in self._step_rules:
            if ctx.step_index % every_n == 0:
                handler(interpreter, ctx)

    def event(self, event: str, *, priority: int = 0, owner: str = ""):
        def deco(fn: Callable[..., None]) -> Callable[..., None]:
            self.on_event(event, fn, priority=priority, owner=owner)
            return fn

        return deco

    def every_n_steps(self, every_n: int, *, name: Optional[str] = None, owner: str = ""):
        def deco(fn: StepHandler) -> StepHandler:
            self.add_step_rule(name=name or fn.__name__, every_n=every_n, handler=fn, owner=owner)
            return fn

        return deco

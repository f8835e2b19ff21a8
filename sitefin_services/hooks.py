"""
PostCommitHooks -- ordered, fault-isolated side effects of a primary write.

Responsibility:
    Collecting a payment and completing a phase each trigger a cascade of
    follow-up work (treasury refresh, phase unblock, alert re-verification).
    The primary write has already been persisted when the hooks run; a hook
    failure is logged and recorded in the returned outcomes but never
    propagated, so the caller's operation always succeeds.

Architecture position:
    Services > infrastructure.  Owned by ``InvoiceLedger`` (collection
    hooks) and ``PhaseGate`` (phase-completion hooks); populated by the
    composition root in ``sitefin_services.wiring``.

Invariants enforced:
    - Hooks run in registration order.
    - Every hook runs even if an earlier one raised.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sitefin_kernel.logging_config import get_logger

logger = get_logger("services.hooks")


@dataclass(frozen=True)
class HookOutcome:
    """Result of running one hook."""

    name: str
    succeeded: bool
    error: str | None = None


class PostCommitHooks:
    """Named, ordered list of best-effort callbacks."""

    def __init__(self, event: str):
        self._event = event
        self._hooks: list[tuple[str, Callable[..., Any]]] = []

    @property
    def event(self) -> str:
        return self._event

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self._hooks)

    def register(self, name: str, hook: Callable[..., Any]) -> None:
        if name in self.names:
            raise ValueError(f"Hook already registered for {self._event}: {name}")
        self._hooks.append((name, hook))

    def run(self, *args: Any, **kwargs: Any) -> list[HookOutcome]:
        outcomes = []
        for name, hook in self._hooks:
            try:
                hook(*args, **kwargs)
            except Exception as exc:
                logger.exception(
                    "post_commit_hook_failed",
                    extra={"event": self._event, "hook": name},
                )
                outcomes.append(HookOutcome(name=name, succeeded=False, error=str(exc)))
            else:
                outcomes.append(HookOutcome(name=name, succeeded=True))
        return outcomes

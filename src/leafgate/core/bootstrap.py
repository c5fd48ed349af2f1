"""Ordered startup steps with uniform logging and required/optional policy."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from .logging_utils import log_event

BootstrapAction = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class BootstrapStep:
    name: str
    action: BootstrapAction
    required: bool = True


async def run_bootstrap_steps(
    *,
    scope: str,
    logger: logging.Logger,
    steps: Iterable[BootstrapStep],
) -> list[str]:
    """Run ``steps`` in order; returns the names of optional steps that failed.

    A failing required step is logged and re-raised, which stops the sequence.
    """

    failed: list[str] = []
    for step in steps:
        try:
            await step.action()
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR if step.required else logging.WARNING,
                f"{scope}.bootstrap.step_failed",
                step=step.name,
                required=step.required,
                exc=exc,
            )
            if step.required:
                raise
            failed.append(step.name)
        else:
            log_event(
                logger,
                logging.INFO,
                f"{scope}.bootstrap.step_ok",
                step=step.name,
                required=step.required,
            )
    return failed

"""Provisioning status state machine using the ``transitions`` library.

Statuses only move forward in declaration order. Optional phases may be
skipped, so every ``enter_<status>`` trigger accepts any earlier
non-terminal status as its source. ``fail`` is reachable from every
non-terminal status. ``ready`` and ``failed`` accept no triggers at all;
firing one there raises ``MachineError``.
"""

from __future__ import annotations

import logging
from typing import Any

from transitions import Machine

from src.provisioning.models import ProvisionStatus

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------
STATES: list[str] = [status.value for status in ProvisionStatus]

_FORWARD_ORDER: list[str] = [
    status.value for status in ProvisionStatus if status is not ProvisionStatus.FAILED
]
NON_TERMINAL: list[str] = [
    status.value for status in ProvisionStatus if not status.is_terminal
]

# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def trigger_name(status: ProvisionStatus | str) -> str:
    value = status.value if isinstance(status, ProvisionStatus) else status
    if value == ProvisionStatus.FAILED.value:
        return "fail"
    return f"enter_{value}"


def _build_transitions() -> list[dict[str, Any]]:
    transitions: list[dict[str, Any]] = []
    for index, dest in enumerate(_FORWARD_ORDER[1:], start=1):
        transitions.append(
            {
                "trigger": trigger_name(dest),
                "source": _FORWARD_ORDER[:index],
                "dest": dest,
            }
        )
    transitions.append(
        {
            "trigger": "fail",
            "source": list(NON_TERMINAL),
            "dest": ProvisionStatus.FAILED.value,
        }
    )
    return transitions


TRANSITIONS: list[dict[str, Any]] = _build_transitions()


def create_provision_machine(
    model: Any, initial_state: str = ProvisionStatus.PROVISIONING.value
) -> Machine:
    """Create and return a ``Machine`` bound to *model*.

    The model must implement ``announce(event)``, which is called after
    every state change with the ``EventData`` of the transition; keyword
    arguments passed to the trigger (such as ``error``) are available as
    ``event.kwargs``.

    Args:
        model: The object whose state the machine manages.
        initial_state: The initial state for the machine.

    Returns:
        Configured ``Machine`` instance.
    """
    machine = Machine(
        model=model,
        states=STATES,
        transitions=TRANSITIONS,
        initial=initial_state,
        auto_transitions=False,
        send_event=True,
        ignore_invalid_triggers=False,
        after_state_change="announce",
    )
    return machine

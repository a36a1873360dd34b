"""
Contact lifecycle as an XState-compatible machine, run with xstate-python.

pending --ACCEPT--> accepted
pending --DECLINE--> declined   (the record is deleted, so the pair may request again)

accepted is terminal. The same JSON config can be opened in Stately Studio.
"""

import json
from pathlib import Path

from xstate.machine import Machine

ACCEPT = "ACCEPT"
DECLINE = "DECLINE"
DECLINED = "declined"

CONTACT_MACHINE: dict = {
    "id": "contact",
    "initial": "pending",
    "states": {
        "pending": {"on": {ACCEPT: "accepted", DECLINE: DECLINED}},
        "accepted": {"on": {}},
        DECLINED: {"on": {}},
    },
}


def load_machine(path: Path) -> dict:
    """Load a machine config from JSON. Must have 'initial' and 'states'."""
    config = json.loads(path.read_text(encoding="utf-8"))
    if "initial" not in config or "states" not in config:
        raise ValueError("Machine must have 'initial' and 'states'")
    return config


def _machine_instance(config: dict) -> Machine:
    """Return a Machine instance for this config. Cached per config id."""
    cache: dict[int, Machine] = getattr(_machine_instance, "_cache", {})
    key = id(config)
    if key not in cache:
        cache[key] = Machine(config)
        _machine_instance._cache = cache
    return cache[key]


def transition(state_value: str, event: str, machine: dict | None = None) -> str | None:
    """
    Return next state value for (state_value, event), or None if the event
    is not allowed in that state.
    """
    config = machine if machine is not None else CONTACT_MACHINE
    if state_value not in config["states"]:
        return None
    try:
        instance = _machine_instance(config)
        state = instance.state_from(state_value)
        next_state = instance.transition(state, event)
        if next_state.value == state_value:
            return None
        return next_state.value
    except (ValueError, KeyError):
        return None

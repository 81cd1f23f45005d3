"""
Decision rules: pure functions from an entity's fields to an Action (or None).

Nothing in here does I/O; the dispatcher turns an Action into requests.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from entities import EMPLOYEE, FREIGHT, TRAILER, TRIP, TRUCK, EntityRecord, FreightButton
from extractors import FREIGHT_VOCABULARY, RANDOM_ACTION

logger = logging.getLogger(__name__)

SLEEP = "sleep"
REPAIR = "repair"
REFUEL = "refuel"
ACCEPT = "accept"
PRESS = "press"

DEFAULT_FUEL_THRESHOLD = 99.0
IDLE_ACTION = "Nothing"

_AVAILABLE = re.compile(r"(\d+)\s+available", re.IGNORECASE)


@dataclass(frozen=True)
class Action:
    name: str
    entity_id: str
    kind: str
    buttons: Tuple[FreightButton, ...] = ()


def evaluate_employee(employee: EntityRecord) -> Optional[Action]:
    """Sleep an employee who is idle and not fully rested"""
    sleep = employee.get("sleep_percent")
    if employee.get("action") == IDLE_ACTION and sleep is not None and sleep < 100:
        return Action(SLEEP, employee.id, employee.kind)
    return None


def evaluate_vehicle(vehicle: EntityRecord) -> Optional[Action]:
    """Repair a truck or trailer whose known condition is below 100"""
    condition = vehicle.get("condition")
    if condition is not None and condition < 100:
        return Action(REPAIR, vehicle.id, vehicle.kind)
    return None


def evaluate_fuel(truck: EntityRecord, threshold: float = DEFAULT_FUEL_THRESHOLD) -> Optional[Action]:
    fuel = truck.get("fuel_percentage")
    if fuel is not None and fuel < threshold:
        return Action(REFUEL, truck.id, truck.kind)
    return None


def select_trip(trips: Sequence[EntityRecord]) -> Optional[Action]:
    """First-available policy: accept the first trip in page order"""
    if not trips:
        return None
    return Action(ACCEPT, trips[0].id, TRIP)


def denotes_availability(indicator: str) -> bool:
    """'<n> available' with a nonzero count"""
    m = _AVAILABLE.search(indicator or "")
    return bool(m) and int(m.group(1)) > 0


def needs_random_press(indicators: Iterable[str]) -> bool:
    # Anything not reading "<n> available" (n > 0) calls for the random action first
    indicators = list(indicators)
    return not indicators or any(not denotes_availability(text) for text in indicators)


def evaluate_freight(freight: EntityRecord,
                     vocabulary: Sequence[str] = FREIGHT_VOCABULARY) -> Optional[Action]:
    """
    Buttons to press on a freight page, in order.

    The random button goes first when the status indicators call for it,
    then one button per vocabulary entry that is present on the page.
    No vocabulary button means nothing to do.
    """
    buttons = freight.get("buttons") or ()
    by_action = {}
    for button in buttons:
        by_action.setdefault(button.action, button)

    presses = [by_action[action] for action in vocabulary if action in by_action]
    if not presses:
        return None
    if RANDOM_ACTION in by_action and needs_random_press(freight.get("status_indicators") or ()):
        presses.insert(0, by_action[RANDOM_ACTION])
    return Action(PRESS, freight.id, FREIGHT, tuple(presses))


class Evaluator:
    """Routes entities to their rule with the configured thresholds"""

    def __init__(self, fuel_threshold: float = DEFAULT_FUEL_THRESHOLD,
                 vocabulary: Sequence[str] = FREIGHT_VOCABULARY):
        self.fuel_threshold = fuel_threshold
        self.vocabulary = tuple(v.lower() for v in vocabulary)

    def evaluate(self, entity: EntityRecord, refuel: bool = False) -> Optional[Action]:
        if entity.kind == EMPLOYEE:
            action = evaluate_employee(entity)
        elif entity.kind == TRUCK and refuel:
            action = evaluate_fuel(entity, self.fuel_threshold)
        elif entity.kind in (TRUCK, TRAILER):
            action = evaluate_vehicle(entity)
        elif entity.kind == FREIGHT:
            action = evaluate_freight(entity, self.vocabulary)
        elif entity.kind == TRIP:
            action = select_trip([entity])
        else:
            action = None

        if action is None:
            logger.debug(f"{entity.kind} {entity.id}: no action needed")
        else:
            logger.info(f"{entity.kind} {entity.id}: qualifies for {action.name}")
        return action

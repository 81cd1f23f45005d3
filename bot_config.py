"""
Bot configuration: built-in defaults merged with the user's config.json.

Everything here is read once at start-up and treated as read-only.
"""

import copy
import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.logitycoon.com/eu1/"

# Path templates, relative to base_url; {id} is the entity id
DEFAULT_ENDPOINTS = {
    "employees_page":    "index.php?a=employees",
    "employee_detail":   "index.php?a=employees_select&e={id}",
    "employee_sleep":    "ajax/employee_sleep.php?e={id}",
    "garage_page":       "index.php?a=garage",
    "truck_detail":      "index.php?a=garage_truck&t={id}",
    "trailer_detail":    "index.php?a=garage_trailer&t={id}",
    "repair":            "ajax/garage_repair.php",
    "fuel_station_page": "index.php?a=fuelstation",
    "refuel":            "ajax/fuelstation_refuel.php",
    "trips_page":        "index.php?a=trips",
    "trip_accept":       "ajax/trip_accept.php",
    "warehouse_page":    "index.php?a=warehouse",
    "freight_detail":    "index.php?a=freight&n={id}",
}

DEFAULT_CONFIG = {
    "base_url": DEFAULT_BASE_URL,
    # Value of the game's PHP session cookie, copied from a logged-in browser
    "session_token": "",
    "session_cookie_name": "PHPSESSID",
    "request_timeout": 15,
    # 0 = a failed request is reported, not retried
    "max_retries": 0,
    "log_file": "logitycoon_bot.log",
    "endpoints": DEFAULT_ENDPOINTS,
    # Refuel trucks below this fuel percentage
    "fuel_threshold": 99,
    # Column indexes per employee table (None = built-in mapping)
    "employee_tables": None,
    "freight": {
        "vocabulary": ["load", "drive", "unload", "finish", "continue driving"],
        "status_selector": "span.badge, span.label",
        # Extra freight ids to work on besides the warehouse list
        "ids": [],
    },
    # 24/7 loop settings
    "loop": {
        "domains": ["employee", "garage", "fuel", "trips", "freight"],
        "cycle_delay_min": 60,
        "cycle_delay_max": 120,
        "cycles_before_break_min": 20,
        "cycles_before_break_max": 40,
        "break_duration_min": 4,
        "break_duration_max": 12,
        "session_refresh_hours": 3,
    },
}


def merge_config(defaults: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Recursively lay user overrides over the defaults (dicts merge, everything else replaces)"""
    merged = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_file: str = "config.json") -> Dict[str, Any]:
    """Load configuration from a JSON file, falling back to defaults"""
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            user_config = json.load(f)
    except FileNotFoundError:
        logger.warning(f"Config file {config_file} not found, using defaults")
        user_config = {}
    except json.JSONDecodeError as e:
        logger.error(f"Config file {config_file} is not valid JSON ({e}), using defaults")
        user_config = {}
    return merge_config(DEFAULT_CONFIG, user_config)


def endpoint(endpoints: Dict[str, str], name: str, entity_id: str = "") -> str:
    """Fill an endpoint template with an entity id"""
    return endpoints[name].format(id=entity_id)

"""Building code compliance lookups."""
from .code_checker import (
    STATE_CODES,
    CodeCheckResult,
    StateCodeInfo,
    check_building_codes,
    get_local_codes,
    get_state_info,
    get_state_list,
    invalidate_cache,
)

__all__ = [
    "STATE_CODES",
    "CodeCheckResult",
    "StateCodeInfo",
    "check_building_codes",
    "get_local_codes",
    "get_state_info",
    "get_state_list",
    "invalidate_cache",
]

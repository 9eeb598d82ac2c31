"""
Building Code Compliance Checker

Static lookup of the residential code edition and hazard flags for every
US state + DC, plus trade requirement tables (roofing, siding, openings,
gutters). Produces the recommendation list shown on claims and fed into
AI-generated scopes of work.
"""
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateCodeInfo:
    edition: str
    amendments: tuple = ()
    wind_zone: Optional[str] = None  # basic, high, hurricane
    seismic_zone: Optional[str] = None  # A-E
    snow_load: bool = False
    ice_barrier: bool = False
    fire_zone: bool = False


@dataclass(frozen=True)
class CodeRequirement:
    code: str
    requirement: str
    citation: Optional[str] = None
    applicable_states: tuple = ()
    severity: str = "info"


@dataclass
class CodeViolation:
    code: str
    section: str
    description: str
    severity: str  # info, warning, error, critical
    remediation: str


@dataclass
class CodeCheckResult:
    compliant: bool
    code_edition: str
    violations: List[CodeViolation] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    permit_required: bool = True
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_STATE_INFO = StateCodeInfo(edition="IRC 2021")

# =============================================================================
# ALL 50 STATES + DC
# =============================================================================

STATE_CODES: Dict[str, StateCodeInfo] = {
    "AL": StateCodeInfo("IRC 2021", wind_zone="hurricane", amendments=("Coastal zones",)),
    "AK": StateCodeInfo("IRC 2018", snow_load=True, seismic_zone="D"),
    "AZ": StateCodeInfo("IRC 2021", amendments=("R301.2.1.1",), fire_zone=True),
    "AR": StateCodeInfo("IRC 2021"),
    "CA": StateCodeInfo("CBC 2022 (Title 24)", seismic_zone="D", fire_zone=True, amendments=("CALGreen",)),
    "CO": StateCodeInfo("IRC 2021", snow_load=True, amendments=("High altitude provisions",)),
    "CT": StateCodeInfo("IRC 2021", ice_barrier=True),
    "DE": StateCodeInfo("IRC 2018"),
    "DC": StateCodeInfo("IBC 2021", amendments=("DC Construction Codes",)),
    "FL": StateCodeInfo(
        "FBC 2023 (7th Edition)", wind_zone="hurricane",
        amendments=("HVHZ", "Miami-Dade NOA required"),
    ),
    "GA": StateCodeInfo("IRC 2018", wind_zone="high", amendments=("Coastal zone wind maps",)),
    "HI": StateCodeInfo("IRC 2018", wind_zone="hurricane", seismic_zone="C"),
    "ID": StateCodeInfo("IRC 2018", snow_load=True),
    "IL": StateCodeInfo("IRC 2021", ice_barrier=True),
    "IN": StateCodeInfo("IRC 2020", ice_barrier=True),
    "IA": StateCodeInfo("IRC 2021", ice_barrier=True),
    "KS": StateCodeInfo("IRC 2018"),
    "KY": StateCodeInfo("IRC 2018"),
    "LA": StateCodeInfo("IRC 2021", wind_zone="hurricane", amendments=("Coastal provisions",)),
    "ME": StateCodeInfo("IRC 2021", ice_barrier=True, snow_load=True),
    "MD": StateCodeInfo("IRC 2021", amendments=("MD Building Performance Standards",)),
    "MA": StateCodeInfo("IRC 2021 (9th Ed)", ice_barrier=True, amendments=("MA Amendments (780 CMR)",)),
    "MI": StateCodeInfo("IRC 2021", ice_barrier=True),
    "MN": StateCodeInfo("IRC 2020", ice_barrier=True, snow_load=True, amendments=("MN Rules Chapter 1309",)),
    "MS": StateCodeInfo("IRC 2018", wind_zone="hurricane"),
    "MO": StateCodeInfo("IRC 2018"),
    "MT": StateCodeInfo("IRC 2021", snow_load=True, ice_barrier=True),
    "NE": StateCodeInfo("IRC 2018"),
    "NV": StateCodeInfo("IRC 2021", seismic_zone="C", amendments=("Clark County amendments",)),
    "NH": StateCodeInfo("IRC 2018", ice_barrier=True, snow_load=True),
    "NJ": StateCodeInfo("IRC 2021", ice_barrier=True, amendments=("NJ UCC",)),
    "NM": StateCodeInfo("IRC 2018", seismic_zone="B"),
    "NY": StateCodeInfo("IRC 2020", ice_barrier=True, amendments=("NYC has separate code",)),
    "NC": StateCodeInfo("IRC 2018", wind_zone="high", amendments=("Coastal wind zone requirements",)),
    "ND": StateCodeInfo("IRC 2018", ice_barrier=True, snow_load=True),
    "OH": StateCodeInfo("IRC 2021", ice_barrier=True, amendments=("OBC",)),
    "OK": StateCodeInfo("IRC 2018"),
    "OR": StateCodeInfo("ORSC 2021", seismic_zone="D", amendments=("Oregon Residential Specialty Code",)),
    "PA": StateCodeInfo("IRC 2018", ice_barrier=True, amendments=("PA UCC",)),
    "RI": StateCodeInfo("IRC 2021", ice_barrier=True),
    "SC": StateCodeInfo("IRC 2018", wind_zone="high", amendments=("Coastal zone provisions",)),
    "SD": StateCodeInfo("IRC 2018", ice_barrier=True, snow_load=True),
    "TN": StateCodeInfo("IRC 2018"),
    "TX": StateCodeInfo(
        "IRC 2021", wind_zone="high",
        amendments=("Windstorm certification coastal", "TWIA requirements"),
    ),
    "UT": StateCodeInfo("IRC 2021", seismic_zone="D", snow_load=True),
    "VT": StateCodeInfo("IRC 2020", ice_barrier=True, snow_load=True, amendments=("VT RBES",)),
    "VA": StateCodeInfo("IRC 2021", amendments=("USBC",)),
    "WA": StateCodeInfo("IRC 2021", seismic_zone="D", amendments=("WA State Amendments",)),
    "WV": StateCodeInfo("IRC 2018"),
    "WI": StateCodeInfo("IRC 2021", ice_barrier=True, snow_load=True, amendments=("SPS 320-325",)),
    "WY": StateCodeInfo("IRC 2018", snow_load=True),
}

# =============================================================================
# TRADE REQUIREMENTS
# =============================================================================

ICE_BARRIER_STATES = (
    "MN", "WI", "MI", "NY", "MA", "ME", "NH", "VT", "MT", "ND", "SD", "CT",
    "RI", "PA", "OH", "IN", "IL", "IA", "NJ",
)

ROOFING_CODES: Dict[str, CodeRequirement] = {
    "underlayment": CodeRequirement(
        "IRC R905.2.6",
        "Underlayment shall comply with ASTM D226 Type I, D4869 Type I-IV, or D6757",
        "2021 IRC Section R905.2.6",
    ),
    "underlayment_synthetic": CodeRequirement(
        "IRC R905.2.6.1",
        "Synthetic underlayment shall comply with ASTM D226 Type II equivalency",
        "2021 IRC Section R905.2.6.1",
    ),
    "wind_resistance": CodeRequirement(
        "IRC R905.2.8.2",
        "Shingles shall be tested per ASTM D3161 Class D or D7158 Class G/H for wind resistance",
        "2021 IRC Section R905.2.8.2",
    ),
    "wind_resistance_hurricane": CodeRequirement(
        "IRC R905.2.8.2 / FBC",
        "High-velocity hurricane zones require ASTM D7158 Class H (150 mph) minimum",
        "Florida Building Code Chapter 15",
        applicable_states=("FL", "TX", "LA", "MS", "AL"),
    ),
    "ice_barrier": CodeRequirement(
        "IRC R905.2.7.1",
        'Ice barrier required from eave edge to min 24" past interior face of exterior wall',
        "2021 IRC Section R905.2.7.1",
        applicable_states=ICE_BARRIER_STATES,
    ),
    "flashings": CodeRequirement(
        "IRC R905.2.8.1",
        'Flashings shall be corrosion-resistant metal minimum 0.019" galvanized steel or approved material',
        "2021 IRC Section R905.2.8.1",
    ),
    "valley_flashing": CodeRequirement(
        "IRC R905.2.8.2",
        'Valley flashings min 24" wide, metal or mineral-surfaced roll roofing',
        "2021 IRC Section R905.2.8.2",
    ),
    "ventilation": CodeRequirement(
        "IRC R806.1",
        "Minimum net free ventilation area 1/150 of attic floor area, or 1/300 with balanced intake/exhaust",
        "2021 IRC Section R806.1",
    ),
    "decking_nailing": CodeRequirement(
        "IRC R803.2.1",
        'Roof sheathing 8d common nails at 6" edge / 12" field, or per engineering in high-wind',
        "2021 IRC Table R602.3(1)",
    ),
    "drip_edge": CodeRequirement(
        "IRC R905.2.8.5",
        'Drip edge required at eaves and rakes, extending min 1/4" below sheathing',
        "2021 IRC Section R905.2.8.5",
    ),
}

SIDING_CODES: Dict[str, CodeRequirement] = {
    "weather_resistive_barrier": CodeRequirement(
        "IRC R703.1",
        "Weather-resistive barrier required behind all exterior wall coverings",
        "2021 IRC Section R703.1",
    ),
    "flashing": CodeRequirement(
        "IRC R703.4",
        "Flashing required at wall/roof intersections, around openings, and at penetrations",
        "2021 IRC Section R703.4",
    ),
    "vinyl_siding": CodeRequirement(
        "IRC R703.11",
        "Vinyl siding per ASTM D3679; attachment per manufacturer with corrosion-resistant fasteners",
        "2021 IRC Section R703.11",
    ),
    "fiber_cement": CodeRequirement(
        "IRC R703.10.2",
        'Fiber cement siding per ASTM C1186; min 6" clearance to grade',
        "2021 IRC Section R703.10.2",
    ),
    "stucco": CodeRequirement(
        "IRC R703.7",
        'Stucco minimum 7/8" three-coat or 3/8" two-coat over approved base',
        "2021 IRC Section R703.7",
    ),
}

OPENING_CODES: Dict[str, CodeRequirement] = {
    "window_flashing": CodeRequirement(
        "IRC R703.4",
        "Pan flashing and flexible flashing tape required at window rough openings",
        "2021 IRC Section R703.4",
    ),
    "impact_resistance": CodeRequirement(
        "IRC R301.2.1.2 / FBC",
        "Impact-resistant glazing or shutters required in wind-borne debris regions",
        "2021 IRC Section R301.2.1.2",
        applicable_states=("FL", "TX", "LA", "SC", "NC", "GA", "AL", "MS", "HI"),
    ),
    "egress": CodeRequirement(
        "IRC R310.1",
        'Emergency egress: min 5.7 sq ft opening, 24" min height, 20" min width, max 44" sill',
        "2021 IRC Section R310.1",
    ),
    "energy_code": CodeRequirement(
        "IECC C402",
        "Window U-factor and SHGC per climate zone requirements",
        "2021 IECC Table C402.4",
    ),
}

GUTTER_CODES: Dict[str, CodeRequirement] = {
    "drainage": CodeRequirement(
        "IRC R801.3",
        "Roof drainage shall not create erosion or direct water toward building",
        "2021 IRC Section R801.3",
    ),
    "sizing": CodeRequirement(
        "Industry Standard",
        'Gutters sized per roof area: typically 5" for <600 sq ft drainage, 6" for larger',
        "SMACNA Architectural Sheet Metal Manual",
    ),
}

TRADES = ("roofing", "siding", "windows", "gutters", "all")


def _normalize_state(state: Optional[str]) -> str:
    return (state or "").strip().upper()


def _needs_ice_barrier(state: str, info: StateCodeInfo) -> bool:
    return info.ice_barrier or state in ROOFING_CODES["ice_barrier"].applicable_states


def _mentions(damage_type: Optional[str], *words: str) -> bool:
    if not damage_type:
        return False
    lowered = damage_type.lower()
    return any(word in lowered for word in words)


# =============================================================================
# CACHE LAYER
# =============================================================================

# Keys start with the state code so one state can be dropped on its own
CACHE_MAX_ENTRIES = 1024

_check_cache: Dict[Tuple[str, Optional[str], Optional[str], str], CodeCheckResult] = {}
_local_cache: Dict[Tuple[str, Optional[str], str], Dict[str, Any]] = {}


def _remember(cache: Dict[Tuple, Any], key: Tuple, value: Any) -> None:
    if len(cache) >= CACHE_MAX_ENTRIES:
        # Oldest entry first
        cache.pop(next(iter(cache)))
    cache[key] = value


# =============================================================================
# MAIN COMPLIANCE FUNCTIONS
# =============================================================================

def _build_code_check(
    state: str,
    county: Optional[str],
    damage_type: Optional[str],
    trade: str,
) -> CodeCheckResult:
    info = STATE_CODES.get(state, DEFAULT_STATE_INFO)
    violations: List[CodeViolation] = []
    recommendations: List[str] = [
        "Document all existing conditions before beginning repairs",
        "Obtain manufacturer specifications for replacement materials",
        "Verify contractor licensing requirements for your state",
        f"Applicable code edition: {info.edition}",
    ]

    if info.amendments:
        recommendations.append(f"Local amendments apply: {', '.join(info.amendments)}")

    if _needs_ice_barrier(state, info):
        req = ROOFING_CODES["ice_barrier"]
        recommendations.append(f"ICE BARRIER REQUIRED: {req.requirement} ({req.code})")

    if info.wind_zone == "hurricane":
        recommendations.append("HURRICANE ZONE: Verify wind rating meets high-velocity requirements")
        recommendations.append(f"Wind resistance: {ROOFING_CODES['wind_resistance_hurricane'].requirement}")
        if state == "FL":
            recommendations.append("FBC product approval required - verify NOA/FL numbers on all materials")
    elif info.wind_zone == "high":
        recommendations.append("HIGH WIND ZONE: Enhanced fastening and wind-rated materials required")
    if state == "TX":
        recommendations.append("TWIA certification may be required for coastal properties")

    if info.seismic_zone in ("C", "D", "E"):
        recommendations.append(f"SEISMIC ZONE {info.seismic_zone}: Special structural requirements apply")

    if info.snow_load:
        recommendations.append("SNOW LOAD ZONE: Verify roof structure meets local ground snow load requirements")

    if info.fire_zone:
        recommendations.append("WILDFIRE ZONE: Class A fire-rated roofing materials may be required")
        if state == "CA":
            recommendations.append("CAL FIRE compliance required in designated WUI zones")

    if trade in ("roofing", "all") or _mentions(damage_type, "roof", "shingle"):
        recommendations.append(f"ROOFING - Underlayment: {ROOFING_CODES['underlayment'].requirement}")
        recommendations.append(f"ROOFING - Wind Resistance: {ROOFING_CODES['wind_resistance'].requirement}")
        recommendations.append(f"ROOFING - Flashings: {ROOFING_CODES['flashings'].requirement}")
        recommendations.append(f"ROOFING - Ventilation: {ROOFING_CODES['ventilation'].requirement}")
        recommendations.append(f"ROOFING - Drip Edge: {ROOFING_CODES['drip_edge'].requirement}")

    if trade in ("siding", "all") or _mentions(damage_type, "siding"):
        recommendations.append(
            f"SIDING - Weather Barrier: {SIDING_CODES['weather_resistive_barrier'].requirement}"
        )
        recommendations.append(f"SIDING - Flashing: {SIDING_CODES['flashing'].requirement}")

    if trade in ("windows", "all") or _mentions(damage_type, "window"):
        recommendations.append(f"WINDOWS - Flashing: {OPENING_CODES['window_flashing'].requirement}")
        if state in OPENING_CODES["impact_resistance"].applicable_states:
            recommendations.append(f"WINDOWS - Impact: {OPENING_CODES['impact_resistance'].requirement}")

    if trade in ("gutters", "all") or _mentions(damage_type, "gutter"):
        recommendations.append(f"GUTTERS - Drainage: {GUTTER_CODES['drainage'].requirement}")

    return CodeCheckResult(
        compliant=not any(v.severity in ("error", "critical") for v in violations),
        code_edition=info.edition,
        violations=violations,
        recommendations=recommendations,
        permit_required=True,
    )


def check_building_codes(
    state: str,
    county: Optional[str] = None,
    damage_type: Optional[str] = None,
    trade: Optional[str] = None,
) -> CodeCheckResult:
    """
    Check repair work against the codes in force for a state.
    Repeat lookups are served from the in-process cache and flagged ``cached``.
    """
    selected_trade = trade or "all"
    if selected_trade not in TRADES:
        raise ValueError(f"Unknown trade '{trade}'. Must be one of: {', '.join(TRADES)}")

    key = (_normalize_state(state), county or None, damage_type or None, selected_trade)
    result = _check_cache.get(key)
    cached = result is not None
    if result is None:
        result = _build_code_check(*key)
        _remember(_check_cache, key, result)

    # Cached instance is shared; hand callers their own copy
    return CodeCheckResult(
        compliant=result.compliant,
        code_edition=result.code_edition,
        violations=list(result.violations),
        recommendations=list(result.recommendations),
        permit_required=result.permit_required,
        cached=cached,
    )


def _build_local_codes(state: str, county: Optional[str], trade: str) -> Dict[str, Any]:
    info = STATE_CODES.get(state, DEFAULT_STATE_INFO)
    codes: List[CodeRequirement] = []

    if trade in ("roofing", "all"):
        codes.extend(ROOFING_CODES[key] for key in (
            "underlayment", "wind_resistance", "flashings", "ventilation", "drip_edge", "decking_nailing",
        ))
        if _needs_ice_barrier(state, info):
            codes.append(ROOFING_CODES["ice_barrier"])
        if info.wind_zone == "hurricane":
            codes.append(ROOFING_CODES["wind_resistance_hurricane"])

    if trade in ("siding", "all"):
        codes.extend(SIDING_CODES[key] for key in (
            "weather_resistive_barrier", "flashing", "vinyl_siding", "fiber_cement",
        ))

    if trade in ("windows", "all"):
        codes.append(OPENING_CODES["window_flashing"])
        codes.append(OPENING_CODES["egress"])
        if state in OPENING_CODES["impact_resistance"].applicable_states:
            codes.append(OPENING_CODES["impact_resistance"])

    if trade in ("gutters", "all"):
        codes.append(GUTTER_CODES["drainage"])
        codes.append(GUTTER_CODES["sizing"])

    return {
        "state": state,
        "county": county,
        "state_info": {
            "edition": info.edition,
            "wind_zone": info.wind_zone,
            "seismic_zone": info.seismic_zone,
            "ice_barrier": info.ice_barrier,
            "snow_load": info.snow_load,
            "fire_zone": info.fire_zone,
        },
        "amendments": list(info.amendments),
        "codes": [
            {
                "code": c.code,
                "requirement": c.requirement,
                "citation": c.citation,
                "applicable_states": list(c.applicable_states),
                "severity": c.severity,
            }
            for c in codes
        ],
        "last_updated": datetime.now(timezone.utc).isoformat(),
    }


def get_local_codes(state: str, county: Optional[str] = None, trade: Optional[str] = None) -> Dict[str, Any]:
    """Requirement list for a state (and trade), for PDFs and the codes tab."""
    selected_trade = trade or "all"
    if selected_trade not in TRADES:
        raise ValueError(f"Unknown trade '{trade}'. Must be one of: {', '.join(TRADES)}")
    key = (_normalize_state(state), county or None, selected_trade)
    codes = _local_cache.get(key)
    cached = codes is not None
    if codes is None:
        codes = _build_local_codes(*key)
        _remember(_local_cache, key, codes)
    return {**codes, "cached": cached}


def get_state_list() -> List[str]:
    return sorted(STATE_CODES.keys())


def get_state_info(state: str) -> Optional[StateCodeInfo]:
    return STATE_CODES.get(_normalize_state(state))


def invalidate_cache(state: Optional[str] = None) -> int:
    """Drop cached results for one state, or all of them. Returns how many were dropped."""
    code = _normalize_state(state) if state else None
    dropped = 0
    for cache in (_check_cache, _local_cache):
        stale = [key for key in cache if code is None or key[0] == code]
        for key in stale:
            del cache[key]
        dropped += len(stale)
    logger.info(f"[compliance-cache] Invalidated {code or 'all'} cache ({dropped} entries)")
    return dropped

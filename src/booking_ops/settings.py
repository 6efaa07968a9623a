"""booking_ops.settings

Process-wide settings for the derivation engine and the importers.

Responsibilities:
  - Hold the documented defaults (thresholds, cooldowns, reward types)
  - Coerce every numeric read so a bad edit never yields NaN comparisons
  - Load YAML overrides from config/settings.yml style files

Usage:
    from pathlib import Path
    from booking_ops.settings import load_settings

    settings = load_settings(Path("config/settings.yml"))
    settings.reward_days_for("Copa")
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from booking_ops.normalize import DEFAULT_REWARD_TYPE, normalize_reward_type, safe_lower

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_REWARD_TYPES = (
    ("Booking", 14),
    ("Copa", 64),
    ("AA", 64),
    ("CC", 64),
)

# snake_case attribute -> camelCase key used by the export JSON shape
_KEY_MAP = {
    "gold_threshold": "goldThreshold",
    "platinum_after_days": "platinumAfterDays",
    "cooldown_days": "cooldownDays",
    "max_active_bookings": "maxActiveBookings",
    "tech_block_consecutive": "techBlockConsecutive",
    "tech_block_total": "techBlockTotal",
    "hotel_tech_block_total": "hotelTechBlockTotal",
    "reward_days_booking": "rewardDaysBooking",
    "reward_days_other": "rewardDaysOther",
    "reward_types": "rewardTypes",
    "auto_create_from_import": "autoCreateFromImport",
    "auto_write_tech_blocks": "autoWriteTechBlocks",
}

_NUMBER_FIELDS = frozenset({"gold_threshold"})
_INT_FIELDS = frozenset({
    "platinum_after_days",
    "cooldown_days",
    "max_active_bookings",
    "tech_block_consecutive",
    "tech_block_total",
    "hotel_tech_block_total",
    "reward_days_booking",
    "reward_days_other",
})
_BOOL_FIELDS = frozenset({"auto_create_from_import", "auto_write_tech_blocks"})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SettingsValidationError(ValueError):
    """Raised when a settings file or payload is structurally invalid."""


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def coerce_number(value: Any, default: float) -> float:
    """Return value as a finite float, or default when it is not one."""
    if isinstance(value, bool):
        return default
    try:
        f = float(str(value).replace(",", "").strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return default
    return f if math.isfinite(f) else default


def coerce_int(value: Any, default: int) -> int:
    return int(coerce_number(value, default))


def coerce_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    s = safe_lower(value)
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return default


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RewardType:
    name: str
    days: int

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "days": self.days}


def default_reward_types() -> list[RewardType]:
    return [RewardType(name, days) for name, days in DEFAULT_REWARD_TYPES]


@dataclass
class Settings:
    gold_threshold: float = 300
    platinum_after_days: int = 40
    cooldown_days: int = 20
    max_active_bookings: int = 3
    tech_block_consecutive: int = 3
    tech_block_total: int = 3
    hotel_tech_block_total: int = 3
    reward_days_booking: int = 14
    reward_days_other: int = 64
    reward_types: list[RewardType] = field(default_factory=default_reward_types)
    auto_create_from_import: bool = True
    auto_write_tech_blocks: bool = True

    def __post_init__(self) -> None:
        # Direct construction gets the same guard as from_dict.
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in _NUMBER_FIELDS:
                setattr(self, f.name, coerce_number(value, f.default))
            elif f.name in _INT_FIELDS:
                setattr(self, f.name, coerce_int(value, f.default))
            elif f.name in _BOOL_FIELDS:
                setattr(self, f.name, coerce_bool(value, f.default))
        if not self.reward_types:
            self.reward_types = default_reward_types()

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, base: Settings | None = None) -> Settings:
        """Build settings from camelCase or snake_case keys.

        Missing keys keep the value from ``base`` (or the defaults);
        non-numeric values fall back the same way.
        """
        base = base or cls()
        if not data:
            return replace(base, reward_types=list(base.reward_types))
        if not isinstance(data, dict):
            raise SettingsValidationError("Settings payload must be a mapping.")

        def pick(attr: str) -> Any:
            if attr in data:
                return data[attr]
            return data.get(_KEY_MAP[attr])

        raw_types = pick("reward_types")
        reward_types = (
            parse_reward_types(raw_types) if raw_types is not None else list(base.reward_types)
        )
        return cls(
            gold_threshold=coerce_number(pick("gold_threshold"), base.gold_threshold),
            platinum_after_days=coerce_int(pick("platinum_after_days"), base.platinum_after_days),
            cooldown_days=coerce_int(pick("cooldown_days"), base.cooldown_days),
            max_active_bookings=coerce_int(pick("max_active_bookings"), base.max_active_bookings),
            tech_block_consecutive=coerce_int(
                pick("tech_block_consecutive"), base.tech_block_consecutive
            ),
            tech_block_total=coerce_int(pick("tech_block_total"), base.tech_block_total),
            hotel_tech_block_total=coerce_int(
                pick("hotel_tech_block_total"), base.hotel_tech_block_total
            ),
            reward_days_booking=coerce_int(pick("reward_days_booking"), base.reward_days_booking),
            reward_days_other=coerce_int(pick("reward_days_other"), base.reward_days_other),
            reward_types=reward_types or default_reward_types(),
            auto_create_from_import=coerce_bool(
                pick("auto_create_from_import"), base.auto_create_from_import
            ),
            auto_write_tech_blocks=coerce_bool(
                pick("auto_write_tech_blocks"), base.auto_write_tech_blocks
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "reward_types":
                value = [rt.to_dict() for rt in value]
            out[_KEY_MAP[f.name]] = value
        return out

    def find_reward_type(self, name: str | None) -> RewardType | None:
        key = safe_lower(name)
        for rt in self.reward_types:
            if safe_lower(rt.name) == key:
                return rt
        return None

    def reward_days_for(self, reward_type: str | None) -> int:
        """Days from check-out until a reward of this type becomes payable."""
        resolved = normalize_reward_type(reward_type or DEFAULT_REWARD_TYPE, self.reward_types)
        match = self.find_reward_type(resolved)
        if match is not None:
            return match.days
        if resolved == DEFAULT_REWARD_TYPE:
            return self.reward_days_booking
        return self.reward_days_other


def parse_reward_types(raw: Any) -> list[RewardType]:
    """Validate a reward_types list of {name, days} mappings."""
    if not isinstance(raw, list):
        raise SettingsValidationError("'reward_types' must be a list of {name, days} entries.")
    out: list[RewardType] = []
    seen: set[str] = set()
    for idx, item in enumerate(raw):
        if isinstance(item, RewardType):
            name, days = item.name, item.days
        elif isinstance(item, dict):
            name = str(item.get("name") or "").strip()
            days = coerce_int(item.get("days"), 0)
        else:
            raise SettingsValidationError(f"reward_types[{idx}] must be a mapping.")
        if not name:
            raise SettingsValidationError(f"reward_types[{idx}] has no name.")
        if name.lower() in seen:
            continue
        seen.add(name.lower())
        out.append(RewardType(name, days))
    return out


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_settings(yaml_path: Path, base: Settings | None = None) -> Settings:
    """Load a YAML settings file on top of ``base`` (or the defaults).

    Raises:
        SettingsValidationError: If the YAML root is not a mapping or
            reward_types is malformed.
        FileNotFoundError: If the YAML file does not exist.
    """
    raw = yaml_path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise SettingsValidationError("YAML root must be a mapping.")
    return Settings.from_dict(data, base=base)

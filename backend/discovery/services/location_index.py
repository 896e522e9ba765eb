from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path

from ..config import settings


class LocationScope(str, Enum):
    BROAD = "broad"
    SPECIFIC = "specific"
    NONE = "none"


@dataclass(frozen=True)
class RegionEntry:
    state: str
    state_code: str
    cities: tuple[str, ...]


@dataclass(frozen=True)
class LocationIndex:
    """Read-only set of known administrative regions (state -> cities)."""

    regions: tuple[RegionEntry, ...]
    country_name: str
    known_states: frozenset[str]
    known_places: frozenset[str]

    @classmethod
    def from_entries(cls, entries: list[dict], country_name: str) -> "LocationIndex":
        regions: list[RegionEntry] = []
        for row in entries:
            if not isinstance(row, dict):
                continue
            state = str(row.get("state") or "").strip()
            if not state:
                continue
            cities = tuple(str(city).strip() for city in row.get("cities") or [] if str(city).strip())
            regions.append(RegionEntry(state=state, state_code=str(row.get("state_code") or ""), cities=cities))

        states = frozenset(region.state.lower() for region in regions)
        places = set(states)
        for region in regions:
            places.update(city.lower() for city in region.cities)
        return cls(
            regions=tuple(regions),
            country_name=country_name,
            known_states=states,
            known_places=frozenset(places),
        )

    @classmethod
    def load(cls, path: Path, country_name: str) -> "LocationIndex":
        payload = json.loads(path.read_text(encoding="utf-8"))
        return cls.from_entries(payload if isinstance(payload, list) else [], country_name)

    def is_known_location(self, text: str | None) -> bool:
        if not text:
            return False
        clean = text.strip().lower()
        if clean in self.known_places or clean == self.country_name.lower():
            return True
        return any(part.strip() in self.known_places for part in clean.split(","))

    def classify(self, text: str | None) -> LocationScope:
        if not text or not text.strip():
            return LocationScope.NONE
        clean = text.strip().lower()
        if clean in self.known_states or clean == self.country_name.lower():
            return LocationScope.BROAD
        return LocationScope.SPECIFIC

    def match_cities(self, text: str, limit: int) -> list[tuple[str, str]]:
        needle = text.strip().lower()
        matches: list[tuple[str, str]] = []
        for region in self.regions:
            for city in region.cities:
                if needle in city.lower():
                    matches.append((city, region.state))
                    if len(matches) >= limit:
                        return matches
        return matches

    def directory(self, search: str = "", state: str = "") -> list[RegionEntry]:
        normalized_search = search.strip().lower()
        normalized_state = state.strip().lower()
        output: list[RegionEntry] = []
        for region in self.regions:
            state_lower = region.state.lower()
            if normalized_state and normalized_state not in state_lower:
                continue
            if normalized_search:
                cities = tuple(
                    city for city in region.cities if normalized_search in city.lower() or normalized_search in state_lower
                )
            else:
                cities = region.cities
            if not cities:
                continue
            output.append(RegionEntry(state=region.state, state_code=region.state_code, cities=cities))
        return output


@lru_cache(maxsize=1)
def get_location_index() -> LocationIndex:
    return LocationIndex.load(settings.locations_path, settings.country_name)

"""Pure state operations on the archive: cities, selection, checked flags."""

from dataclasses import replace

from haakweer.models.archive import ArchiveState, City, DailyRecord
from haakweer.models.common import CheckedFlag


def find_city(state: ArchiveState, city_id: str) -> City | None:
    for city in state.cities:
        if city.id == city_id:
            return city
    return None


def selected_city(state: ArchiveState) -> City | None:
    if state.selected_city_id is None:
        return None
    return find_city(state, state.selected_city_id)


def ensure_valid_selection(state: ArchiveState) -> ArchiveState:
    """Select the first city when the current selection is missing or unknown."""
    if not state.cities or selected_city(state) is not None:
        return state
    return replace(state, selected_city_id=state.cities[0].id)


def add_city(state: ArchiveState, city: City) -> tuple[ArchiveState, bool]:
    """Append and select `city`. An already-known id is only selected.

    Returns the new state and whether the city was added.
    """
    if find_city(state, city.id) is not None:
        return replace(state, selected_city_id=city.id), False
    return replace(state, cities=state.cities + (city,), selected_city_id=city.id), True


def delete_city(state: ArchiveState, city_id: str) -> ArchiveState:
    """Remove a city. If it was selected, select its neighbour."""
    ids = [c.id for c in state.cities]
    if city_id not in ids:
        raise KeyError(f"Unknown city: {city_id}")

    idx = ids.index(city_id)
    cities = tuple(c for c in state.cities if c.id != city_id)

    selected_id = state.selected_city_id
    if selected_id == city_id:
        if idx < len(cities):
            selected_id = cities[idx].id
        elif cities:
            selected_id = cities[idx - 1].id
        else:
            selected_id = None

    return replace(state, cities=cities, selected_city_id=selected_id)


def select_city(state: ArchiveState, city_id: str) -> ArchiveState:
    if find_city(state, city_id) is None:
        raise KeyError(f"Unknown city: {city_id}")
    return replace(state, selected_city_id=city_id)


def replace_city(state: ArchiveState, city: City) -> ArchiveState:
    """Swap in an updated snapshot of an existing city."""
    if find_city(state, city.id) is None:
        raise KeyError(f"Unknown city: {city.id}")
    cities = tuple(city if c.id == city.id else c for c in state.cities)
    return replace(state, cities=cities)


def toggle_checked(state: ArchiveState, city_id: str, date: str) -> tuple[ArchiveState, DailyRecord]:
    """Flip the checked flag of one stored day. Returns the new state and day."""
    city = find_city(state, city_id)
    if city is None:
        raise KeyError(f"Unknown city: {city_id}")

    toggled: DailyRecord | None = None
    days = []
    for day in city.days:
        if day.date == date:
            flag = CheckedFlag.NO if day.checked == CheckedFlag.YES else CheckedFlag.YES
            day = replace(day, checked=flag)
            toggled = day
        days.append(day)

    if toggled is None:
        raise KeyError(f"No stored day {date} for {city_id}")

    return replace_city(state, replace(city, days=tuple(days))), toggled

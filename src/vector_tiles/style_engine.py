"""Layered style and visibility resolution for vector tile features.

A feature's final style is built from four rule sets, lowest priority first:

1. the base style table passed at construction time, keyed by property name
   and property value,
2. property style overrides added with :meth:`StyleEngine.restyle_by_property`,
3. per-feature style overrides keyed by feature id.

Visibility defaults to ``True``, is overwritten by the last matching property
visibility rule and finally by a per-feature visibility rule.  Properties are
scanned in sorted name order so the "last matching rule" is deterministic.

Rule tables accept arbitrary keys so overrides can be registered before the
tile that contains the matching features has loaded.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Hashable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import StyleLoadError

_LOGGER = logging.getLogger(__name__)

StyleTable = Mapping[str, Mapping[Any, Mapping[str, Any]]]


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one feature against the current rule state."""

    style: Dict[str, Any]
    visible: bool


def _rule_key(value: Any) -> Any:
    """Return the key a rule for ``value`` is stored under.

    Booleans are stored under their JSON spelling because ``True`` hashes and
    compares equal to ``1``.
    """

    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _key_variants(value: Any) -> tuple[Hashable, ...]:
    """Return the table keys that ``value`` may be stored under.

    Style tables loaded from JSON only have string keys, so scalar property
    values also match their JSON spelling (``3`` matches ``"3"``, ``True``
    matches ``"true"``).  Booleans match their spelling only.
    """

    if not isinstance(value, Hashable):
        return ()
    if isinstance(value, str) or value is None:
        return (value,)
    if isinstance(value, bool):
        return (_rule_key(value),)
    if isinstance(value, (int, float)):
        return (value, str(value))
    return (value,)


def _lookup(table: Mapping[str, Mapping[Any, Any]], prop: str, value: Any) -> Any:
    values = table.get(prop)
    if not values:
        return None
    for key in _key_variants(value):
        if key in values:
            return values[key]
    return None


def property_matches(properties: Mapping[str, Any], prop: str, value: Any) -> bool:
    """Return ``True`` when ``properties[prop]`` selects the rule keyed by ``value``."""

    if prop not in properties:
        return False
    return _rule_key(value) in _key_variants(properties[prop])


class StyleEngine:
    """Own the override tables of a single layer and resolve features against them."""

    def __init__(self, base_style: Optional[StyleTable] = None) -> None:
        self._base_style: Dict[str, Dict[Any, Dict[str, Any]]] = {
            prop: {_rule_key(value): dict(style) for value, style in values.items()}
            for prop, values in (base_style or {}).items()
        }
        self._property_styles: Dict[str, Dict[Any, Dict[str, Any]]] = {}
        self._property_visibility: Dict[str, Dict[Any, bool]] = {}
        self._feature_styles: Dict[str, Dict[str, Any]] = {}
        self._feature_visibility: Dict[str, bool] = {}

    # ------------------------------------------------------------------
    def resolve(self, properties: Mapping[str, Any] | None, feature_id: str) -> Resolution:
        """Return the style and on-map state for a feature."""

        properties = properties or {}
        style: Dict[str, Any] = {}
        visible = True

        for prop in sorted(properties):
            value = properties[prop]

            base = _lookup(self._base_style, prop, value)
            if base:
                style.update(base)

            override = _lookup(self._property_styles, prop, value)
            if override:
                style.update(override)

            toggle = _lookup(self._property_visibility, prop, value)
            if toggle is not None:
                visible = toggle

        if feature_id in self._feature_styles:
            style.update(self._feature_styles[feature_id])

        if feature_id in self._feature_visibility:
            visible = self._feature_visibility[feature_id]

        return Resolution(style=style, visible=visible)

    # ------------------------------------------------------------------
    def restyle_by_property(self, prop: str, value: Any, style: Mapping[str, Any]) -> None:
        """Merge ``style`` into the override for features with ``prop == value``."""

        self._property_styles.setdefault(prop, {}).setdefault(_rule_key(value), {}).update(style)

    # ------------------------------------------------------------------
    def set_property_visibility(self, prop: str, value: Any, visible: bool) -> bool:
        """Record a property visibility rule; return ``True`` when it changed."""

        values = self._property_visibility.setdefault(prop, {})
        changed = values.get(_rule_key(value)) is not bool(visible)
        values[_rule_key(value)] = bool(visible)
        return changed

    # ------------------------------------------------------------------
    def set_feature_style(self, feature_id: str, style: Mapping[str, Any]) -> None:
        """Replace the per-feature style override of ``feature_id``."""

        self._feature_styles[feature_id] = dict(style)

    # ------------------------------------------------------------------
    def reset_feature_style(self, feature_id: str) -> bool:
        """Drop the per-feature style override; return ``True`` if one existed."""

        return self._feature_styles.pop(feature_id, None) is not None

    # ------------------------------------------------------------------
    def set_feature_visibility(self, feature_id: str, visible: bool) -> bool:
        """Record a per-feature visibility rule; return ``True`` when it changed."""

        changed = self._feature_visibility.get(feature_id) is not bool(visible)
        self._feature_visibility[feature_id] = bool(visible)
        return changed

    # ------------------------------------------------------------------
    def feature_style(self, feature_id: str) -> Dict[str, Any] | None:
        style = self._feature_styles.get(feature_id)
        return dict(style) if style is not None else None

    # ------------------------------------------------------------------
    def property_visibility(self, prop: str, value: Any) -> bool | None:
        return self._property_visibility.get(prop, {}).get(_rule_key(value))

    # ------------------------------------------------------------------
    def clear(self) -> None:
        """Forget every override; the base style table is kept."""

        self._property_styles.clear()
        self._property_visibility.clear()
        self._feature_styles.clear()
        self._feature_visibility.clear()


def load_style_table(path: Path | str) -> Dict[str, Dict[str, Dict[str, Any]]]:
    """Read a ``{property: {value: style}}`` table from a JSON file."""

    style_path = Path(path)
    try:
        raw_data = style_path.read_text(encoding="utf8")
    except OSError as exc:
        raise StyleLoadError(f"Unable to read style file '{style_path}'") from exc

    try:
        table = json.loads(raw_data)
    except json.JSONDecodeError as exc:
        raise StyleLoadError(f"Style file '{style_path}' is not valid JSON") from exc

    if not isinstance(table, dict):
        raise StyleLoadError(f"Style file '{style_path}' must contain an object")
    for prop, values in table.items():
        if not isinstance(values, dict) or not all(isinstance(style, dict) for style in values.values()):
            raise StyleLoadError(
                f"Style entry '{prop}' in '{style_path}' must map property values to style objects"
            )

    _LOGGER.debug("Loaded style table with %d properties from %s", len(table), style_path)
    return table


__all__ = [
    "Resolution",
    "StyleEngine",
    "StyleTable",
    "load_style_table",
    "property_matches",
]

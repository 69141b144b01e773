import math
from collections.abc import Mapping

QUARTER_TURNS = (0, 90, 180, 270)

CATALOG_HEADER_ALIASES = {
    "id": ("id", "effect_id", "Effect ID"),
    "name": ("name", "Name", "Effect Name"),
    "width_mm": ("width_mm", "Width (mm)", "Width"),
    "height_mm": ("height_mm", "Height (mm)", "Height", "Depth (mm)"),
}


def _coerce_float(value, default=0.0):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def coerce_rotation(value):
    """Map mixed UI/import values onto a quarter turn; junk becomes 0."""
    degrees = _coerce_float(value, default=None)
    if degrees is None or not math.isfinite(degrees):
        return 0
    return int(round(degrees / 90.0)) * 90 % 360


def _first_present(row, keys):
    for key in keys:
        value = row.get(key)
        if value is not None and value != "":
            return value
    return None


def _records(value, what):
    if value is None:
        return []
    if isinstance(value, (str, bytes, Mapping)) or not hasattr(value, "__iter__"):
        raise ValueError(f"{what} must be a list of records")
    records = list(value)
    for record in records:
        if not isinstance(record, Mapping):
            raise ValueError(f"{what} entries must be objects, got {type(record).__name__}")
    return records


def normalize_effect_catalog(rows):
    catalog = []
    for i, raw in enumerate(_records(rows, "Effect catalog")):
        row = dict(raw)
        width = _coerce_float(_first_present(row, CATALOG_HEADER_ALIASES["width_mm"]), default=0.0)
        height = _coerce_float(_first_present(row, CATALOG_HEADER_ALIASES["height_mm"]), default=0.0)
        if not (width > 0 and height > 0):
            continue
        effect_id = _first_present(row, CATALOG_HEADER_ALIASES["id"])
        name = _first_present(row, CATALOG_HEADER_ALIASES["name"])
        catalog.append({
            "id": str(effect_id) if effect_id is not None else f"effect-{i + 1}",
            "name": str(name) if name is not None else "Effect",
            "width_mm": width,
            "height_mm": height,
        })
    return catalog


def catalog_by_id(catalog):
    return {effect["id"]: effect for effect in normalize_effect_catalog(catalog)}


def normalize_layout_data(data):
    if data is not None and not isinstance(data, Mapping):
        raise ValueError("Layout data must be an object")
    effects = []
    for raw in _records((data or {}).get("effects"), "Layout effects"):
        effect_id = raw.get("effect_id")
        if effect_id is None or effect_id == "":
            continue
        effects.append({
            "effect_id": str(effect_id),
            "x": _coerce_float(raw.get("x", 0.0)),
            "y": _coerce_float(raw.get("y", 0.0)),
            "rotation": coerce_rotation(raw.get("rotation", 0)),
        })
    return {"effects": effects}


def _char_width(text):
    return float(len(text))


def truncate_label(label, max_width, measure=None):
    measure = measure or _char_width
    display = str(label)
    if measure(display) <= max_width:
        return display
    while measure(display + "...") > max_width and len(display) > 1:
        display = display[:-1]
    return display + "..."

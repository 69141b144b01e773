import logging
from copy import deepcopy

from coordinates import (
    PlacedRect,
    center_effect,
    check_bounds,
    check_overlap,
    clamp_to_bounds_with_rotation,
    effective_size,
    find_optimal_position,
    snap_to_grid_enhanced,
)
from layout_utils import QUARTER_TURNS, catalog_by_id, normalize_layout_data

logger = logging.getLogger(__name__)

GRID_SIZES = (1, 5, 10)
DEFAULT_GRID_SIZE = 5
DISPLAY_GRID_MM = 10
MM_TO_PX_RATIO = 0.8

DEFAULT_ZOOM = 1.0
MIN_ZOOM = 0.3
MAX_ZOOM = 2.0
ZOOM_STEP = 0.1


def step_zoom(zoom, direction):
    if direction == 0:
        return DEFAULT_ZOOM
    stepped = round(zoom + ZOOM_STEP * (1 if direction > 0 else -1), 2)
    return max(MIN_ZOOM, min(stepped, MAX_ZOOM))


def engine_scale(zoom):
    return MM_TO_PX_RATIO * zoom


def _board_size(board):
    return float(board["width_mm"]), float(board["height_mm"])


def find_entry(layout_data, effect_id):
    for entry in layout_data["effects"]:
        if entry["effect_id"] == effect_id:
            return entry
    return None


def placed_items(layout_data, catalog):
    effects = catalog_by_id(catalog)
    items = []
    for entry in normalize_layout_data(layout_data)["effects"]:
        effect = effects.get(entry["effect_id"])
        if effect is None:
            continue
        items.append(PlacedRect(
            x=entry["x"],
            y=entry["y"],
            width_mm=effect["width_mm"],
            height_mm=effect["height_mm"],
            rotation=entry["rotation"],
            item_id=entry["effect_id"],
            label=effect["name"],
        ))
    return items


def available_effects(layout_data, catalog):
    placed_ids = {entry["effect_id"] for entry in normalize_layout_data(layout_data)["effects"]}
    return [effect for effect in catalog_by_id(catalog).values() if effect["id"] not in placed_ids]


def _others(items, effect_id):
    return [item for item in items if item.item_id != effect_id]


def add_effect(layout_data, board, catalog, effect_id, grid_size=DEFAULT_GRID_SIZE, placement="center"):
    layout_data = normalize_layout_data(layout_data)
    effect = catalog_by_id(catalog).get(effect_id)
    if effect is None:
        return layout_data, False, "Effect not found"
    if find_entry(layout_data, effect_id) is not None:
        return layout_data, False, f"{effect['name']} is already placed on the board."

    board_w, board_h = _board_size(board)
    items = placed_items(layout_data, catalog)
    position = None
    if placement == "center":
        centered = center_effect(effect["width_mm"], effect["height_mm"], board_w, board_h)
        candidate = {"x": max(0, centered["x"]), "y": max(0, centered["y"])}
        if check_bounds(candidate["x"], candidate["y"], effect["width_mm"], effect["height_mm"], board_w, board_h) and not check_overlap(
            candidate["x"], candidate["y"], effect["width_mm"], effect["height_mm"], items
        ):
            position = candidate
    if position is None:
        position = find_optimal_position(effect["width_mm"], effect["height_mm"], board_w, board_h, items, grid_size)
    if position is None:
        logger.info("No free slot for %s on %sx%s board", effect_id, board_w, board_h)
        return layout_data, False, f"No free space for {effect['name']}."

    new_layout = deepcopy(layout_data)
    new_layout["effects"].append({
        "effect_id": effect_id,
        "x": float(position["x"]),
        "y": float(position["y"]),
        "rotation": 0,
    })
    return new_layout, True, "Added"


def remove_effect(layout_data, effect_id):
    layout_data = normalize_layout_data(layout_data)
    if find_entry(layout_data, effect_id) is None:
        return layout_data, False, "Effect not found"
    new_layout = deepcopy(layout_data)
    new_layout["effects"] = [e for e in new_layout["effects"] if e["effect_id"] != effect_id]
    return new_layout, True, "Removed"


def move_effect_to(layout_data, board, catalog, effect_id, x, y, snap_enabled=False, grid_size=DEFAULT_GRID_SIZE):
    layout_data = normalize_layout_data(layout_data)
    items = placed_items(layout_data, catalog)
    item = next((i for i in items if i.item_id == effect_id), None)
    if item is None:
        return layout_data, False, "Effect not found"

    board_w, board_h = _board_size(board)
    target = None
    if snap_enabled:
        snapped = snap_to_grid_enhanced(
            x,
            y,
            grid_size,
            {"width": item.width_mm, "height": item.height_mm},
            {"width": board_w, "height": board_h},
            item.rotation,
        )
        if snapped["snapped"]:
            target = snapped
    if target is None:
        target = clamp_to_bounds_with_rotation(x, y, item.width_mm, item.height_mm, board_w, board_h, item.rotation)

    if check_overlap(target["x"], target["y"], item.width_mm, item.height_mm, _others(items, effect_id), item.rotation):
        logger.debug("Move of %s to (%.1f, %.1f) rejected: overlap", effect_id, target["x"], target["y"])
        return layout_data, False, f"{item.label} would overlap another effect."

    new_layout = deepcopy(layout_data)
    entry = find_entry(new_layout, effect_id)
    entry["x"] = float(target["x"])
    entry["y"] = float(target["y"])
    return new_layout, True, "Moved"


def move_effect_by(layout_data, board, catalog, effect_id, dx, dy, snap_enabled=False, grid_size=DEFAULT_GRID_SIZE):
    layout_data = normalize_layout_data(layout_data)
    entry = find_entry(layout_data, effect_id)
    if entry is None:
        return layout_data, False, "Effect not found"
    return move_effect_to(layout_data, board, catalog, effect_id, entry["x"] + dx, entry["y"] + dy, snap_enabled, grid_size)


def rotate_effect(layout_data, board, catalog, effect_id):
    layout_data = normalize_layout_data(layout_data)
    items = placed_items(layout_data, catalog)
    item = next((i for i in items if i.item_id == effect_id), None)
    if item is None:
        return layout_data, False, "Effect not found"

    rotation = (item.rotation + 90) % 360
    board_w, board_h = _board_size(board)
    target = clamp_to_bounds_with_rotation(item.x, item.y, item.width_mm, item.height_mm, board_w, board_h, rotation)
    if not check_bounds(target["x"], target["y"], item.width_mm, item.height_mm, board_w, board_h, rotation):
        return layout_data, False, f"{item.label} does not fit on the board at {rotation}°."
    if check_overlap(target["x"], target["y"], item.width_mm, item.height_mm, _others(items, effect_id), rotation):
        logger.debug("Rotation of %s to %s rejected: overlap", effect_id, rotation)
        return layout_data, False, f"Rotating {item.label} would overlap another effect."

    new_layout = deepcopy(layout_data)
    entry = find_entry(new_layout, effect_id)
    entry["x"] = float(target["x"])
    entry["y"] = float(target["y"])
    entry["rotation"] = rotation
    return new_layout, True, "Rotated"


def apply_pointer_update(layout_data, update):
    layout_data = normalize_layout_data(layout_data)
    if not update or update.get("rejected") or find_entry(layout_data, update["item_id"]) is None:
        return layout_data
    new_layout = deepcopy(layout_data)
    entry = find_entry(new_layout, update["item_id"])
    entry["x"] = float(update["x"])
    entry["y"] = float(update["y"])
    return new_layout


def validate_layout(layout_data, board, catalog):
    board_w, board_h = _board_size(board)
    items = placed_items(layout_data, catalog)
    problems = []
    for entry in (layout_data or {}).get("effects") or []:
        if entry.get("rotation", 0) not in QUARTER_TURNS:
            problems.append(f"{entry.get('effect_id')}: rotation {entry.get('rotation')} is not a quarter turn.")
    for i, item in enumerate(items):
        if not check_bounds(item.x, item.y, item.width_mm, item.height_mm, board_w, board_h, item.rotation):
            problems.append(f"{item.label}: outside the board.")
        for other in items[i + 1:]:
            if check_overlap(item.x, item.y, item.width_mm, item.height_mm, [other], item.rotation):
                problems.append(f"{item.label}: overlaps {other.label}.")
    return problems


def footprint(item):
    """Axis-aligned occupied box (x, y, w, h) of a placed item in mm."""
    w, h = effective_size(item.width_mm, item.height_mm, item.rotation)
    return item.x, item.y, w, h

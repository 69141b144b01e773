from typing import NamedTuple

import numpy as np

MIN_SCALE = 0.1
SCALE_MARGIN_PX = 40


class PlacedRect(NamedTuple):
    x: float
    y: float
    width_mm: float
    height_mm: float
    rotation: int = 0
    item_id: object = None
    label: str = ""


def as_placed_rect(item):
    if isinstance(item, PlacedRect):
        return item
    return PlacedRect(
        x=item["x"],
        y=item["y"],
        width_mm=item["width_mm"],
        height_mm=item["height_mm"],
        rotation=item.get("rotation") or 0,
        item_id=item.get("id", item.get("effect_id")),
        label=item.get("label", ""),
    )


def _divide(numerator, denominator):
    # IEEE semantics: x/0 -> inf, 0/0 -> nan, no ZeroDivisionError.
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.float64(numerator) / np.float64(denominator)


def effective_size(width, height, rotation=0):
    if rotation in (90, 270):
        return height, width
    return width, height


def mm_to_px(mm, scale):
    return mm * scale


def px_to_mm(px, scale):
    return float(_divide(px, scale))


def calculate_scale(container_width_px, content_width_mm, max_scale=2):
    scale = _divide(container_width_px - SCALE_MARGIN_PX, content_width_mm)
    if np.isnan(scale):
        return MIN_SCALE
    return float(max(MIN_SCALE, min(scale, max_scale)))


def snap_to_grid(coord, grid_size):
    """Round half up to the nearest multiple of grid_size (-3 -> -5 on a 5 grid)."""
    with np.errstate(invalid="ignore"):
        steps = np.floor(_divide(coord, grid_size) + 0.5)
        return float(steps * np.float64(grid_size))


def check_bounds(x, y, width, height, container_width, container_height, rotation=0):
    actual_w, actual_h = effective_size(width, height, rotation)
    return (
        x >= 0
        and y >= 0
        and x + actual_w <= container_width
        and y + actual_h <= container_height
    )


def _overlaps(x, y, w, h, other):
    other_w, other_h = effective_size(other.width_mm, other.height_mm, other.rotation)
    return not (
        x + w <= other.x
        or other.x + other_w <= x
        or y + h <= other.y
        or other.y + other_h <= y
    )


def check_overlap(x, y, width, height, existing_items, rotation=0, exclude_index=None):
    actual_w, actual_h = effective_size(width, height, rotation)
    for i, item in enumerate(existing_items):
        if exclude_index is not None and i == exclude_index:
            continue
        if _overlaps(x, y, actual_w, actual_h, as_placed_rect(item)):
            return True
    return False


def snap_to_grid_enhanced(x, y, grid_size, item_size, container_size, rotation=0):
    snapped_x = snap_to_grid(x, grid_size)
    snapped_y = snap_to_grid(y, grid_size)
    if check_bounds(
        snapped_x,
        snapped_y,
        item_size["width"],
        item_size["height"],
        container_size["width"],
        container_size["height"],
        rotation,
    ):
        return {"x": snapped_x, "y": snapped_y, "snapped": True}
    # Caller decides the fallback (usually clamp_to_bounds_with_rotation).
    return {"x": x, "y": y, "snapped": False}


def find_optimal_position(
    item_width,
    item_height,
    container_width,
    container_height,
    existing_items,
    grid_size=5,
    rotation=0,
):
    """First free slot in a row-major raster scan of the grid lattice.

    The scan only visits multiples of grid_size, so a gap narrower than the
    lattice can be missed. Returns None when nothing fits.
    """
    if not grid_size > 0:
        return None

    existing = [as_placed_rect(item) for item in existing_items]
    y = 0
    while y <= container_height:
        x = 0
        while x <= container_width:
            if check_bounds(x, y, item_width, item_height, container_width, container_height, rotation) and not check_overlap(
                x, y, item_width, item_height, existing, rotation
            ):
                return {"x": x, "y": y}
            x += grid_size
        y += grid_size
    return None


def clamp_to_bounds_with_rotation(x, y, width, height, container_width, container_height, rotation=0):
    actual_w, actual_h = effective_size(width, height, rotation)
    # min before max: an item larger than the container lands on the origin.
    return {
        "x": max(0, min(x, container_width - actual_w)),
        "y": max(0, min(y, container_height - actual_h)),
    }


def get_board_center(width, height):
    return {"x": width / 2, "y": height / 2}


def center_effect(item_width, item_height, container_width, container_height, rotation=0):
    actual_w, actual_h = effective_size(item_width, item_height, rotation)
    return {
        "x": (container_width - actual_w) / 2,
        "y": (container_height - actual_h) / 2,
    }


def calculate_distance(x1, y1, x2, y2):
    return float(np.hypot(x2 - x1, y2 - y1))

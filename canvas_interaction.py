import logging
import math

from coordinates import (
    as_placed_rect,
    check_overlap,
    clamp_to_bounds_with_rotation,
    mm_to_px,
    px_to_mm,
    snap_to_grid_enhanced,
)

logger = logging.getLogger(__name__)

IDLE = "idle"
DRAGGING = "dragging"

DOUBLE_CLICK_MS = 300

# Exact cos/sin for quarter turns.
_QUARTER_TURNS = {
    0: (1.0, 0.0),
    90: (0.0, 1.0),
    180: (-1.0, 0.0),
    270: (0.0, -1.0),
}


def _cos_sin(degrees):
    normalized = degrees % 360
    if normalized in _QUARTER_TURNS:
        return _QUARTER_TURNS[normalized]
    radians = math.radians(normalized)
    return math.cos(radians), math.sin(radians)


def rotate_point(px, py, cx, cy, degrees):
    """Rotate (px, py) about (cx, cy); positive degrees turn clockwise on a y-down screen."""
    cos_a, sin_a = _cos_sin(degrees)
    dx = px - cx
    dy = py - cy
    return cx + dx * cos_a - dy * sin_a, cy + dx * sin_a + dy * cos_a


def hit_test(pointer_x, pointer_y, x, y, width, height, rotation=0):
    """Point-in-rectangle for a rectangle drawn rotated about its own center.

    All values share one coordinate space (normally canvas pixels). The
    pointer is turned back by -rotation about the center, then tested against
    the unrotated box, edges inclusive.
    """
    if rotation % 360:
        pointer_x, pointer_y = rotate_point(pointer_x, pointer_y, x + width / 2, y + height / 2, -rotation)
    return x <= pointer_x <= x + width and y <= pointer_y <= y + height


def drag_offset(pointer_x, pointer_y, x, y, width, height, rotation=0):
    """Grab point in the rectangle's own unrotated frame, relative to its top-left."""
    return rotate_point(pointer_x - x, pointer_y - y, width / 2, height / 2, -rotation)


def drag_anchor(pointer_x, pointer_y, offset_x, offset_y, width, height, rotation=0):
    """Top-left that keeps the grabbed point (offset_x, offset_y) under the pointer."""
    screen_dx, screen_dy = rotate_point(offset_x, offset_y, width / 2, height / 2, rotation)
    return pointer_x - screen_dx, pointer_y - screen_dy


def is_double_click(last_press, item_id, time_ms, threshold_ms=DOUBLE_CLICK_MS):
    if not last_press or last_press.get("item_id") != item_id:
        return False
    return 0 <= time_ms - last_press["time_ms"] <= threshold_ms


def idle_state(last_press=None):
    return {"mode": IDLE, "last_press": last_press}


def _px_rect(item, scale):
    return (
        mm_to_px(item.x, scale),
        mm_to_px(item.y, scale),
        mm_to_px(item.width_mm, scale),
        mm_to_px(item.height_mm, scale),
    )


def find_item_at(items, pointer_x, pointer_y, scale):
    """Index of the topmost item under the pointer (last drawn wins), or None."""
    rects = [as_placed_rect(item) for item in items]
    for index in range(len(rects) - 1, -1, -1):
        item = rects[index]
        x, y, w, h = _px_rect(item, scale)
        if hit_test(pointer_x, pointer_y, x, y, w, h, item.rotation):
            return index
    return None


def pointer_down(state, items, pointer_x, pointer_y, scale, time_ms):
    if state.get("mode") == DRAGGING:
        return state, None

    index = find_item_at(items, pointer_x, pointer_y, scale)
    if index is None:
        return idle_state(), {"type": "deselect", "item_id": None}

    item = as_placed_rect(items[index])
    if is_double_click(state.get("last_press"), item.item_id, time_ms):
        logger.debug("Double click on %s, rotating", item.item_id)
        return idle_state(), {"type": "rotate", "item_id": item.item_id}

    x, y, w, h = _px_rect(item, scale)
    offset_x, offset_y = drag_offset(pointer_x, pointer_y, x, y, w, h, item.rotation)
    new_state = {
        "mode": DRAGGING,
        "item_id": item.item_id,
        "offset_x": offset_x,
        "offset_y": offset_y,
        "last_press": {"item_id": item.item_id, "time_ms": time_ms},
    }
    logger.debug("Drag started on %s (offset %.1f, %.1f px)", item.item_id, offset_x, offset_y)
    return new_state, {"type": "select", "item_id": item.item_id}


def pointer_move(
    state,
    items,
    pointer_x,
    pointer_y,
    scale,
    board_width,
    board_height,
    snap_enabled=False,
    grid_size=5,
):
    """Advance a drag. Bounds always hold afterwards; overlap is only enforced with snapping on."""
    if state.get("mode") != DRAGGING:
        return state, None

    rects = [as_placed_rect(item) for item in items]
    index = next((i for i, r in enumerate(rects) if r.item_id == state["item_id"]), None)
    if index is None:
        logger.debug("Dragged item %s vanished, dropping gesture", state["item_id"])
        return idle_state(state.get("last_press")), None

    item = rects[index]
    w_px = mm_to_px(item.width_mm, scale)
    h_px = mm_to_px(item.height_mm, scale)
    anchor_x, anchor_y = drag_anchor(pointer_x, pointer_y, state["offset_x"], state["offset_y"], w_px, h_px, item.rotation)
    x = px_to_mm(anchor_x, scale)
    y = px_to_mm(anchor_y, scale)

    if not snap_enabled:
        clamped = clamp_to_bounds_with_rotation(x, y, item.width_mm, item.height_mm, board_width, board_height, item.rotation)
        return state, {"item_id": item.item_id, "x": clamped["x"], "y": clamped["y"], "snapped": False, "rejected": False}

    candidate = snap_to_grid_enhanced(
        x,
        y,
        grid_size,
        {"width": item.width_mm, "height": item.height_mm},
        {"width": board_width, "height": board_height},
        item.rotation,
    )
    if not candidate["snapped"]:
        candidate.update(clamp_to_bounds_with_rotation(x, y, item.width_mm, item.height_mm, board_width, board_height, item.rotation))

    if check_overlap(candidate["x"], candidate["y"], item.width_mm, item.height_mm, rects, item.rotation, exclude_index=index):
        current = clamp_to_bounds_with_rotation(item.x, item.y, item.width_mm, item.height_mm, board_width, board_height, item.rotation)
        logger.debug("Drag of %s blocked by overlap at (%.1f, %.1f)", item.item_id, candidate["x"], candidate["y"])
        return state, {"item_id": item.item_id, "x": current["x"], "y": current["y"], "snapped": False, "rejected": True}

    return state, {
        "item_id": item.item_id,
        "x": candidate["x"],
        "y": candidate["y"],
        "snapped": candidate["snapped"],
        "rejected": False,
    }


def pointer_up(state):
    return idle_state(state.get("last_press"))


def unread_pointer_events(batch, cursor):
    """Events of a frontend batch not handled yet (oldest first) and the advanced cursor.

    The canvas resends its recent event history on every change, so a fast
    down/up/down/up still reaches pointer_down twice even when reruns
    coalesce. The cursor is {"session", "seq"}; a new frontend session
    restarts the sequence.
    """
    if not isinstance(batch, dict):
        return [], cursor
    session = batch.get("session")
    last_seq = cursor["seq"] if cursor and cursor.get("session") == session else 0
    events = sorted(
        (e for e in batch.get("events") or [] if isinstance(e, dict) and e.get("seq", 0) > last_seq),
        key=lambda e: e["seq"],
    )
    if not events:
        return [], cursor
    return events, {"session": session, "seq": events[-1]["seq"]}

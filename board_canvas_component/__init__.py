import json
from pathlib import Path

import streamlit.components.v1 as components

from canvas_interaction import DRAGGING
from coordinates import mm_to_px
from layout_utils import truncate_label

_FRONTEND_DIR = Path(__file__).parent / "frontend"
_component = components.declare_component("board_canvas", path=str(_FRONTEND_DIR))

LABEL_FONT_PX = 11
# Rough average glyph width of the canvas label font, relative to its size.
_GLYPH_RATIO = 0.6


def _measure_label(text):
    return len(text) * LABEL_FONT_PX * _GLYPH_RATIO


def build_canvas_payload(board, items, scale, grid_pitch_mm, show_grid, selected_id, gesture):
    rows = []
    for item in items:
        width_px = mm_to_px(item.width_mm, scale)
        rows.append({
            "id": item.item_id,
            "x": mm_to_px(item.x, scale),
            "y": mm_to_px(item.y, scale),
            "w": width_px,
            "h": mm_to_px(item.height_mm, scale),
            "rotation": item.rotation,
            "label": truncate_label(item.label, width_px - mm_to_px(2, scale), _measure_label),
            "selected": item.item_id == selected_id,
        })
    return {
        "board": {
            "name": board["name"],
            "w": mm_to_px(board["width_mm"], scale),
            "h": mm_to_px(board["height_mm"], scale),
            "caption": f"{board['name']} ({board['width_mm']:g} x {board['height_mm']:g} mm)",
        },
        "grid_px": mm_to_px(grid_pitch_mm, scale) if show_grid else 0,
        "items": rows,
        "dragging": gesture.get("mode") == DRAGGING,
    }


def board_canvas(board, items, scale, grid_pitch_mm, show_grid, selected_id, gesture, key=None):
    """Draw the board and return the recent pointer history as {session, events: [{type, x, y, t, seq}]} (canvas px)."""
    payload = build_canvas_payload(board, items, scale, grid_pitch_mm, show_grid, selected_id, gesture)
    return _component(data=json.dumps(payload), key=key, default=None)

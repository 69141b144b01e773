import hashlib
import logging

import altair as alt
import matplotlib.patches as patches
import matplotlib.pyplot as plt
import pandas as pd
import streamlit as st
from streamlit_gsheets import GSheetsConnection

from board_canvas_component import board_canvas
from canvas_interaction import idle_state, pointer_down, pointer_move, pointer_up, unread_pointer_events
from coordinates import calculate_scale
from layout_editor import (
    DEFAULT_GRID_SIZE,
    DEFAULT_ZOOM,
    DISPLAY_GRID_MM,
    GRID_SIZES,
    MAX_ZOOM,
    MIN_ZOOM,
    MM_TO_PX_RATIO,
    add_effect,
    apply_pointer_update,
    available_effects,
    engine_scale,
    footprint,
    move_effect_by,
    move_effect_to,
    placed_items,
    remove_effect,
    rotate_effect,
    step_zoom,
    validate_layout,
)
from layout_storage import build_layout_payload, layout_file_to_payload, parse_layout_payload, payload_to_dxf, payload_to_json
from layout_utils import normalize_effect_catalog

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("pedalboard_planner")

# --- PAGE CONFIG ---
st.set_page_config(page_title="Pedalboard Planner", layout="wide")

# --- SESSION STATE ---
if 'effects' not in st.session_state:
    st.session_state['effects'] = []
if 'board' not in st.session_state:
    st.session_state.board = {"id": "board", "name": "My Board", "width_mm": 600.0, "height_mm": 300.0}
if 'layout_data' not in st.session_state:
    st.session_state.layout_data = {"effects": []}
if 'zoom' not in st.session_state:
    st.session_state.zoom = DEFAULT_ZOOM
if 'show_grid' not in st.session_state:
    st.session_state.show_grid = True
if 'snap_enabled' not in st.session_state:
    st.session_state.snap_enabled = True
if 'grid_size' not in st.session_state:
    st.session_state.grid_size = DEFAULT_GRID_SIZE
if 'selected_effect_id' not in st.session_state:
    st.session_state.selected_effect_id = None
if 'gesture' not in st.session_state:
    st.session_state.gesture = idle_state()
if 'pointer_cursor' not in st.session_state:
    st.session_state.pointer_cursor = None
if 'editor_notice' not in st.session_state:
    st.session_state.editor_notice = None
if 'signal_chain_memo' not in st.session_state:
    st.session_state.signal_chain_memo = ""
if 'general_memo' not in st.session_state:
    st.session_state.general_memo = ""


BOARD_PRESETS = {
    "Small (460 x 140)": (460.0, 140.0),
    "Medium (600 x 300)": (600.0, 300.0),
    "Large (810 x 400)": (810.0, 400.0),
}


def apply_pending_loaded_layout():
    pending = st.session_state.pop("pending_loaded_layout", None)
    if pending is None:
        return

    st.session_state.board = pending["board"]
    st.session_state['effects'] = pending["effects"]
    st.session_state.layout_data = pending["layout_data"]
    st.session_state.signal_chain_memo = pending["signal_chain_memo"]
    st.session_state.general_memo = pending["general_memo"]
    st.session_state["loaded_layout_name"] = pending["layout_name"]
    st.session_state.selected_effect_id = None
    st.session_state.gesture = idle_state()


# --- HELPERS ---


def add_catalog_effect(name, width, height):
    effect_id = f"effect-{len(st.session_state['effects']) + 1}"
    existing = {e["id"] for e in st.session_state['effects']}
    while effect_id in existing:
        effect_id += "-1"
    st.session_state['effects'] = normalize_effect_catalog(
        st.session_state['effects'] + [{"id": effect_id, "name": name, "width_mm": width, "height_mm": height}]
    )


def clear_data():
    st.session_state['effects'] = []
    st.session_state.layout_data = {"effects": []}
    st.session_state.selected_effect_id = None
    st.session_state.gesture = idle_state()


def set_notice(ok, msg):
    st.session_state.editor_notice = ("success" if ok else "error", msg)


@st.cache_data(ttl=120)
def load_gsheets_catalog():
    conn = st.connection("gsheets", type=GSheetsConnection)
    return conn.read()


def handle_pointer_events(batch):
    events, st.session_state.pointer_cursor = unread_pointer_events(batch, st.session_state.pointer_cursor)
    handled = False
    for event in events:
        handled = handle_pointer_event(event) or handled
    return handled


def handle_pointer_event(event):
    board = st.session_state.board
    items = placed_items(st.session_state.layout_data, st.session_state['effects'])
    scale = engine_scale(st.session_state.zoom)
    gesture = st.session_state.gesture
    kind = event.get("type")

    if kind == "down":
        gesture, action = pointer_down(gesture, items, event["x"], event["y"], scale, event["t"])
        if action is not None:
            if action["type"] == "rotate":
                st.session_state.layout_data, ok, msg = rotate_effect(
                    st.session_state.layout_data, board, st.session_state['effects'], action["item_id"]
                )
                set_notice(ok, msg)
            st.session_state.selected_effect_id = action["item_id"]
    elif kind == "move":
        gesture, update = pointer_move(
            gesture,
            items,
            event["x"],
            event["y"],
            scale,
            board["width_mm"],
            board["height_mm"],
            snap_enabled=st.session_state.snap_enabled,
            grid_size=st.session_state.grid_size,
        )
        st.session_state.layout_data = apply_pointer_update(st.session_state.layout_data, update)
    elif kind == "up":
        gesture = pointer_up(gesture)
    else:
        logger.warning("Ignoring unknown pointer event type %r", kind)
        return False

    st.session_state.gesture = gesture
    return True


def draw_board_preview(board, items):
    fig, ax = plt.subplots(figsize=(6, 6 * board["height_mm"] / max(board["width_mm"], 1.0)))
    ax.set_xlim(0, board["width_mm"])
    ax.set_ylim(board["height_mm"], 0)
    ax.set_aspect('equal')
    ax.axis('off')
    ax.add_patch(patches.Rectangle((0, 0), board["width_mm"], board["height_mm"], fc='#2D3748', ec='#4A5568'))

    for item in items:
        x, y, w, h = footprint(item)
        fc = '#9F7AEA' if item.item_id == st.session_state.selected_effect_id else '#E2E8F0'
        ax.add_patch(patches.Rectangle((x, y), w, h, fc=fc, ec='#A0AEC0'))
        ax.text(x + w / 2, y + h / 2, f"{item.label}\n{item.rotation}°", ha='center', va='center', fontsize=7)

    st.pyplot(fig)


def draw_selection_chart(board, items, selected_id):
    rows = [
        {
            "effect_id": "__board__",
            "x": 0.0,
            "x2": float(board["width_mm"]),
            "y": 0.0,
            "y2": float(board["height_mm"]),
            "label": board["name"],
            "dims": f"{board['width_mm']:g}x{board['height_mm']:g}",
            "display_color": "#2D3748",
        }
    ]
    for item in items:
        x, y, w, h = footprint(item)
        rows.append({
            "effect_id": item.item_id,
            "x": x,
            "x2": x + w,
            "y": y,
            "y2": y + h,
            "label": item.label,
            "dims": f"{item.width_mm:g}x{item.height_mm:g} @ {item.rotation}°",
            "display_color": "#9F7AEA" if item.item_id == selected_id else "#E2E8F0",
        })

    selector = alt.selection_point(fields=["effect_id"], name="effect_pick")
    chart = (
        alt.Chart(pd.DataFrame(rows))
        .mark_rect(stroke="#A0AEC0")
        .encode(
            x=alt.X("x:Q", scale=alt.Scale(domain=[0, board["width_mm"]]), axis=None),
            x2="x2:Q",
            y=alt.Y("y:Q", scale=alt.Scale(domain=[board["height_mm"], 0]), axis=None),
            y2="y2:Q",
            color=alt.Color("display_color:N", scale=None, legend=None),
            strokeWidth=alt.condition(selector, alt.value(3), alt.value(1)),
            tooltip=["label:N", "dims:N"],
        )
        .add_params(selector)
        .properties(width=600, height=int(600 * board["height_mm"] / max(board["width_mm"], 1.0)))
    )
    event = st.altair_chart(chart, on_select="rerun", selection_mode="effect_pick")

    picked = []
    if isinstance(event, dict):
        picked = event.get("selection", {}).get("effect_pick", [])
    if isinstance(picked, list) and picked:
        return picked[0].get("effect_id")
    return None


apply_pending_loaded_layout()

# --- MAIN PAGE ---
st.title("🎸 Pedalboard Planner")

st.sidebar.header("⚙️ Board Settings")
preset = st.sidebar.selectbox("Board Size", ["Custom"] + list(BOARD_PRESETS), key="board_preset")
if preset in BOARD_PRESETS and st.session_state.get("last_board_preset_applied") != preset:
    st.session_state.board["width_mm"], st.session_state.board["height_mm"] = BOARD_PRESETS[preset]
    st.session_state.last_board_preset_applied = preset
st.session_state.board["name"] = st.sidebar.text_input("Board Name", value=st.session_state.board["name"])
st.session_state.board["width_mm"] = st.sidebar.number_input("Board Width (mm)", min_value=10.0, value=float(st.session_state.board["width_mm"]), step=10.0)
st.session_state.board["height_mm"] = st.sidebar.number_input("Board Height (mm)", min_value=10.0, value=float(st.session_state.board["height_mm"]), step=10.0)

st.sidebar.header("🔍 View")
z1, z2, z3 = st.sidebar.columns(3)
if z1.button("➖"):
    st.session_state.zoom = step_zoom(st.session_state.zoom, -1)
if z2.button(f"{round(st.session_state.zoom * 100)}%"):
    st.session_state.zoom = step_zoom(st.session_state.zoom, 0)
if z3.button("➕"):
    st.session_state.zoom = step_zoom(st.session_state.zoom, 1)
if st.sidebar.button("Fit to width"):
    fit = calculate_scale(1200, st.session_state.board["width_mm"], max_scale=MAX_ZOOM * MM_TO_PX_RATIO)
    st.session_state.zoom = max(MIN_ZOOM, min(round(fit / MM_TO_PX_RATIO, 1), MAX_ZOOM))
st.sidebar.checkbox("Show grid", key="show_grid")
st.sidebar.checkbox("Snap to grid", key="snap_enabled")
if st.session_state.snap_enabled:
    st.sidebar.selectbox("Grid size (mm)", GRID_SIZES, key="grid_size")

effects_tab, editor_tab, files_tab = st.tabs(["1️⃣ Effects", "2️⃣ Board Editor", "3️⃣ Save / Load"])

with effects_tab:
    st.subheader("Effect Catalog")
    catalog_tabs = st.tabs(["☁️ G-Sheets", "Manual"])

    with catalog_tabs[0]:
        if st.button("🔄 Refresh"):
            st.cache_data.clear()
        try:
            df = load_gsheets_catalog()
            cols = ["Name", "Width (mm)", "Height (mm)"]
            if all(c in df.columns for c in cols):
                rows = df[cols].dropna()
                st.dataframe(rows, hide_index=True)
                if st.button("➕ Import Catalog"):
                    imported = normalize_effect_catalog(rows.to_dict("records"))
                    for effect in imported:
                        add_catalog_effect(effect["name"], effect["width_mm"], effect["height_mm"])
                    st.success(f"Added {len(imported)} effects")
            else:
                st.error(f"Missing headers. Needed: {cols}")
        except Exception as e:
            st.warning(f"Connection error: {e}")

    with catalog_tabs[1]:
        with st.form("add_effect"):
            name = st.text_input("Name", "Overdrive")
            c1, c2 = st.columns(2)
            width = c1.number_input("Width (mm)", min_value=1.0, value=70.0, step=1.0)
            height = c2.number_input("Height (mm)", min_value=1.0, value=120.0, step=1.0)
            if st.form_submit_button("Add"):
                add_catalog_effect(name, width, height)
                st.success("Added")

    if st.session_state['effects']:
        st.write("---")
        st.dataframe(pd.DataFrame(st.session_state['effects']), hide_index=True, width="stretch")
        if st.button("🗑️ Clear All Effects"):
            clear_data()
            st.rerun()

with editor_tab:
    board = st.session_state.board
    catalog = st.session_state['effects']

    notice = st.session_state.pop("editor_notice", None)
    if notice:
        level, msg = notice
        st.toast(msg, icon="⚠️" if level == "error" else "✅")

    palette_col, canvas_col = st.columns([1, 3])
    with palette_col:
        unplaced = available_effects(st.session_state.layout_data, catalog)
        st.markdown(f"#### Available ({len(unplaced)})")
        if not unplaced:
            st.caption("Every effect is on the board.")
        for effect in unplaced:
            a1, a2 = st.columns([3, 1])
            a1.write(f"{effect['name']} ({effect['width_mm']:g}x{effect['height_mm']:g})")
            if a2.button("➕", key=f"add_{effect['id']}"):
                st.session_state.layout_data, ok, msg = add_effect(
                    st.session_state.layout_data, board, catalog, effect["id"], st.session_state.grid_size
                )
                set_notice(ok, msg)
                st.rerun()
        if unplaced and st.button("Auto-place all"):
            for effect in unplaced:
                st.session_state.layout_data, ok, msg = add_effect(
                    st.session_state.layout_data, board, catalog, effect["id"], st.session_state.grid_size, placement="auto"
                )
                if not ok:
                    set_notice(ok, msg)
            st.rerun()

    items = placed_items(st.session_state.layout_data, catalog)
    with canvas_col:
        pointer_batch = board_canvas(
            board,
            items,
            engine_scale(st.session_state.zoom),
            DISPLAY_GRID_MM,
            st.session_state.show_grid,
            st.session_state.selected_effect_id,
            st.session_state.gesture,
            key="board_canvas",
        )
        if handle_pointer_events(pointer_batch):
            st.rerun()
        st.caption("Drag effects on the board. Double-click an effect to rotate it by 90°.")

        problems = validate_layout(st.session_state.layout_data, board, catalog)
        for problem in problems:
            st.warning(problem)

    if items:
        st.markdown(f"#### Placed ({len(items)}/{len(catalog)})")
        clicked = draw_selection_chart(board, items, st.session_state.selected_effect_id)
        if clicked and clicked != st.session_state.selected_effect_id and clicked != "__board__":
            st.session_state.selected_effect_id = clicked
            st.rerun()

        item_ids = [i.item_id for i in items]
        label_map = {i.item_id: f"{i.label} ({i.width_mm:g}x{i.height_mm:g})" for i in items}
        if st.session_state.selected_effect_id not in item_ids:
            st.session_state.selected_effect_id = item_ids[0]
        selected_id = st.selectbox(
            "Effect to move/rotate",
            options=item_ids,
            index=item_ids.index(st.session_state.selected_effect_id),
            format_func=lambda eid: label_map[eid],
        )
        st.session_state.selected_effect_id = selected_id
        selected = next(i for i in items if i.item_id == selected_id)
        st.caption(f"Selected: {selected.label} | X={selected.x:.1f}, Y={selected.y:.1f}, Rotation={selected.rotation}°")

        nudge = st.number_input("Move step (mm)", min_value=1.0, value=float(st.session_state.grid_size), step=1.0)
        c1, c2, c3, c4, c5, c6 = st.columns(6)
        moves = {
            "⬆️ Up": (0, -nudge),
            "⬅️ Left": (-nudge, 0),
            "➡️ Right": (nudge, 0),
            "⬇️ Down": (0, nudge),
        }
        for col, (label, (dx, dy)) in zip((c1, c2, c3, c4), moves.items()):
            if col.button(label):
                st.session_state.layout_data, ok, msg = move_effect_by(
                    st.session_state.layout_data, board, catalog, selected_id, dx, dy,
                    st.session_state.snap_enabled, st.session_state.grid_size,
                )
                set_notice(ok, msg)
                st.rerun()
        if c5.button("🔄 Rotate 90°"):
            st.session_state.layout_data, ok, msg = rotate_effect(st.session_state.layout_data, board, catalog, selected_id)
            set_notice(ok, msg)
            st.rerun()
        if c6.button("🗑️ Remove"):
            st.session_state.layout_data, ok, msg = remove_effect(st.session_state.layout_data, selected_id)
            set_notice(ok, msg)
            st.rerun()

        x_col, y_col, go_col = st.columns([2, 2, 1])
        target_x = x_col.number_input("Target X", value=float(selected.x), step=1.0, key=f"target_x_{selected_id}")
        target_y = y_col.number_input("Target Y", value=float(selected.y), step=1.0, key=f"target_y_{selected_id}")
        if go_col.button("Move"):
            st.session_state.layout_data, ok, msg = move_effect_to(
                st.session_state.layout_data, board, catalog, selected_id, target_x, target_y,
                st.session_state.snap_enabled, st.session_state.grid_size,
            )
            set_notice(ok, msg)
            st.rerun()

with files_tab:
    st.subheader("Save / Load")
    uploaded = st.file_uploader("📂 Load Layout", type=["json", "dxf"], accept_multiple_files=False)

    loaded_layout_name = st.session_state.pop("loaded_layout_name", None)
    if loaded_layout_name:
        st.success(f"Loaded layout: {loaded_layout_name}")

    if uploaded is None:
        st.session_state.pop("last_loaded_layout_signature", None)
    else:
        file_bytes = uploaded.getvalue()
        upload_signature = f"{uploaded.name}:{len(file_bytes)}:{hashlib.md5(file_bytes).hexdigest()}"
        if st.session_state.get("last_loaded_layout_signature") != upload_signature:
            try:
                st.session_state["pending_loaded_layout"] = parse_layout_payload(layout_file_to_payload(uploaded.name, file_bytes))
                st.session_state["last_loaded_layout_signature"] = upload_signature
                st.rerun()
            except ValueError as e:
                st.error(f"Failed to load layout file: {e}")

    st.write("---")
    layout_name = st.text_input("Layout Name", value="My Layout")
    st.text_area("Signal chain memo", key="signal_chain_memo")
    st.text_area("General memo", key="general_memo")
    save_payload = build_layout_payload(
        layout_name,
        st.session_state.board,
        st.session_state['effects'],
        st.session_state.layout_data,
        st.session_state.signal_chain_memo,
        st.session_state.general_memo,
    )
    file_stem = layout_name.strip().replace(' ', '_') or 'layout'
    s1, s2 = st.columns(2)
    s1.download_button("💾 Save JSON", payload_to_json(save_payload), f"{file_stem}.json", "application/json", use_container_width=True)
    s2.download_button("💾 Save DXF Template", payload_to_dxf(save_payload), f"{file_stem}.dxf", "application/dxf", use_container_width=True)

    if placed_items(st.session_state.layout_data, st.session_state['effects']):
        st.markdown("#### Preview")
        draw_board_preview(st.session_state.board, placed_items(st.session_state.layout_data, st.session_state['effects']))

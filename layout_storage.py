import base64
import binascii
import io
import json
import logging
from collections.abc import Mapping
from datetime import datetime, timezone

import ezdxf
from ezdxf.enums import TextEntityAlignment
from ezdxf.lldxf.const import DXFError

from layout_editor import footprint, placed_items
from layout_utils import normalize_effect_catalog, normalize_layout_data

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = 1
DEFAULT_BOARD = {"id": "board", "name": "Board", "width_mm": 600.0, "height_mm": 300.0}

LAYER_BOARD = "BOARD_OUTLINE"
LAYER_EFFECTS = "EFFECT_FOOTPRINTS"
LAYER_LABELS = "LABELS"


def _normalize_board(board):
    board = board or {}
    if not isinstance(board, Mapping):
        raise ValueError("Board must be an object")
    try:
        width = float(board.get("width_mm", DEFAULT_BOARD["width_mm"]))
        height = float(board.get("height_mm", DEFAULT_BOARD["height_mm"]))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Board size is not a number: {exc}") from exc
    return {
        "id": str(board.get("id", DEFAULT_BOARD["id"])),
        "name": str(board.get("name", DEFAULT_BOARD["name"])),
        "width_mm": width,
        "height_mm": height,
    }


def build_layout_payload(layout_name, board, catalog, layout_data, signal_chain_memo="", general_memo=""):
    return {
        "version": PAYLOAD_VERSION,
        "layout_name": layout_name,
        "saved_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "board": _normalize_board(board),
        "effects": normalize_effect_catalog(catalog),
        "layout_data": normalize_layout_data(layout_data),
        "signal_chain_memo": str(signal_chain_memo or ""),
        "general_memo": str(general_memo or ""),
    }


def parse_layout_payload(payload):
    if not isinstance(payload, Mapping):
        raise ValueError(f"Layout payload must be an object, got {type(payload).__name__}")
    return {
        "layout_name": str(payload.get("layout_name", "Untitled")),
        "board": _normalize_board(payload.get("board")),
        "effects": normalize_effect_catalog(payload.get("effects", [])),
        "layout_data": normalize_layout_data(payload.get("layout_data")),
        "signal_chain_memo": str(payload.get("signal_chain_memo") or ""),
        "general_memo": str(payload.get("general_memo") or ""),
    }


def payload_to_json(payload):
    return json.dumps(payload, indent=2)


def json_to_payload(json_bytes):
    try:
        payload = json.loads(json_bytes)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid layout JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Layout JSON must be an object")
    return payload


_DXF_MARKER_BEGIN = "PEDALBOARD_LAYOUT_PAYLOAD_BASE64_BEGIN"
_DXF_MARKER_END = "PEDALBOARD_LAYOUT_PAYLOAD_BASE64_END"


def _rect_points(x, y, w, h):
    return [(x, y), (x + w, y), (x + w, y + h), (x, y + h), (x, y)]


def _layout_drawing(payload):
    parsed = parse_layout_payload(payload)
    board = parsed["board"]
    board_w = board["width_mm"]
    board_h = board["height_mm"]

    doc = ezdxf.new()
    msp = doc.modelspace()
    doc.layers.new(name=LAYER_BOARD, dxfattribs={"color": 1})
    doc.layers.new(name=LAYER_EFFECTS, dxfattribs={"color": 3})
    doc.layers.new(name=LAYER_LABELS, dxfattribs={"color": 7})

    msp.add_lwpolyline(_rect_points(0, 0, board_w, board_h), dxfattribs={"layer": LAYER_BOARD})

    for item in placed_items(parsed["layout_data"], parsed["effects"]):
        x, y, w, h = footprint(item)
        # DXF is y-up, the board is y-down from its top-left corner.
        dxf_y = board_h - y - h
        msp.add_lwpolyline(_rect_points(x, dxf_y, w, h), dxfattribs={"layer": LAYER_EFFECTS})
        msp.add_text(item.label or str(item.item_id), dxfattribs={"layer": LAYER_LABELS, "height": 8}).set_placement(
            (x + w / 2, dxf_y + h / 2), align=TextEntityAlignment.MIDDLE_CENTER
        )

    out = io.StringIO()
    doc.write(out)
    return out.getvalue()


def payload_to_dxf(payload):
    encoded_payload = base64.b64encode(payload_to_json(payload).encode("utf-8")).decode("ascii")
    chunks = [encoded_payload[i:i + 250] for i in range(0, len(encoded_payload), 250)]

    comment_lines = ["999", _DXF_MARKER_BEGIN]
    for chunk in chunks:
        comment_lines.extend(["999", chunk])
    comment_lines.extend(["999", _DXF_MARKER_END])
    return ("\n".join(comment_lines) + "\n" + _layout_drawing(payload)).encode("utf-8")


def _polyline_bbox(points):
    xs = [float(point[0]) for point in points]
    ys = [float(point[1]) for point in points]
    return min(xs), min(ys), max(xs), max(ys)


def _payload_from_dxf_geometry(dxf_bytes):
    dxf_text = dxf_bytes.decode("utf-8", errors="ignore")
    try:
        doc = ezdxf.read(io.StringIO(dxf_text))
    except DXFError as exc:
        raise ValueError(f"Unreadable DXF: {exc}") from exc
    msp = doc.modelspace()

    board = None
    footprints = []
    for entity in msp.query("LWPOLYLINE"):
        layer = (entity.dxf.layer or "").upper()
        points = list(entity.get_points("xy"))
        if len(points) < 4:
            continue
        min_x, min_y, max_x, max_y = _polyline_bbox(points)
        if max_x - min_x <= 0 or max_y - min_y <= 0:
            continue
        if layer == LAYER_BOARD:
            board = (min_x, min_y, max_x, max_y)
        elif layer == LAYER_EFFECTS:
            footprints.append((min_x, min_y, max_x, max_y))

    if board is None:
        raise ValueError("No pedalboard layout metadata or board outline found in DXF")

    board_x, board_y, board_x2, board_y2 = board
    board_h = board_y2 - board_y
    catalog = []
    entries = []
    for i, (min_x, min_y, max_x, max_y) in enumerate(footprints):
        effect_id = f"imported-{i + 1}"
        catalog.append({"id": effect_id, "name": f"Imported Effect {i + 1}", "width_mm": max_x - min_x, "height_mm": max_y - min_y})
        entries.append({
            "effect_id": effect_id,
            "x": min_x - board_x,
            "y": board_h - (max_y - board_y),
            "rotation": 0,
        })
    logger.info("Rebuilt layout from DXF geometry: %d footprint(s)", len(entries))

    return build_layout_payload(
        "Imported DXF Layout",
        {"id": "imported-board", "name": "Imported Board", "width_mm": board_x2 - board_x, "height_mm": board_h},
        catalog,
        {"effects": entries},
    )


def _embedded_payload_lines(dxf_text):
    """Base64 chunks between the payload markers, or None when the DXF carries no payload."""
    lines = dxf_text.splitlines()
    comments = [lines[i + 1].strip() for i in range(0, len(lines) - 1, 2) if lines[i].strip() == "999"]
    try:
        start = comments.index(_DXF_MARKER_BEGIN) + 1
        end = comments.index(_DXF_MARKER_END, start)
    except ValueError:
        return None
    return comments[start:end]


def dxf_to_payload(dxf_bytes):
    try:
        dxf_text = dxf_bytes.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValueError(f"DXF is not UTF-8 text: {exc}") from exc

    chunks = _embedded_payload_lines(dxf_text)
    if chunks is None:
        return _payload_from_dxf_geometry(dxf_bytes)

    try:
        payload_json = base64.b64decode("".join(chunks).encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError(f"Corrupt layout payload in DXF: {exc}") from exc
    return json_to_payload(payload_json)


def layout_file_to_payload(file_name, file_bytes):
    if str(file_name).lower().endswith(".json"):
        return json_to_payload(file_bytes)
    return dxf_to_payload(file_bytes)

import math
import unittest

from coordinates import (
    PlacedRect,
    calculate_distance,
    calculate_scale,
    center_effect,
    check_bounds,
    check_overlap,
    clamp_to_bounds_with_rotation,
    find_optimal_position,
    get_board_center,
    mm_to_px,
    px_to_mm,
    snap_to_grid,
    snap_to_grid_enhanced,
)

BOARD_W = 400
BOARD_H = 300
EFFECT_W = 50
EFFECT_H = 30

EXISTING = [
    {"x": 50, "y": 50, "width_mm": 30, "height_mm": 20, "rotation": 0},
    {"x": 100, "y": 100, "width_mm": 40, "height_mm": 25, "rotation": 90},
    {"x": 200, "y": 150, "width_mm": 35, "height_mm": 30, "rotation": 0},
]


class UnitConversionTests(unittest.TestCase):
    def test_mm_to_px(self):
        self.assertEqual(mm_to_px(100, 2), 200)
        self.assertEqual(mm_to_px(50, 0.5), 25)
        self.assertEqual(mm_to_px(1, 0), 0)
        self.assertEqual(mm_to_px(-1, 1), -1)

    def test_px_to_mm(self):
        self.assertEqual(px_to_mm(200, 2), 100)
        self.assertEqual(px_to_mm(25, 0.5), 50)
        self.assertEqual(px_to_mm(-100, 1), -100)

    def test_px_to_mm_zero_scale_follows_float_division(self):
        self.assertEqual(px_to_mm(100, 0), math.inf)
        self.assertEqual(px_to_mm(-100, 0), -math.inf)
        self.assertTrue(math.isnan(px_to_mm(0, 0)))

    def test_round_trip(self):
        for mm in (0.0, 1.5, 33.3, 812.0, -7.25):
            for scale in (0.3, 0.8, 1.0, 2.0):
                self.assertAlmostEqual(px_to_mm(mm_to_px(mm, scale), scale), mm)

    def test_calculate_scale(self):
        self.assertAlmostEqual(calculate_scale(300, 200, 2), 1.3)
        self.assertAlmostEqual(calculate_scale(600, 400), 1.4)
        self.assertEqual(calculate_scale(500, 200, 2), 2)

    def test_calculate_scale_clamps(self):
        self.assertEqual(calculate_scale(50, 1000, 2), 0.1)
        self.assertEqual(calculate_scale(0, 100, 2), 0.1)
        self.assertEqual(calculate_scale(1000, 100, 1), 1)
        self.assertEqual(calculate_scale(1000, 100, 0.5), 0.5)

    def test_calculate_scale_stays_in_range_for_degenerate_content(self):
        for container in (0, 40, 100, 5000):
            for content in (-10, 0, 1, 400):
                scale = calculate_scale(container, content, 2)
                self.assertGreaterEqual(scale, 0.1)
                self.assertLessEqual(scale, 2)


class GridSnapTests(unittest.TestCase):
    def test_snap_to_grid(self):
        self.assertEqual(snap_to_grid(12, 5), 10)
        self.assertEqual(snap_to_grid(13, 5), 15)
        self.assertEqual(snap_to_grid(7.5, 5), 10)
        self.assertEqual(snap_to_grid(23, 10), 20)
        self.assertEqual(snap_to_grid(25, 10), 30)
        self.assertEqual(snap_to_grid(23, 20), 20)

    def test_snap_to_grid_boundaries(self):
        self.assertEqual(snap_to_grid(0, 5), 0)
        self.assertEqual(snap_to_grid(2.4, 5), 0)
        self.assertEqual(snap_to_grid(2.5, 5), 5)
        self.assertEqual(snap_to_grid(-3, 5), -5)

    def test_snap_to_grid_zero_and_negative_grid(self):
        self.assertTrue(math.isnan(snap_to_grid(10, 0)))
        self.assertEqual(snap_to_grid(10, -5), 10)

    def test_snap_is_idempotent(self):
        for value in (-12.6, -3, 0, 2.5, 7.49, 101.1, 399.9):
            for grid in (1, 5, 10, 2.5):
                once = snap_to_grid(value, grid)
                self.assertEqual(snap_to_grid(once, grid), once)


class BoundsTests(unittest.TestCase):
    def test_inside(self):
        self.assertTrue(check_bounds(0, 0, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H))
        self.assertTrue(check_bounds(200, 150, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H))

    def test_edge_flush_is_legal(self):
        self.assertTrue(check_bounds(350, 270, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H))
        self.assertFalse(check_bounds(351, 270, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H))
        self.assertFalse(check_bounds(350, 271, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H))

    def test_negative_position(self):
        self.assertFalse(check_bounds(-1, 0, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H))
        self.assertFalse(check_bounds(0, -1, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H))

    def test_rotation_swaps_footprint(self):
        self.assertTrue(check_bounds(0, 0, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H, 90))
        self.assertTrue(check_bounds(370, 250, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H, 90))
        self.assertFalse(check_bounds(371, 250, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H, 90))
        self.assertFalse(check_bounds(370, 251, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H, 270))
        self.assertTrue(check_bounds(350, 270, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H, 180))

    def test_rotated_bounds_match_swapped_dimensions(self):
        for x in (0, 200, 350, 371):
            for y in (0, 250, 270, 251):
                self.assertEqual(
                    check_bounds(x, y, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H, 90),
                    check_bounds(x, y, EFFECT_H, EFFECT_W, BOARD_W, BOARD_H, 0),
                )

    def test_zero_size(self):
        self.assertTrue(check_bounds(400, 300, 0, 0, BOARD_W, BOARD_H))
        self.assertFalse(check_bounds(401, 300, 0, 0, BOARD_W, BOARD_H))


class OverlapTests(unittest.TestCase):
    def test_no_overlap(self):
        self.assertFalse(check_overlap(0, 0, 30, 20, EXISTING))
        self.assertFalse(check_overlap(300, 300, 30, 20, EXISTING))
        self.assertFalse(check_overlap(85, 50, 10, 10, EXISTING))

    def test_overlap(self):
        self.assertTrue(check_overlap(60, 60, 30, 20, EXISTING))
        self.assertTrue(check_overlap(110, 110, 20, 20, EXISTING))
        self.assertTrue(check_overlap(210, 160, 20, 15, EXISTING))

    def test_edge_touch_is_not_overlap(self):
        self.assertFalse(check_overlap(80, 50, 20, 20, EXISTING))
        self.assertFalse(check_overlap(50, 70, 30, 20, EXISTING))
        self.assertTrue(check_overlap(79, 50, 20, 20, EXISTING))
        self.assertTrue(check_overlap(50, 69, 30, 20, EXISTING))

    def test_single_item_scenario(self):
        existing = [{"x": 50, "y": 50, "width_mm": 30, "height_mm": 20, "rotation": 0}]
        self.assertTrue(check_overlap(79, 50, 20, 20, existing))
        self.assertFalse(check_overlap(80, 50, 20, 20, existing))

    def test_exclude_index_skips_own_record(self):
        self.assertFalse(check_overlap(50, 50, 30, 20, EXISTING, 0, 0))
        self.assertFalse(check_overlap(100, 100, 40, 25, EXISTING, 90, 1))
        self.assertTrue(check_overlap(50, 50, 30, 20, EXISTING, 0, 1))

    def test_existing_rotation_is_respected(self):
        self.assertTrue(check_overlap(115, 120, 20, 15, EXISTING, 0))
        self.assertFalse(check_overlap(125, 100, 20, 15, EXISTING, 0))

    def test_missing_rotation_defaults_to_zero(self):
        existing = [{"x": 0, "y": 0, "width_mm": 40, "height_mm": 10}]
        self.assertFalse(check_overlap(0, 10, 5, 5, existing))
        self.assertTrue(check_overlap(35, 0, 5, 5, existing))

    def test_accepts_placed_rects(self):
        existing = [PlacedRect(x=0, y=0, width_mm=40, height_mm=10, rotation=90)]
        self.assertTrue(check_overlap(5, 30, 5, 5, existing))
        self.assertFalse(check_overlap(10, 0, 5, 5, existing))

    def test_overlap_is_symmetric(self):
        rects = [(0, 0, 30, 20), (29, 0, 10, 10), (30, 0, 10, 10), (10, 19, 5, 5), (100, 100, 1, 1)]
        for ax, ay, aw, ah in rects:
            for bx, by, bw, bh in rects:
                a_vs_b = check_overlap(ax, ay, aw, ah, [{"x": bx, "y": by, "width_mm": bw, "height_mm": bh}])
                b_vs_a = check_overlap(bx, by, bw, bh, [{"x": ax, "y": ay, "width_mm": aw, "height_mm": ah}])
                self.assertEqual(a_vs_b, b_vs_a)

    def test_does_not_mutate_input(self):
        existing = [dict(e) for e in EXISTING]
        check_overlap(60, 60, 30, 20, existing)
        self.assertEqual(existing, EXISTING)


class EnhancedSnapTests(unittest.TestCase):
    effect_size = {"width": EFFECT_W, "height": EFFECT_H}
    board_size = {"width": BOARD_W, "height": BOARD_H}

    def test_snaps_inside_board(self):
        result = snap_to_grid_enhanced(12, 13, 5, self.effect_size, self.board_size)
        self.assertEqual(result, {"x": 10, "y": 15, "snapped": True})

        result = snap_to_grid_enhanced(347, 267, 5, self.effect_size, self.board_size)
        self.assertEqual(result, {"x": 345, "y": 265, "snapped": True})

    def test_out_of_bounds_returns_original_coordinates(self):
        result = snap_to_grid_enhanced(355, 275, 5, self.effect_size, self.board_size)
        self.assertEqual(result, {"x": 355, "y": 275, "snapped": False})

        result = snap_to_grid_enhanced(-5, -3, 5, self.effect_size, self.board_size)
        self.assertEqual(result, {"x": -5, "y": -3, "snapped": False})

    def test_rotation(self):
        result = snap_to_grid_enhanced(367, 247, 5, self.effect_size, self.board_size, 90)
        self.assertEqual(result, {"x": 365, "y": 245, "snapped": True})


class OptimalPositionTests(unittest.TestCase):
    def test_finds_legal_position(self):
        position = find_optimal_position(20, 15, 400, 300, EXISTING, 5)
        self.assertIsNotNone(position)
        self.assertTrue(check_bounds(position["x"], position["y"], 20, 15, 400, 300))
        self.assertFalse(check_overlap(position["x"], position["y"], 20, 15, EXISTING))

    def test_first_free_slot_in_raster_order(self):
        self.assertEqual(find_optimal_position(5, 5, 20, 15, [], 5), {"x": 0, "y": 0})
        blocker = [{"x": 0, "y": 0, "width_mm": 12, "height_mm": 300, "rotation": 0}]
        self.assertEqual(find_optimal_position(20, 15, 400, 300, blocker, 5), {"x": 15, "y": 0})

    def test_full_board_returns_none(self):
        full = [{"x": 0, "y": 0, "width_mm": 400, "height_mm": 300, "rotation": 0}]
        self.assertIsNone(find_optimal_position(20, 15, 400, 300, full, 5))

    def test_rotation(self):
        position = find_optimal_position(30, 20, 400, 300, EXISTING, 5, 90)
        self.assertIsNotNone(position)
        self.assertTrue(check_bounds(position["x"], position["y"], 30, 20, 400, 300, 90))
        self.assertFalse(check_overlap(position["x"], position["y"], 30, 20, EXISTING, 90))

    def test_results_are_always_legal(self):
        for width, height in ((20, 15), (60, 40), (150, 90), (390, 10)):
            for rotation in (0, 90, 180, 270):
                position = find_optimal_position(width, height, 400, 300, EXISTING, 10, rotation)
                if position is None:
                    continue
                self.assertTrue(check_bounds(position["x"], position["y"], width, height, 400, 300, rotation))
                self.assertFalse(check_overlap(position["x"], position["y"], width, height, EXISTING, rotation))

    def test_item_larger_than_board(self):
        self.assertIsNone(find_optimal_position(500, 10, 400, 300, [], 5))

    def test_non_positive_grid(self):
        self.assertIsNone(find_optimal_position(5, 5, 20, 15, [], 0))
        self.assertIsNone(find_optimal_position(5, 5, 20, 15, [], -5))


class ClampTests(unittest.TestCase):
    def test_inside_is_unchanged(self):
        self.assertEqual(clamp_to_bounds_with_rotation(100, 100, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H), {"x": 100, "y": 100})

    def test_clamps_to_far_edge(self):
        self.assertEqual(clamp_to_bounds_with_rotation(355, 275, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H), {"x": 350, "y": 270})

    def test_clamps_negative(self):
        self.assertEqual(clamp_to_bounds_with_rotation(-10, -5, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H), {"x": 0, "y": 0})

    def test_rotation(self):
        self.assertEqual(clamp_to_bounds_with_rotation(375, 260, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H, 90), {"x": 370, "y": 250})

    def test_oversized_item_lands_on_origin(self):
        self.assertEqual(clamp_to_bounds_with_rotation(100, 100, 500, 400, BOARD_W, BOARD_H), {"x": 0, "y": 0})

    def test_never_escapes_bounds(self):
        for x in (-50, 0, 123.4, 399, 1000):
            for y in (-1, 0, 150, 299, 1e6):
                for rotation in (0, 90, 180, 270):
                    result = clamp_to_bounds_with_rotation(x, y, EFFECT_W, EFFECT_H, BOARD_W, BOARD_H, rotation)
                    self.assertTrue(check_bounds(result["x"], result["y"], EFFECT_W, EFFECT_H, BOARD_W, BOARD_H, rotation))


class CenterAndDistanceTests(unittest.TestCase):
    def test_board_center(self):
        self.assertEqual(get_board_center(400, 300), {"x": 200, "y": 150})
        self.assertEqual(get_board_center(0, 0), {"x": 0, "y": 0})

    def test_center_effect(self):
        self.assertEqual(center_effect(50, 30, 400, 300), {"x": 175, "y": 135})
        self.assertEqual(center_effect(50, 30, 400, 300, 90), {"x": 185, "y": 125})
        self.assertEqual(center_effect(400, 300, 400, 300), {"x": 0, "y": 0})

    def test_center_effect_oversized_goes_negative(self):
        self.assertEqual(center_effect(500, 400, 400, 300), {"x": -50, "y": -50})

    def test_distance(self):
        self.assertEqual(calculate_distance(0, 0, 3, 4), 5)
        self.assertEqual(calculate_distance(0, 0, 0, 0), 0)
        self.assertEqual(calculate_distance(-1, -1, 2, 3), 5)
        self.assertEqual(calculate_distance(-3, -4, 0, 0), 5)
        self.assertAlmostEqual(calculate_distance(-1, 1, 1, -1), 2.83, places=2)


if __name__ == "__main__":
    unittest.main()

"""Tests for ring → feature processing.

Covers:
- Rejection of short, degenerate and self-intersecting rings
- Ring closure and simplification
- Geodesic area and the strict ``> min_area`` threshold
- Identifier assignment only for accepted features
"""

from __future__ import annotations

import pytest
from shapely.geometry import Polygon

from footprint_vectorizer.activities.georeference import ring_to_geo
from footprint_vectorizer.activities.process_rings import (
    build_polygon,
    close_ring,
    compute_geodesic_area_m2,
    process_ring,
    process_rings,
    simplify_polygon,
)
from footprint_vectorizer.core.exceptions import GeometryConstructionError
from footprint_vectorizer.orchestrators.session import IdentifierSequence

SIZE = 100
SQUARE = [(10.0, 10.0), (50.0, 10.0), (50.0, 50.0), (10.0, 50.0)]


def _square_area(bbox) -> float:
    return compute_geodesic_area_m2(close_ring(ring_to_geo(SQUARE, SIZE, SIZE, bbox)))


class TestProcessRing:
    """Single-ring processing."""

    def test_accepts_square(self, tile_bbox) -> None:
        ids = IdentifierSequence()
        feature = process_ring(SQUARE, SIZE, SIZE, tile_bbox, next_id=ids)
        assert feature is not None
        assert feature.feature_id == "footprint_1"
        assert feature.is_closed
        assert feature.vertex_count == 5

    def test_area_is_plausible(self, tile_bbox) -> None:
        """40 px at ~1 m/px is roughly 40 m × 44 m."""
        feature = process_ring(SQUARE, SIZE, SIZE, tile_bbox, next_id=IdentifierSequence())
        assert feature is not None
        assert 1500 < feature.area_m2 < 2100

    def test_area_rounded_to_two_decimals(self, tile_bbox) -> None:
        feature = process_ring(SQUARE, SIZE, SIZE, tile_bbox, next_id=IdentifierSequence())
        assert feature is not None
        assert feature.area_m2 == round(_square_area(tile_bbox), 2)

    def test_coordinates_inside_bbox(self, tile_bbox) -> None:
        feature = process_ring(SQUARE, SIZE, SIZE, tile_bbox, next_id=IdentifierSequence())
        assert feature is not None
        for lon, lat in feature.exterior_coords:
            assert tile_bbox.west <= lon <= tile_bbox.east
            assert tile_bbox.south <= lat <= tile_bbox.north

    def test_two_points_rejected_without_consuming_id(self, tile_bbox) -> None:
        ids = IdentifierSequence()
        assert process_ring([(0, 0), (5, 5)], SIZE, SIZE, tile_bbox, next_id=ids) is None
        assert ids.issued == 0

    def test_bowtie_rejected(self, tile_bbox) -> None:
        bowtie = [(10, 10), (50, 50), (50, 10), (10, 50)]
        assert process_ring(bowtie, SIZE, SIZE, tile_bbox, next_id=IdentifierSequence()) is None

    def test_collinear_ring_rejected(self, tile_bbox) -> None:
        line = [(10, 10), (20, 20), (30, 30)]
        assert process_ring(line, SIZE, SIZE, tile_bbox, next_id=IdentifierSequence()) is None

    def test_already_closed_ring_not_doubled(self, tile_bbox) -> None:
        closed = [*SQUARE, SQUARE[0]]
        feature = process_ring(closed, SIZE, SIZE, tile_bbox, next_id=IdentifierSequence())
        assert feature is not None
        assert feature.vertex_count == 5

    def test_collinear_vertices_simplified_away(self, tile_bbox) -> None:
        staircase = [(float(x), 10.0) for x in range(10, 51)]
        staircase += [(50.0, float(y)) for y in range(11, 51)]
        staircase += [(float(x), 50.0) for x in range(49, 9, -1)]
        staircase += [(10.0, float(y)) for y in range(49, 10, -1)]
        feature = process_ring(staircase, SIZE, SIZE, tile_bbox, next_id=IdentifierSequence())
        assert feature is not None
        assert feature.vertex_count == 5

    def test_below_threshold_rejected(self, tile_bbox) -> None:
        area = _square_area(tile_bbox)
        feature = process_ring(
            SQUARE, SIZE, SIZE, tile_bbox, next_id=IdentifierSequence(), min_area_m2=area + 0.1
        )
        assert feature is None

    def test_above_threshold_accepted(self, tile_bbox) -> None:
        area = _square_area(tile_bbox)
        feature = process_ring(
            SQUARE, SIZE, SIZE, tile_bbox, next_id=IdentifierSequence(), min_area_m2=area - 0.1
        )
        assert feature is not None

    def test_tiny_ring_below_default_threshold(self, tile_bbox) -> None:
        """A 2 × 2 px ring is ~4.4 m², under the 5 m² default."""
        tiny = [(10, 10), (12, 10), (12, 12), (10, 12)]
        assert process_ring(tiny, SIZE, SIZE, tile_bbox, next_id=IdentifierSequence()) is None


class TestProcessRings:
    """Batch processing keeps order and skips failures."""

    def test_mixed_batch(self, tile_bbox) -> None:
        ids = IdentifierSequence()
        rings = [
            SQUARE,
            [(0, 0), (1, 1)],
            [(10, 10), (50, 50), (50, 10), (10, 50)],
            [(60.0, 60.0), (90.0, 60.0), (90.0, 90.0), (60.0, 90.0)],
        ]
        features = process_rings(rings, SIZE, SIZE, tile_bbox, next_id=ids)
        assert [f.feature_id for f in features] == ["footprint_1", "footprint_2"]
        assert ids.issued == 2

    def test_empty_input(self, tile_bbox) -> None:
        assert process_rings([], SIZE, SIZE, tile_bbox, next_id=IdentifierSequence()) == []

    def test_identifiers_unique_across_calls(self, tile_bbox) -> None:
        ids = IdentifierSequence("b")
        first = process_rings([SQUARE], SIZE, SIZE, tile_bbox, next_id=ids)
        second = process_rings([SQUARE], SIZE, SIZE, tile_bbox, next_id=ids)
        assert first[0].feature_id == "b_1"
        assert second[0].feature_id == "b_2"


class TestGeometryHelpers:
    def test_close_ring_appends_first_vertex(self) -> None:
        assert close_ring([(0, 0), (1, 0), (1, 1)]) == [(0, 0), (1, 0), (1, 1), (0, 0)]

    def test_close_ring_leaves_closed_ring(self) -> None:
        ring = [(0, 0), (1, 0), (1, 1), (0, 0)]
        assert close_ring(ring) == ring

    def test_build_polygon_too_short(self) -> None:
        with pytest.raises(GeometryConstructionError):
            build_polygon([(0, 0), (1, 0), (0, 0)])

    def test_build_polygon_self_intersection(self) -> None:
        with pytest.raises(GeometryConstructionError, match="not a simple polygon"):
            build_polygon([(0, 0), (1, 1), (1, 0), (0, 1), (0, 0)])

    def test_simplify_keeps_polygon(self) -> None:
        square = Polygon([(0, 0), (1, 0), (1, 1), (0, 1)])
        assert simplify_polygon(square, 0.01).equals(square)

    def test_simplify_zero_tolerance_is_noop(self) -> None:
        square = Polygon([(0, 0), (1, 0), (1, 1), (0, 1)])
        assert simplify_polygon(square, 0.0).equals(square)

    def test_area_is_orientation_independent(self) -> None:
        ring = [(0.0, 0.0), (0.001, 0.0), (0.001, 0.001), (0.0, 0.001), (0.0, 0.0)]
        assert compute_geodesic_area_m2(ring) == pytest.approx(
            compute_geodesic_area_m2(list(reversed(ring)))
        )

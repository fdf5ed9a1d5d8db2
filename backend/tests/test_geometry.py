import pytest

from medforms.services.field_analysis.geometry import (
    BoundingBox,
    CoordinateUnit,
    GeometryNormalizer,
    PageExtent,
    Region,
)


def quad(x, y, width, height, page=1):
    return Region(page, ((x, y), (x + width, y), (x + width, y + height), (x, y + height)))


class TestBoundingBox:
    def test_derived_properties(self):
        box = BoundingBox(x=10, y=20, width=30, height=40, page_number=1)
        assert box.right == 40
        assert box.bottom == 60
        assert box.center_x == 25
        assert box.center_y == 40
        assert box.area == 1200
        assert box.to_list() == [10, 20, 30, 40]
        assert box.to_dict()["unit"] == "pixel"

    @pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (-1, 5)])
    def test_rejects_non_positive_size(self, width, height):
        with pytest.raises(ValueError):
            BoundingBox(x=0, y=0, width=width, height=height, page_number=1)

    def test_intersection_area(self):
        a = BoundingBox(0, 0, 10, 10, 1)
        b = BoundingBox(5, 5, 10, 10, 1)
        assert a.intersection_area(b) == 25
        assert b.intersection_area(a) == 25

    def test_touching_boxes_do_not_intersect(self):
        a = BoundingBox(0, 0, 10, 10, 1)
        b = BoundingBox(10, 0, 10, 10, 1)
        assert a.intersection_area(b) == 0

    def test_mixed_units_raise(self):
        a = BoundingBox(0, 0, 10, 10, 1, unit=CoordinateUnit.PIXEL)
        b = BoundingBox(0, 0, 10, 10, 1, unit=CoordinateUnit.POINT)
        with pytest.raises(ValueError):
            a.intersection_area(b)


class TestGeometryNormalizer:
    def test_single_region(self):
        geometry = GeometryNormalizer().normalize([quad(1, 1, 2, 1)])
        assert geometry.bounding_box == BoundingBox(1, 1, 2, 1, 1)
        assert geometry.warnings == []

    def test_multiple_regions_are_unioned(self):
        geometry = GeometryNormalizer().normalize([quad(1, 1, 2, 1), quad(4, 3, 1, 1)])
        box = geometry.bounding_box
        assert (box.x, box.y, box.right, box.bottom) == (1, 1, 5, 4)

    def test_region_order_does_not_matter(self):
        regions = [quad(1, 1, 2, 1), quad(4, 3, 1, 1), quad(0, 2, 1, 1)]
        normalizer = GeometryNormalizer(scale=2.5)
        assert normalizer.normalize(regions) == normalizer.normalize(list(reversed(regions)))

    def test_rotated_quad_uses_enclosing_rectangle(self):
        diamond = Region(1, ((2, 0), (4, 2), (2, 4), (0, 2)))
        box = GeometryNormalizer().normalize([diamond]).bounding_box
        assert box.to_list() == [0, 0, 4, 4]

    def test_scale_and_unit(self):
        normalizer = GeometryNormalizer(scale=2.0, unit=CoordinateUnit.POINT)
        box = normalizer.normalize([quad(1, 1, 2, 1)]).bounding_box
        assert box.to_list() == [2, 2, 4, 2]
        assert box.unit == CoordinateUnit.POINT

    @pytest.mark.parametrize("scale", [0.5, 3.0, 96.0])
    def test_scale_linearity(self, scale):
        regions = [quad(1.25, 2.5, 3.0, 0.75), quad(2.0, 3.0, 0.5, 0.5)]
        base = GeometryNormalizer(scale=1.0).normalize(regions).bounding_box
        scaled = GeometryNormalizer(scale=scale).normalize(regions).bounding_box
        assert scaled.x / scale == pytest.approx(base.x)
        assert scaled.y / scale == pytest.approx(base.y)
        assert scaled.width / scale == pytest.approx(base.width)
        assert scaled.height / scale == pytest.approx(base.height)

    def test_degenerate_region_dropped_with_warning(self):
        line = Region(1, ((1, 1), (5, 1), (5, 1), (1, 1)))
        geometry = GeometryNormalizer().normalize([line, quad(0, 0, 1, 1)], field_id="f1")
        assert geometry.bounding_box.to_list() == [0, 0, 1, 1]
        assert len(geometry.warnings) == 1
        assert geometry.warnings[0].startswith("DEGENERATE_REGION: [f1]")

    def test_all_degenerate_is_unpositioned(self):
        line = Region(1, ((1, 1), (1, 1), (1, 5), (1, 5)))
        geometry = GeometryNormalizer().normalize([line], default_page=3)
        assert geometry.bounding_box is None
        assert geometry.page_number == 3
        assert geometry.warnings[-1].startswith("UNPOSITIONED_FIELD")

    def test_no_regions_is_unpositioned(self):
        geometry = GeometryNormalizer().normalize([], default_page=2, field_id="f9")
        assert geometry.bounding_box is None
        assert geometry.page_number == 2
        assert geometry.warnings == ["UNPOSITIONED_FIELD: [f9] no bounding regions supplied"]

    def test_cross_page_field_anchors_on_lowest_page(self):
        geometry = GeometryNormalizer().normalize([quad(1, 1, 1, 1, page=3), quad(5, 5, 1, 1, page=2)])
        assert geometry.page_number == 2
        assert geometry.bounding_box.page_number == 2
        assert geometry.bounding_box.to_list() == [5, 5, 1, 1]
        assert geometry.warnings[0].startswith("CROSS_PAGE_REGION")

    def test_clipped_to_page_extent(self):
        normalizer = GeometryNormalizer(scale=10.0, page_extents={1: PageExtent(8.5, 11)})
        geometry = normalizer.normalize([quad(8.0, 1.0, 1.0, 1.0)])
        box = geometry.bounding_box
        assert box.right == pytest.approx(85.0)
        assert box.width == pytest.approx(5.0)
        assert geometry.warnings[0].startswith("REGION_CLIPPED")

    def test_region_outside_page_degenerates(self):
        normalizer = GeometryNormalizer(page_extents={1: PageExtent(8.5, 11)})
        geometry = normalizer.normalize([quad(9.0, 1.0, 1.0, 1.0)])
        assert geometry.bounding_box is None
        assert geometry.warnings[0].startswith("DEGENERATE_REGION")

    def test_rejects_non_positive_scale(self):
        with pytest.raises(ValueError):
            GeometryNormalizer(scale=0)


@pytest.mark.parametrize("x,y,width,height", [
    (float("inf"), 0, 10, 10),
    (0, float("-inf"), 10, 10),
    (0, 0, float("inf"), 10),
    (0, 0, 10, float("nan")),
])
def test_bounding_box_rejects_non_finite_coordinates(x, y, width, height):
    with pytest.raises(ValueError, match="finite"):
        BoundingBox(x=x, y=y, width=width, height=height, page_number=1)

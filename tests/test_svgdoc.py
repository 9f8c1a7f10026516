"""Tests for SVG primitive access."""

import xml.etree.ElementTree as ET

import pytest

from svgscene_mcp.models import BoundingBox, Point
from svgscene_mcp.svgdoc import (
    SceneParseError,
    SvgDocument,
    anchor_point,
    element_bbox,
    format_points,
    local_name,
    num,
    parse_points,
    parse_transform,
    path_points,
    text_anchor,
)


def _el(markup: str) -> ET.Element:
    return ET.fromstring(markup)


def test_local_name() -> None:
    assert local_name("{http://www.w3.org/2000/svg}rect") == "rect"
    assert local_name("rect") == "rect"


def test_num_reads_leading_number() -> None:
    el = _el('<rect width="12px" height="abc"/>')
    assert num(el, "width") == 12.0
    assert num(el, "height", 7) == 7
    assert num(el, "missing") == 0.0


def test_parse_points_both_separators() -> None:
    assert parse_points("0,0 10,5") == [Point(0, 0), Point(10, 5)]
    assert parse_points("0 0 10 5 20") == [Point(0, 0), Point(10, 5)]
    assert parse_points(None) == []


def test_format_points() -> None:
    assert format_points([Point(1.0, 2.5), Point(-3, 4)]) == "1,2.5 -3,4"


def test_parse_transform() -> None:
    assert parse_transform(None) == (0, 0, 1, 1)
    assert parse_transform("translate(10, 20)") == (10, 20, 1, 1)
    assert parse_transform("translate(5)") == (5, 0, 1, 1)
    assert parse_transform("scale(2) translate(3, 4)") == (6, 8, 2, 2)


def test_path_points_absolute_and_relative() -> None:
    pts = path_points("M10 10 h20 v10 L0 0 Z")
    assert pts == [Point(10, 10), Point(30, 10), Point(30, 20), Point(0, 0), Point(10, 10)]
    assert path_points("m5 5 10 0") == [Point(5, 5), Point(15, 5)]
    assert path_points("") == []


def test_element_bbox_shapes() -> None:
    assert element_bbox(_el('<rect x="1" y="2" width="3" height="4"/>')) == BoundingBox(1, 2, 3, 4)
    assert element_bbox(_el('<circle cx="10" cy="10" r="5"/>')) == BoundingBox(5, 5, 10, 10)
    assert element_bbox(_el('<ellipse cx="10" cy="10" rx="6" ry="2"/>')) == BoundingBox(4, 8, 12, 4)
    assert element_bbox(_el('<polygon points="0,5 5,0 10,5 5,10"/>')) == BoundingBox(0, 0, 10, 10)
    assert element_bbox(_el('<line x1="10" y1="0" x2="0" y2="4"/>')) == BoundingBox(0, 0, 10, 4)
    assert element_bbox(_el('<foo/>')) == BoundingBox(0, 0, 0, 0)


def test_group_bbox_applies_transform() -> None:
    g = _el('<g transform="translate(100, 50)"><rect x="0" y="0" width="10" height="20"/></g>')
    assert element_bbox(g) == BoundingBox(100, 50, 10, 20)
    assert element_bbox(_el("<g/>")) == BoundingBox(0, 0, 0, 0)


def test_text_anchor() -> None:
    assert text_anchor(_el('<text x="4" y="9">a</text>')) == Point(4, 9)
    assert text_anchor(_el('<text x="4">a</text>')) is None
    assert text_anchor(_el('<text x="inf" y="1">a</text>')) is None


def test_anchor_point() -> None:
    assert anchor_point(_el('<line x1="0" y1="0" x2="10" y2="20"/>')) == Point(5, 10)
    assert anchor_point(_el('<rect x="0" y="0" width="10" height="20"/>')) == Point(5, 10)


class TestSvgDocument:
    SVG = """<svg xmlns="http://www.w3.org/2000/svg">
      <defs><marker id="m"><path d="M0 0 L5 5"/></marker></defs>
      <g><rect x="0" y="0" width="10" height="10"/></g>
      <path d="M1 1 L2 2"/>
    </svg>"""

    def test_iter_skips_definitions(self) -> None:
        doc = SvgDocument.from_string(self.SVG)
        paths = list(doc.iter("path"))
        assert len(paths) == 1
        assert paths[0].get("d") == "M1 1 L2 2"
        markers = list(doc.definitions("marker"))
        assert len(markers) == 1

    def test_ancestors(self) -> None:
        doc = SvgDocument.from_string(self.SVG)
        rect = next(doc.iter("rect"))
        names = [local_name(a.tag) for a in doc.ancestors(rect)]
        assert names == ["g", "svg"]

    def test_tostring_keeps_default_namespace(self) -> None:
        doc = SvgDocument.from_string(self.SVG)
        out = doc.tostring()
        assert out.startswith("<svg")
        assert 'xmlns="http://www.w3.org/2000/svg"' in out

    def test_rejects_non_svg_root(self) -> None:
        with pytest.raises(SceneParseError, match="expected an <svg>"):
            SvgDocument.from_string("<html/>")

    def test_rejects_malformed_markup(self) -> None:
        with pytest.raises(SceneParseError, match="invalid SVG"):
            SvgDocument.from_string("<svg><g></svg>")

import pytest

from medforms.services.field_analysis.diagnostics import MalformedInputError
from medforms.services.field_analysis.geometry import CoordinateUnit
from medforms.services.field_analysis.raw_input import (
    ConfidenceScale,
    RawAnalysisResult,
    RawPrimitive,
    from_azure_layout,
    from_textract_blocks,
    parse_raw_result,
    split_label_value,
)

SQUARE = ((1.0, 1.0), (3.0, 1.0), (3.0, 2.0), (1.0, 2.0))


@pytest.mark.parametrize("polygon", [
    [1, 1, 3, 1, 3, 2, 1, 2],
    [[1, 1], [3, 1], [3, 2], [1, 2]],
    [{"x": 1, "y": 1}, {"x": 3, "y": 1}, {"x": 3, "y": 2}, {"x": 1, "y": 2}],
    [{"X": 1, "Y": 1}, {"X": 3, "Y": 1}, {"X": 3, "Y": 2}, {"X": 1, "Y": 2}],
])
def test_polygon_shapes(polygon):
    parsed = parse_raw_result({"pages": [{"page_number": 1, "primitives": [
        {"label": "Nombre", "regions": [{"polygon": polygon}]}
    ]}]})
    assert parsed.pages[0].primitives[0].regions[0].polygon == SQUARE


@pytest.mark.parametrize("polygon", [
    [1, 1, 3, 1, 3, 2],
    [[1, 1], [3, 1], [3, 2]],
    [{"x": 1}, {"x": 3}, {"x": 3}, {"x": 1}],
    "1,1,3,1,3,2,1,2",
    [True, 1, 3, 1, 3, 2, 1, 2],
])
def test_bad_polygons_are_malformed(polygon):
    with pytest.raises(MalformedInputError) as excinfo:
        parse_raw_result({"pages": [{"primitives": [{"label": "x", "regions": [{"polygon": polygon}]}]}]})
    assert excinfo.value.details
    assert "polygon" in excinfo.value.details[0]


def test_bare_list_of_pages():
    parsed = parse_raw_result([{"page_number": 2, "primitives": [{"label": "a"}]}])
    assert parsed.pages[0].page_number == 2
    assert parsed.total_primitives == 1


def test_single_page_object():
    parsed = parse_raw_result({"primitives": [{"label": "a"}, {"label": "b"}]})
    assert len(parsed.pages) == 1
    assert parsed.pages[0].page_number == 1


def test_model_instance_passes_through():
    parsed = parse_raw_result([])
    assert parse_raw_result(parsed) is parsed


@pytest.mark.parametrize("payload", ["text", 42, None, {"pages": "nope"}, {"pages": [{"page_number": 0}]}])
def test_unrecognizable_payloads(payload):
    with pytest.raises(MalformedInputError):
        parse_raw_result(payload)


def test_malformed_input_is_a_value_error():
    assert issubclass(MalformedInputError, ValueError)


def test_defaults_and_aliases():
    parsed = parse_raw_result({"pages": [{"pageNumber": 3, "primitives": [{"key": "Póliza", "value": None}]}]})
    primitive = parsed.pages[0].primitives[0]
    assert parsed.pages[0].page_number == 3
    assert primitive.label == "Póliza"
    assert primitive.value == ""
    assert primitive.regions == []
    assert primitive.confidence is None
    assert primitive.source_type == "primitive"


def test_numeric_values_become_text():
    primitive = RawPrimitive.model_validate({"label": "Edad", "value": 42})
    assert primitive.value == "42"


@pytest.mark.parametrize("confidence,expected", [
    (None, 0.5),
    (0.93, 0.93),
    (93, 0.93),
    (1.0, 1.0),
    (-0.2, 0.0),
])
def test_resolved_confidence(confidence, expected):
    primitive = RawPrimitive(label="x", confidence=confidence)
    assert primitive.resolved_confidence(0.5) == pytest.approx(expected)


def test_region_without_page_uses_page_default():
    parsed = parse_raw_result({"pages": [{"page_number": 4, "primitives": [
        {"label": "a", "regions": [{"polygon": [0, 0, 1, 0, 1, 1, 0, 1]}]}
    ]}]})
    region = parsed.pages[0].primitives[0].regions[0].to_region(default_page=4)
    assert region.page_number == 4


def test_page_extents_and_declared_unit():
    parsed = parse_raw_result({"pages": [
        {"page_number": 1, "width": 8.5, "height": 11, "unit": "inch"},
        {"page_number": 2},
    ]})
    assert parsed.source_unit is None
    assert parsed.declared_unit == CoordinateUnit.INCH
    assert set(parsed.page_extents()) == {1}


class TestAzureAdapter:
    def test_primitives(self, azure_result):
        parsed = from_azure_layout(azure_result)
        assert isinstance(parsed, RawAnalysisResult)
        assert parsed.source_unit == CoordinateUnit.INCH
        assert parsed.page_extents()[1].width == 8.5

        primitives = parsed.pages[0].primitives
        assert [p.source_type for p in primitives] == ["key_value_pair", "table", "checkbox"]

        pair, cell, mark = primitives
        assert pair.label == "Nombre del Paciente"
        assert pair.value == "Ana Torres"
        assert pair.confidence == 0.9
        # positioned by the value, not the key
        assert pair.regions[0].polygon[0] == (2.0, 1.0)

        assert cell.label == "Medicamento"
        assert cell.value == "Paracetamol 500 mg"
        assert cell.field_id == "table_0_r1_c0"

        assert mark.value == "selected"
        assert mark.field_id == "checkbox_p1_000"
        assert mark.confidence == 0.98

    def test_low_confidence_pairs_dropped(self, azure_result):
        labels = [p.label for p in from_azure_layout(azure_result).pages[0].primitives]
        assert "ruido" not in labels

    def test_key_regions_used_when_value_has_none(self, azure_result):
        azure_result["keyValuePairs"][0]["value"] = {"content": ""}
        pair = from_azure_layout(azure_result).pages[0].primitives[0]
        assert pair.regions[0].polygon[0] == (0.5, 1.0)

    def test_document_fields(self):
        parsed = from_azure_layout({"documents": [{"fields": {
            "PolicyNumber": {
                "content": "GMM-1",
                "confidence": 0.8,
                "boundingRegions": [{"pageNumber": 2, "polygon": [1, 1, 2, 1, 2, 2, 1, 2]}]
            },
            "Empty": {"content": ""}
        }}]})
        assert parsed.pages[0].page_number == 2
        assert [p.label for p in parsed.pages[0].primitives] == ["PolicyNumber"]
        assert parsed.pages[0].primitives[0].source_type == "document"

    def test_rejects_non_object(self):
        with pytest.raises(MalformedInputError):
            from_azure_layout(["not", "a", "result"])


class TestTextractAdapter:
    def test_key_value_pairs(self, textract_blocks):
        parsed = from_textract_blocks(textract_blocks)
        assert parsed.source_unit == CoordinateUnit.PAGE_FRACTION

        date_pair, checkbox = parsed.pages[0].primitives
        assert date_pair.label == "Fecha Ingreso:"
        assert date_pair.value == "01/02/2024"
        assert date_pair.confidence == pytest.approx(0.8)
        assert date_pair.regions[0].polygon == ((0.5, 0.25), (0.75, 0.25), (0.75, 0.375), (0.5, 0.375))

        assert checkbox.label == "Hospitalización"
        assert checkbox.value == "selected"
        assert checkbox.regions == []

    def test_page_size_converts_to_points(self, textract_blocks):
        parsed = from_textract_blocks(textract_blocks, page_size=(612.0, 792.0))
        assert parsed.source_unit == CoordinateUnit.POINT
        assert parsed.page_extents()[1].width == 612.0
        polygon = parsed.pages[0].primitives[0].regions[0].polygon
        assert polygon[0] == (306.0, 198.0)
        assert polygon[2] == (459.0, 297.0)

    def test_no_forms_blocks(self):
        parsed = from_textract_blocks([{"Id": "w", "BlockType": "WORD", "Text": "hola"}])
        assert parsed.total_primitives == 0

    def test_rejects_non_list(self):
        with pytest.raises(MalformedInputError):
            from_textract_blocks({"Blocks": []})


INF = float("inf")
NAN = float("nan")


@pytest.mark.parametrize("polygon", [
    [1, 1, INF, 1, 3, 2, 1, 2],
    [1, 1, 3, 1, 3, NAN, 1, 2],
    [[1, 1], [3, 1], [3, -INF], [1, 2]],
    [{"x": 1, "y": 1}, {"x": NAN, "y": 1}, {"x": 3, "y": 2}, {"x": 1, "y": 2}],
])
def test_non_finite_polygons_are_malformed(polygon):
    with pytest.raises(MalformedInputError) as excinfo:
        parse_raw_result({"pages": [{"primitives": [{"label": "x", "regions": [{"polygon": polygon}]}]}]})
    assert "polygon" in excinfo.value.details[0]


@pytest.mark.parametrize("page", [
    {"primitives": [{"label": "x", "confidence": NAN}]},
    {"primitives": [{"label": "x", "font_size": INF}]},
    {"width": INF, "height": 11},
    {"width": 8.5, "height": NAN},
])
def test_non_finite_numbers_are_malformed(page):
    with pytest.raises(MalformedInputError):
        parse_raw_result({"pages": [page]})


@pytest.mark.parametrize("confidence,scale,expected", [
    (1.00005, None, 1.0),
    (1.5, None, 1.0),
    (2.0, None, 1.0),
    (2.5, None, 0.025),
    (1.5, ConfidenceScale.FRACTION, 1.0),
    (0.9, ConfidenceScale.FRACTION, 0.9),
    (90, ConfidenceScale.PERCENT, 0.9),
    (0.5, ConfidenceScale.PERCENT, 0.005),
    (97, None, 0.97),
    (150, None, 1.0),
])
def test_confidence_scale(confidence, scale, expected):
    primitive = RawPrimitive(label="x", confidence=confidence)
    assert primitive.resolved_confidence(0.5, scale) == pytest.approx(expected)


def test_confidence_scale_is_declared_per_payload():
    parsed = parse_raw_result({"confidence_scale": "percent", "pages": [{"primitives": [{"label": "x"}]}]})
    assert parsed.confidence_scale == ConfidenceScale.PERCENT
    assert parse_raw_result([]).confidence_scale is None


@pytest.mark.parametrize("text,expected", [
    ("Póliza: GMM-1", ("Póliza", "GMM-1")),
    ("Sexo = F", ("Sexo", "F")),
    ("Nombre del Paciente - Ana Torres", ("Nombre del Paciente", "Ana Torres")),
    ("RFC LORM850312AB1", ("RFC", "LORM850312AB1")),
    ("Teléfono 5512345678", ("Teléfono", "5512345678")),
    ("GMM-4471029", None),
    ("Hoja 1 de 2", None),
    ("Observaciones:", None),
    ("ab", None),
    (None, None),
])
def test_split_label_value(text, expected):
    assert split_label_value(text) == expected


def test_prose_is_not_a_label():
    text = "El asegurado declara que la informacion proporcionada es verdadera y completa: si"
    assert split_label_value(text) is None


class TestAzureTextFields:
    @pytest.fixture
    def layout_only(self):
        return {
            "pages": [{
                "pageNumber": 1, "width": 8.5, "height": 11, "unit": "inch",
                "lines": [
                    {"content": "Aseguradora: GNP Seguros", "polygon": [0.5, 0.5, 3.0, 0.5, 3.0, 0.7, 0.5, 0.7]}
                ]
            }],
            "paragraphs": [
                {"content": "Reporte de siniestro"},
                {
                    "content": "Póliza: GMM-1",
                    "boundingRegions": [{"pageNumber": 1, "polygon": [1.0, 2.0, 4.0, 2.0, 4.0, 2.25, 1.0, 2.25]}]
                },
                {"content": "RFC LORM850312AB1"},
            ]
        }

    def test_paragraphs_become_fields(self, layout_only):
        parsed = from_azure_layout(layout_only)
        primitives = parsed.pages[0].primitives
        assert [(p.label, p.value) for p in primitives] == [("Póliza", "GMM-1"), ("RFC", "LORM850312AB1")]
        assert {p.source_type for p in primitives} == {"paragraph"}
        assert primitives[0].confidence == pytest.approx(0.88)
        assert primitives[0].regions[0].polygon[0] == (1.0, 2.0)
        assert primitives[1].regions == []

    def test_lines_used_without_paragraphs(self, layout_only):
        del layout_only["paragraphs"]
        primitives = from_azure_layout(layout_only).pages[0].primitives
        assert [(p.label, p.value, p.source_type) for p in primitives] == [
            ("Aseguradora", "GNP Seguros", "line")
        ]
        assert primitives[0].confidence == pytest.approx(0.85)
        assert primitives[0].regions[0].page_number == 1

    def test_text_ignored_when_pairs_exist(self, azure_result, layout_only):
        azure_result["paragraphs"] = layout_only["paragraphs"]
        azure_result["pages"][0]["lines"] = layout_only["pages"][0]["lines"]
        primitives = from_azure_layout(azure_result).pages[0].primitives
        assert [p.source_type for p in primitives] == ["key_value_pair", "table", "checkbox"]

    def test_adapters_declare_fraction_confidences(self, azure_result, textract_blocks):
        assert from_azure_layout(azure_result).confidence_scale == ConfidenceScale.FRACTION
        assert from_textract_blocks(textract_blocks).confidence_scale == ConfidenceScale.FRACTION

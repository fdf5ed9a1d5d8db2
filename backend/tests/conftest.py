"""Shared fixtures for the field analysis tests."""
import json
from pathlib import Path

import pytest

SAMPLE_PATH = Path(__file__).parent.parent / "examples" / "sample_claim_form.json"


def rect_polygon(x, y, width, height):
    """Flat 8-number polygon for an axis-aligned rectangle."""
    return [x, y, x + width, y, x + width, y + height, x, y + height]


@pytest.fixture
def make_primitive():
    """Factory for generic raw primitives positioned by (x, y, width, height)."""
    def _make(label, value="", rect=None, page=1, **extra):
        primitive = {"label": label, "value": value}
        if rect is not None:
            primitive["regions"] = [{"page_number": page, "polygon": rect_polygon(*rect)}]
        primitive.update(extra)
        return primitive
    return _make


@pytest.fixture
def sample_payload():
    with open(SAMPLE_PATH, encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def azure_result():
    """A trimmed Azure Document Intelligence prebuilt-layout analyzeResult."""
    return {
        "apiVersion": "2023-07-31",
        "modelId": "prebuilt-layout",
        "pages": [
            {
                "pageNumber": 1,
                "width": 8.5,
                "height": 11,
                "unit": "inch",
                "selectionMarks": [
                    {"state": "selected", "polygon": [1.0, 6.0, 1.2, 6.0, 1.2, 6.2, 1.0, 6.2], "confidence": 0.98}
                ]
            }
        ],
        "keyValuePairs": [
            {
                "key": {
                    "content": "Nombre del Paciente",
                    "boundingRegions": [{"pageNumber": 1, "polygon": [0.5, 1.0, 1.9, 1.0, 1.9, 1.2, 0.5, 1.2]}]
                },
                "value": {
                    "content": "Ana Torres",
                    "boundingRegions": [{"pageNumber": 1, "polygon": [2.0, 1.0, 5.0, 1.0, 5.0, 1.2, 2.0, 1.2]}]
                },
                "confidence": 0.9
            },
            {
                "key": {"content": "ruido"},
                "value": {"content": "x"},
                "confidence": 0.1
            }
        ],
        "tables": [
            {
                "rowCount": 2,
                "columnCount": 1,
                "cells": [
                    {
                        "kind": "columnHeader", "rowIndex": 0, "columnIndex": 0, "content": "Medicamento",
                        "boundingRegions": [{"pageNumber": 1, "polygon": [1.0, 7.0, 3.0, 7.0, 3.0, 7.2, 1.0, 7.2]}]
                    },
                    {
                        "rowIndex": 1, "columnIndex": 0, "content": "Paracetamol 500 mg",
                        "boundingRegions": [{"pageNumber": 1, "polygon": [1.0, 7.2, 3.0, 7.2, 3.0, 7.4, 1.0, 7.4]}]
                    }
                ]
            }
        ]
    }


@pytest.fixture
def textract_blocks():
    """Textract FORMS blocks: one text key/value pair and one checkbox."""
    return [
        {"Id": "page-1", "BlockType": "PAGE", "Page": 1},
        {
            "Id": "k1", "BlockType": "KEY_VALUE_SET", "EntityTypes": ["KEY"], "Confidence": 90.0, "Page": 1,
            "Geometry": {"BoundingBox": {"Left": 0.1, "Top": 0.1, "Width": 0.3, "Height": 0.02}},
            "Relationships": [{"Type": "VALUE", "Ids": ["v1"]}, {"Type": "CHILD", "Ids": ["w1", "w2"]}]
        },
        {
            "Id": "v1", "BlockType": "KEY_VALUE_SET", "EntityTypes": ["VALUE"], "Confidence": 80.0, "Page": 1,
            "Geometry": {"BoundingBox": {"Left": 0.5, "Top": 0.25, "Width": 0.25, "Height": 0.125}},
            "Relationships": [{"Type": "CHILD", "Ids": ["w3"]}]
        },
        {"Id": "w1", "BlockType": "WORD", "Text": "Fecha"},
        {"Id": "w2", "BlockType": "WORD", "Text": "Ingreso:"},
        {"Id": "w3", "BlockType": "WORD", "Text": "01/02/2024"},
        {
            "Id": "k2", "BlockType": "KEY_VALUE_SET", "EntityTypes": ["KEY"], "Confidence": 95.0, "Page": 1,
            "Relationships": [{"Type": "VALUE", "Ids": ["v2"]}, {"Type": "CHILD", "Ids": ["w4"]}]
        },
        {
            "Id": "v2", "BlockType": "KEY_VALUE_SET", "EntityTypes": ["VALUE"], "Confidence": 99.0, "Page": 1,
            "Relationships": [{"Type": "CHILD", "Ids": ["s1"]}]
        },
        {"Id": "w4", "BlockType": "WORD", "Text": "Hospitalización"},
        {"Id": "s1", "BlockType": "SELECTION_ELEMENT", "SelectionStatus": "SELECTED"},
    ]

"""Tests for feed value cleaning."""

from __future__ import annotations

from datetime import date

import pytest

from inventory.pipelines.normalization import (
    derive_categories,
    extract_image_urls,
    extract_options,
    first_present,
    parse_bool,
    parse_float,
    parse_int,
    parse_price,
    scalar,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("12.500", 12500.0),
        ("12.500,00", 12500.0),
        ("€ 12.500,-", 12500.0),
        ("1.234.567,89", 1234567.89),
        ("12500", 12500.0),
        ("12500.5", 12500.5),
        (27950, 27950.0),
        (None, 0.0),
        ("op aanvraag", 0.0),
    ],
)
def test_parse_price(raw, expected) -> None:
    assert parse_price(raw) == pytest.approx(expected)


def test_parse_int_and_float() -> None:
    assert parse_int("142.300 km") == 142300
    assert parse_int("5") == 5
    assert parse_int("") is None
    assert parse_int(None) is None
    assert parse_float("8,5") == pytest.approx(8.5)
    assert parse_float("6.4") == pytest.approx(6.4)
    assert parse_float({"#text": "5,1", "eenheid": "l/100km"}) == pytest.approx(5.1)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("j", True), ("Ja", True), ("true", True), ("n", False), ("nee", False), ("0", False), ("?", None), (None, None)],
)
def test_parse_bool(raw, expected) -> None:
    assert parse_bool(raw) is expected


def test_scalar_and_fallback_chain() -> None:
    data = {"verkoopprijs": "  ", "prijs": {"valuta": "EUR", "#text": "9.950"}, "list": ["a", "b"]}

    assert scalar(data["list"]) == "a"
    assert scalar({"valuta": "EUR"}) is None
    assert first_present(data, "verkoopprijs", "prijs") == "9.950"
    assert first_present(data, "missing") is None


def test_extract_image_urls_shapes() -> None:
    assert extract_image_urls({}) == []
    assert extract_image_urls({"afbeeldingen": "https://x/1.jpg, https://x/2.jpg"}) == [
        "https://x/1.jpg",
        "https://x/2.jpg",
    ]
    assert extract_image_urls(
        {"afbeeldingen": {"afbeelding": ["https://x/1.jpg", {"url": "https://x/2.jpg"}, {"#text": "https://x/3.jpg"}]}}
    ) == ["https://x/1.jpg", "https://x/2.jpg", "https://x/3.jpg"]


def test_extract_options_shapes() -> None:
    assert extract_options({}) == []
    assert extract_options({"opties": "Airco, Navigatie ,, Trekhaak"}) == ["Airco", "Navigatie", "Trekhaak"]
    assert extract_options({"opties": ["Airco", "Navigatie"]}) == ["Airco", "Navigatie"]
    assert extract_options({"opties": {"optie": ["Airco", {"naam": "Navigatie"}]}}) == ["Airco", "Navigatie"]
    assert extract_options({"opties": [{"optie": ["Airco"]}, {"optie": ["Navigatie"]}]}) == ["Airco", "Navigatie"]


def test_derive_categories_body_types() -> None:
    today = date(2025, 3, 1)

    assert derive_categories("SUV / Terreinwagen", "Benzine", 2015, today=today) == ["SUV"]
    assert derive_categories("Cabriolet", "Benzine", 2015, today=today) == ["Cabriolet"]
    assert derive_categories("Stationwagon", "Diesel", 2015, today=today) == ["Gezinswagens"]
    assert derive_categories("Bestelwagen", "Diesel", 2015, today=today) == ["Bestelwagens"]
    assert derive_categories("Hatchback", "Benzine", 2015, today=today) == ["Stadswagens"]
    assert derive_categories("Coupé", "Benzine", 2015, today=today) == ["Sportief"]
    assert derive_categories("Overig", "Benzine", 2015, today=today) == []


def test_derive_categories_fuel_and_recent() -> None:
    today = date(2025, 3, 1)

    assert derive_categories("Sedan", "Elektrisch", 2023, today=today) == ["Elek/Hybrid", "Recent"]
    assert derive_categories("Sedan", "Hybride", 2022, today=today) == ["Elek/Hybrid"]
    assert derive_categories(None, "Plug-in hybride", None, today=today) == []

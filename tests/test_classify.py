from __future__ import annotations

from orelens.classify import (
    Location,
    classify,
    detect_commodity,
    detect_location,
    detect_project_name,
    detect_stage,
    fallback_project_name,
)


def test_commodity_highest_count_wins() -> None:
    text = "Copper is a by-product. The gold deposit averages 1.2 g/t Au and Au equivalent; gold sales dominate."
    assert detect_commodity(text) == "Gold"


def test_commodity_tie_goes_to_declaration_order() -> None:
    assert detect_commodity("copper and gold") == "Gold"


def test_symbols_are_case_sensitive() -> None:
    assert detect_commodity("au au au, but one copper mention") == "Copper"
    assert detect_commodity("Cu grades of 0.45% Cu") == "Copper"


def test_commodity_default() -> None:
    assert detect_commodity("Quarterly letter to shareholders.") == "Other"
    assert detect_commodity("", default="Unknown") == "Unknown"


def test_project_name_from_report_title() -> None:
    text = "Technical Report Summary on the Copper Flat Project, Sierra County, New Mexico"
    assert detect_project_name(text) == "Copper Flat Project"


def test_project_name_from_suffix() -> None:
    assert detect_project_name("Reserves at the Goldstrike Mine were updated.") == "Goldstrike Mine"


def test_project_name_rejects_boilerplate() -> None:
    assert detect_project_name("Total Project capital is high.") is None
    assert detect_project_name("no capitalized names here") is None


def test_fallback_project_name() -> None:
    assert fallback_project_name("Acme Mining Corp.", "Copper") == "Acme Mining Copper Project"
    assert fallback_project_name("Acme Gold Inc", "Gold") == "Acme Gold Project"
    assert fallback_project_name("Northern Minerals Ltd", "Other") == "Northern Minerals Project"


def test_stage_detection() -> None:
    assert detect_stage("A Preliminary Economic Assessment was completed.") == "PEA"
    assert detect_stage("The pre-feasibility study supports reserves.") == "Pre-Feasibility"
    assert detect_stage("A feasibility study is underway.") == "Feasibility"
    assert detect_stage("The mine is under construction.") == "Construction"
    assert detect_stage("Drilling continues on the claims.") == "Exploration"


def test_care_and_maintenance_stage() -> None:
    text = "The mine has been on care and maintenance since 2020, after ten years of production."
    assert detect_stage(text) == "Care & Maintenance"
    assert detect_stage("The plant was placed on Care & Maintenance.") == "Care & Maintenance"


def test_location_from_located_phrase() -> None:
    loc = detect_location("The Alpha Project is located approximately 40 km north of Elko, Nevada, USA.")
    assert loc == Location(jurisdiction="Nevada", country="USA")
    loc = detect_location("The property is located in the Abitibi region of Quebec.")
    assert loc == Location(jurisdiction="Quebec", country="Canada")
    assert detect_location("The deposit is located in northern Ghana.") == Location(country="Ghana")


def test_location_from_division_name() -> None:
    assert detect_location("The claims lie in Yunnan Province, China.") == Location(jurisdiction="Yunnan", country="China")
    assert detect_location("Mining claims in Elko County, Nevada.") == Location(jurisdiction="Nevada", country="USA")
    assert detect_location("Drilling continues on the claims.") == Location()


def test_classify_combines_fields() -> None:
    c = classify("Technical Report Summary on the Copper Flat Project. Copper feasibility study.")
    assert c.commodity == "Copper"
    assert c.project_name == "Copper Flat Project"
    assert c.stage == "Feasibility"


def test_classify_carries_location() -> None:
    c = classify("The Rio Verde Project is located in Sonora, Mexico. Gold production began in 2019.")
    assert c.jurisdiction == "Sonora"
    assert c.country == "Mexico"
    assert c.stage == "Production"

import pytest

from gateway.services.swiss import lookup_canton


def test_zurich():
    info = lookup_canton("8001")
    assert info.canton == "ZH"
    assert info.language == "de"
    assert info.tax_rate == 7.7


@pytest.mark.parametrize("code", ["0000", "12", "abcd", "", "99999"])
def test_invalid_codes_fall_back_to_ch(code):
    info = lookup_canton(code)
    assert info.canton == "CH"
    assert info.language == "de"
    assert info.tax_rate == 7.7


@pytest.mark.parametrize(
    "code, canton, language",
    [
        ("1201", "GE", "fr"),
        ("1003", "VD", "fr"),
        ("3011", "BE", "de"),
        ("3920", "VS", "fr"),
        ("4051", "BS", "de"),
        ("6900", "TI", "it"),
        ("8200", "SH", "de"),
        ("9000", "SG", "de"),
    ],
)
def test_known_cantons(code, canton, language):
    info = lookup_canton(code)
    assert (info.canton, info.language) == (canton, language)


def test_geo_route_echoes_edge_headers(client):
    response = client.get(
        "/api/v1/geo",
        headers={"cf-ipcountry": "CH", "cf-ipcity": "Zurich", "CF-Connecting-IP": "203.0.113.5"},
    )
    data = response.json()["data"]
    assert data["country"] == "CH"
    assert data["city"] == "Zurich"
    assert data["timezone"] is None
    assert data["ip"] == "203.0.113.5"


def test_canton_route_from_query(client):
    response = client.get("/api/v1/swiss/canton", params={"postalCode": "8001"})
    assert response.status_code == 200
    assert response.json() == {"postalCode": "8001", "canton": "ZH", "taxRate": 7.7, "language": "de"}


def test_canton_route_from_edge_header(client):
    response = client.get("/api/v1/swiss/canton", headers={"cf-postal-code": "6900"})
    assert response.json()["canton"] == "TI"


def test_canton_route_without_location_is_400(client):
    response = client.get("/api/v1/swiss/canton")
    assert response.status_code == 400
    assert response.json()["success"] is False

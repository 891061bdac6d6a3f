import argparse
import json

import pytest

from storefinder.core.config import Settings
from storefinder.core.errors import InvalidArgument
from storefinder.core.geo import Coordinate
from storefinder.jobs import nearby_query

STORES = [
    {"id": "A", "name": "Store A", "location": {"lat": 40.70, "lng": -74.00}, "isActive": True},
    {"id": "B", "name": "Store B", "latitude": 40.75, "longitude": -74.10, "isActive": True},
    {"id": "C", "name": "Store C", "isActive": True},
    {"id": "Z", "name": "Closed", "location": {"lat": 40.71, "lng": -74.01}, "isActive": False},
]
PRODUCTS = [
    {"id": "p1", "store_id": "B", "name": "Cheese", "status": "active"},
    {"id": "p2", "store_id": "A", "name": "Bread", "status": "active"},
]


@pytest.fixture
def catalog_file(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"stores": STORES, "products": PRODUCTS}), encoding="utf-8")
    return str(path)


@pytest.fixture(autouse=True)
def offline(monkeypatch):
    settings = Settings(database_url="", max_radius_km=50, default_radius_km=5)
    monkeypatch.setattr(nearby_query, "get_settings", lambda: settings)
    monkeypatch.setattr(nearby_query.LocationResolver, "describe_coordinate", lambda self, c: c.label())
    return settings


def _run(**overrides):
    kwargs = dict(
        lat=40.71,
        lng=-74.01,
        address=None,
        locate=False,
        radius_km=10,
        limit=None,
        expand=False,
        products=False,
        grid=False,
        catalog_path=None,
    )
    kwargs.update(overrides)
    return nearby_query.run_nearby_job(**kwargs)


def test_load_catalog_file_accepts_plain_list(tmp_path):
    path = tmp_path / "stores.json"
    path.write_text(json.dumps(STORES), encoding="utf-8")
    catalog = nearby_query.load_catalog_file(str(path))
    assert [store.id for store in catalog.stores] == ["A", "B", "C"]
    assert catalog.products == ()


def test_nearby_stores_from_file(catalog_file):
    result = _run(catalog_path=catalog_file)
    assert result["count"] == 2
    assert [item["id"] for item in result["items"]] == ["A", "B"]
    assert result["location"] == "40.710000, -74.010000"
    assert "next_radius_km" not in result


def test_nearby_stores_with_grid_and_limit(catalog_file):
    result = _run(catalog_path=catalog_file, grid=True, limit=1)
    assert [item["id"] for item in result["items"]] == ["A"]


def test_empty_result_suggests_next_radius(catalog_file):
    result = _run(catalog_path=catalog_file, radius_km=0.5)
    assert result["count"] == 0
    assert result["next_radius_km"] == 1.0


def test_expand_reports_radius(catalog_file):
    result = _run(catalog_path=catalog_file, radius_km=0.5, expand=True)
    assert result["expanded"] is True
    assert result["requested_radius_km"] == 0.5
    assert result["radius_km"] == 2.0
    assert [item["id"] for item in result["items"]] == ["A"]


def test_nearby_products(catalog_file):
    result = _run(catalog_path=catalog_file, products=True)
    assert [item["id"] for item in result["items"]] == ["p2", "p1"]


def test_address_is_geocoded(monkeypatch, catalog_file):
    seen = []

    def fake_resolve(self, address):
        seen.append(address)
        return Coordinate(40.71, -74.01)

    monkeypatch.setattr(nearby_query.LocationResolver, "resolve_from_address", fake_resolve)
    result = _run(lat=None, lng=None, address="Lower Manhattan", catalog_path=catalog_file)
    assert seen == ["Lower Manhattan"]
    assert result["count"] == 2


def test_locate_uses_device_capability(monkeypatch, catalog_file):
    async def fake_device(self):
        return Coordinate(40.71, -74.01)

    monkeypatch.setattr(nearby_query.LocationResolver, "resolve_from_device", fake_device)
    result = _run(lat=None, lng=None, locate=True, catalog_path=catalog_file)
    assert result["center"] == {"lat": 40.71, "lng": -74.01}


def test_requires_a_location():
    with pytest.raises(InvalidArgument):
        _run(lat=None, lng=None)
    with pytest.raises(InvalidArgument):
        _run(lat=40.71, lng=None)


def test_build_parser_defaults(offline):
    parser = nearby_query.build_parser()
    args = parser.parse_args(["--lat", "40.71", "--lng", "-74.01"])
    assert isinstance(parser, argparse.ArgumentParser)
    assert args.radius_km == 5
    assert args.expand is False
    assert args.catalog_path is None


def test_main_exit_code_for_invalid_input(monkeypatch):
    monkeypatch.setattr("sys.argv", ["storefinder-nearby", "--lat", "95", "--lng", "0", "--catalog", "unused.json"])
    with pytest.raises(SystemExit) as excinfo:
        nearby_query.main()
    assert excinfo.value.code == 2


def test_main_prints_json(monkeypatch, capsys, catalog_file):
    monkeypatch.setattr(
        "sys.argv",
        ["storefinder-nearby", "--lat", "40.71", "--lng", "-74.01", "--radius", "10", "--catalog", catalog_file],
    )
    nearby_query.main()
    output = json.loads(capsys.readouterr().out)
    assert output["count"] == 2


def test_radius_above_ceiling_is_rejected(catalog_file):
    with pytest.raises(InvalidArgument, match="50km"):
        _run(catalog_path=catalog_file, radius_km=80)


def test_expand_with_products_is_rejected(catalog_file):
    with pytest.raises(InvalidArgument):
        _run(catalog_path=catalog_file, expand=True, products=True)


def test_parser_rejects_expand_with_products(offline):
    with pytest.raises(SystemExit):
        nearby_query.build_parser().parse_args(["--lat", "0", "--lng", "0", "--expand", "--products"])


def test_query_without_location(catalog_file):
    result = _run(lat=None, lng=None, query="CHEESE", catalog_path=catalog_file)
    assert result["center"] is None
    assert result["location"] is None
    assert [item["id"] for item in result["items"]] == ["p1"]
    assert result["items"][0]["distance_km"] is None
    assert result["items"][0]["store_name"] == "Store B"


def test_query_with_location_annotates_distance(catalog_file):
    result = _run(query="e", catalog_path=catalog_file)
    assert [item["id"] for item in result["items"]] == ["p2", "p1"]
    assert 0 < result["items"][0]["distance_km"] < result["items"][1]["distance_km"]
    assert result["location"] == "40.710000, -74.010000"
    assert "next_radius_km" not in result

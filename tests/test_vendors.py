import pytest
import requests

from storefinder.core.errors import GeocodeServiceError
from storefinder.core.geo import Coordinate
from storefinder.vendors import google_geocoding, ip_location, nominatim


class DummyResponse:
    def __init__(self, status_code=200, payload=None, invalid_json=False):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self._invalid_json = invalid_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"http error {self.status_code}")

    def json(self):
        if self._invalid_json:
            raise ValueError("not json")
        return self._payload


class DummySession:
    def __init__(self):
        self.calls = []
        self.response = DummyResponse()
        self.error = None

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, params, headers, timeout))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def session(monkeypatch):
    dummy = DummySession()
    monkeypatch.setattr(nominatim, "_SESSION", dummy)
    monkeypatch.setattr(google_geocoding, "_SESSION", dummy)
    monkeypatch.setattr(ip_location, "_SESSION", dummy)
    return dummy


# ---------- Nominatim ----------


def test_nominatim_forward(session):
    session.response = DummyResponse(payload=[{"lat": "59.4370", "lon": "24.7536", "display_name": "Tallinn"}])
    geocoder = nominatim.NominatimGeocoder("storefinder-tests", "https://nominatim.test/")

    assert geocoder.forward("Tallinn") == Coordinate(59.437, 24.7536)
    url, params, headers, timeout = session.calls[0]
    assert url == "https://nominatim.test/search"
    assert params["q"] == "Tallinn"
    assert params["format"] == "json"
    assert params["limit"] == 1
    assert headers == {"User-Agent": "storefinder-tests"}
    assert timeout == 10


def test_nominatim_forward_no_match(session):
    session.response = DummyResponse(payload=[])
    assert nominatim.NominatimGeocoder("ua").forward("Atlantis") is None


def test_nominatim_reverse(session):
    session.response = DummyResponse(payload={"display_name": "Viru väljak, Tallinn"})
    label = nominatim.NominatimGeocoder("ua").reverse(Coordinate(59.437, 24.7536))
    assert label == "Viru väljak, Tallinn"
    url, params, _, _ = session.calls[0]
    assert url.endswith("/reverse")
    assert params["lat"] == 59.437
    assert params["lon"] == 24.7536


def test_nominatim_reverse_error_payload(session):
    session.response = DummyResponse(payload={"error": "Unable to geocode"})
    assert nominatim.NominatimGeocoder("ua").reverse(Coordinate(0, 0)) is None


@pytest.mark.parametrize(
    "response, error",
    [
        (DummyResponse(status_code=503), None),
        (DummyResponse(invalid_json=True), None),
        (DummyResponse(payload={"unexpected": True}), None),
        (None, requests.ConnectionError("refused")),
        (None, requests.Timeout("slow")),
    ],
)
def test_nominatim_failures_raise_service_error(session, response, error):
    session.response = response
    session.error = error
    with pytest.raises(GeocodeServiceError):
        nominatim.search("Tallinn", "ua")


# ---------- Google ----------


def test_google_forward(session):
    session.response = DummyResponse(
        payload={"status": "OK", "results": [{"geometry": {"location": {"lat": 40.7128, "lng": -74.006}}}]}
    )
    assert google_geocoding.GoogleGeocoder("key").forward("New York") == Coordinate(40.7128, -74.006)
    url, params, _, timeout = session.calls[0]
    assert "geocode" in url
    assert params == {"address": "New York", "key": "key"}
    assert timeout == 10


def test_google_zero_results(session):
    session.response = DummyResponse(payload={"status": "ZERO_RESULTS", "results": []})
    geocoder = google_geocoding.GoogleGeocoder("key")
    assert geocoder.forward("nowhere") is None
    assert geocoder.reverse(Coordinate(0, 0)) is None


def test_google_reverse(session):
    session.response = DummyResponse(payload={"status": "OK", "results": [{"formatted_address": "Manhattan, NY"}]})
    assert google_geocoding.GoogleGeocoder("key").reverse(Coordinate(40.7128, -74.006)) == "Manhattan, NY"
    assert session.calls[0][1]["latlng"] == "40.7128,-74.006"


def test_google_error_status(session):
    session.response = DummyResponse(payload={"status": "OVER_QUERY_LIMIT", "error_message": "limit"})
    with pytest.raises(GeocodeServiceError, match="limit"):
        google_geocoding.geocode("New York", "key")


def test_google_transport_error(session):
    session.error = requests.ConnectionError("refused")
    with pytest.raises(GeocodeServiceError):
        google_geocoding.reverse_geocode(1, 2, "key")


# ---------- IP location ----------


def test_ip_lookup_success(session):
    session.response = DummyResponse(payload={"status": "success", "lat": 1.5, "lon": 2.5})
    payload = ip_location.lookup("8.8.8.8", "http://ip.test/json/")
    assert payload["lat"] == 1.5
    assert session.calls[0][0] == "http://ip.test/json/8.8.8.8"


def test_ip_lookup_failure(session):
    session.response = DummyResponse(payload={"status": "fail", "message": "private range"})
    with pytest.raises(ip_location.IpLocationError, match="private range"):
        ip_location.lookup()


@pytest.mark.parametrize(
    "payload",
    [
        ["unexpected"],
        "OK",
        {"status": "OK", "results": {"geometry": {}}},
        {"status": "OK", "results": ["not an object"]},
    ],
)
def test_google_malformed_payload_raises_service_error(session, payload):
    session.response = DummyResponse(payload=payload)
    with pytest.raises(GeocodeServiceError, match="unexpected payload"):
        google_geocoding.geocode("New York", "key")


@pytest.mark.parametrize(
    "result",
    [
        {"geometry": None},
        {"geometry": {"location": None}},
        {"geometry": "40.7,-74.0"},
    ],
)
def test_google_forward_missing_geometry(session, result):
    session.response = DummyResponse(payload={"status": "OK", "results": [result]})
    with pytest.raises(GeocodeServiceError):
        google_geocoding.GoogleGeocoder("key").forward("New York")


def test_google_reverse_ignores_non_text_address(session):
    session.response = DummyResponse(payload={"status": "OK", "results": [{"formatted_address": None}]})
    assert google_geocoding.GoogleGeocoder("key").reverse(Coordinate(0, 0)) is None


def test_nominatim_search_rejects_non_object_results(session):
    session.response = DummyResponse(payload=["Tallinn"])
    with pytest.raises(GeocodeServiceError):
        nominatim.NominatimGeocoder("ua").forward("Tallinn")


@pytest.mark.parametrize(
    "response, error",
    [
        (DummyResponse(payload=["unexpected"]), None),
        (DummyResponse(payload="success"), None),
        (DummyResponse(invalid_json=True), None),
        (DummyResponse(status_code=500), None),
        (None, requests.ConnectionError("refused")),
    ],
)
def test_ip_lookup_bad_responses_raise_ip_error(session, response, error):
    session.response = response
    session.error = error
    with pytest.raises(ip_location.IpLocationError):
        ip_location.lookup()

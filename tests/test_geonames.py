import pytest

from quote_integrations import config
from quote_integrations.errors import (
    FatalUpstreamError,
    NotFoundError,
    ProtocolError,
    TransientNetworkError,
)
from quote_integrations.geonames import LocationDirectory, check_status_payload
from quote_integrations.lookup import ResilientLookupClient

from conftest import FakeClock, Recorder, json_response, text_response

COUNTRY_INFO = {
    "geonames": [
        {"geonameId": 6251999, "countryCode": "CA", "countryName": "Canada"},
        {"geonameId": 3996063, "countryCode": "MX", "countryName": "Mexico"},
        {"geonameId": 6252001, "countryCode": "US", "countryName": "United States"},
    ]
}

CHILDREN_US = {
    "geonames": [
        {"geonameId": 5332921, "adminCode1": "CA", "name": "California", "countryCode": "US"},
        {"geonameId": 4829764, "adminCode1": "AL", "name": "Alabama", "countryCode": "US"},
        {
            "geonameId": 4155751,
            "adminCodes1": {"ISO3166_2": "FL"},
            "name": "Florida",
            "countryCode": "US",
        },
    ]
}


def make_directory(routes, clock=None, **kwargs) -> tuple[LocationDirectory, Recorder]:
    recorder = Recorder(routes)
    client = ResilientLookupClient(
        "http://geo.test",
        "demo",
        http=recorder.client(),
        clock=clock or FakeClock(),
        validate=check_status_payload,
        name="GeoNames",
    )
    return LocationDirectory(client, **kwargs), recorder


@pytest.mark.asyncio
async def test_countries_filtered_and_sorted() -> None:
    directory, recorder = make_directory({"/countryInfoJSON": [json_response(COUNTRY_INFO)]})

    countries = await directory.countries()

    assert [c.country_code for c in countries] == ["CA", "US"]
    assert countries[0].country_name == "Canada"
    assert recorder.requests[0].url.params["username"] == "demo"


@pytest.mark.asyncio
async def test_states_resolve_country_and_admin_code_fallback() -> None:
    directory, recorder = make_directory(
        {
            "/countryInfoJSON": [json_response(COUNTRY_INFO)],
            "/childrenJSON": [json_response(CHILDREN_US)],
        }
    )

    states = await directory.states("us")

    assert [s.name for s in states] == ["Alabama", "California", "Florida"]
    assert states[2].admin_code1 == "FL"
    assert recorder.calls("/childrenJSON")[0].url.params["geonameId"] == "6252001"


@pytest.mark.asyncio
async def test_states_unknown_country_is_not_found() -> None:
    directory, _ = make_directory({"/countryInfoJSON": [json_response(COUNTRY_INFO)]})

    with pytest.raises(NotFoundError, match="FR"):
        await directory.states("FR")


@pytest.mark.asyncio
async def test_states_served_from_cache_when_country_lookup_fails() -> None:
    directory, recorder = make_directory(
        {
            "/countryInfoJSON": [json_response(COUNTRY_INFO), text_response("down", 503)],
            "/childrenJSON": [json_response(CHILDREN_US)],
        }
    )
    first = await directory.states("US")
    directory.client.invalidate("countries")

    assert await directory.states("US") == first
    assert len(recorder.calls("/childrenJSON")) == 1
    assert len(recorder.calls("/countryInfoJSON")) == 4


@pytest.mark.asyncio
async def test_cities_sorted_by_population() -> None:
    payload = {
        "geonames": [
            {"geonameId": 1, "name": "Sacramento", "adminCode1": "CA", "countryCode": "US", "population": 500000, "lat": "38.5", "lng": "-121.4"},
            {"geonameId": 2, "name": "Los Angeles", "adminCode1": "CA", "countryCode": "US", "population": 3900000, "lat": "34.0", "lng": "-118.2"},
            {"geonameId": 2, "name": "Los Angeles", "adminCode1": "CA", "countryCode": "US", "population": 3900000, "lat": "34.0", "lng": "-118.2"},
            {"geonameId": 3, "name": "Tiny", "adminCode1": "CA", "countryCode": "US"},
        ]
    }
    directory, recorder = make_directory({"/searchJSON": [json_response(payload)]})

    cities = await directory.cities("US", "ca")

    assert [c.name for c in cities] == ["Los Angeles", "Sacramento", "Tiny"]
    assert cities[2].population == 0
    params = recorder.requests[0].url.params
    assert params["adminCode1"] == "CA"
    assert params["featureClass"] == "P"
    assert params["orderby"] == "population"


@pytest.mark.asyncio
async def test_cities_propagate_fatal_error() -> None:
    directory, _ = make_directory({"/searchJSON": [text_response("nope", 404)]})

    with pytest.raises(FatalUpstreamError):
        await directory.cities("US", "CA")


@pytest.mark.asyncio
async def test_postal_codes_keep_exact_place_matches() -> None:
    payload = {
        "postalCodes": [
            {"postalCode": "90012", "placeName": "Los Angeles"},
            {"postalCode": "90001", "placeName": "Los Angeles"},
            {"postalCode": "90012", "placeName": "Los Angeles"},
            {"postalCode": "91001", "placeName": "Altadena"},
            {"postalCode": "90210", "placeName": "Beverly Hills", "adminName2": "Los Angeles"},
        ]
    }
    directory, recorder = make_directory({"/postalCodeSearchJSON": [json_response(payload)]})

    codes = await directory.postal_codes("US", "CA", "  los angeles ")

    assert codes == ["90001", "90012", "90210"]
    assert recorder.requests[0].url.params["placeName"] == "los angeles"


@pytest.mark.asyncio
async def test_postal_codes_lenient_country_uses_fuzzy_match() -> None:
    payload = {
        "postalCodes": [
            {"postalCode": "H2X", "placeName": "Montréal Centre-Est"},
            {"postalCode": "H3A", "placeName": "Montréal Centre"},
            {"postalCode": "K1A", "placeName": "Ottawa"},
        ]
    }
    ca_dir, _ = make_directory({"/postalCodeSearchJSON": [json_response(payload)]})
    us_dir, _ = make_directory(
        {"/postalCodeSearchJSON": [json_response(payload)]}, lenient_countries=()
    )

    assert await ca_dir.postal_codes("CA", "QC", "Montréal") == ["H2X", "H3A"]
    assert await us_dir.postal_codes("CA", "QC", "Montréal") == []


@pytest.mark.asyncio
async def test_postal_codes_degrade_to_empty_list() -> None:
    clock = FakeClock()
    directory, recorder = make_directory(
        {"/postalCodeSearchJSON": [text_response("busy", 503)]}, clock=clock
    )

    result = await directory.postal_codes_result("US", "CA", "Los Angeles")

    assert result.value == []
    assert result.degraded
    assert len(recorder.requests) == 3
    assert clock.sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_lookup_postal_code() -> None:
    payload = {
        "postalCodes": [
            {
                "postalCode": "90210",
                "placeName": "Beverly Hills",
                "adminName1": "California",
                "adminCode1": "CA",
                "countryCode": "US",
                "lat": 34.09,
                "lng": "-118.41",
            }
        ]
    }
    directory, recorder = make_directory({"/postalCodeLookupJSON": [json_response(payload)]})

    location = await directory.lookup_postal_code("us", "90210")

    assert location is not None
    assert location.place_name == "Beverly Hills"
    assert location.lng == pytest.approx(-118.41)
    assert recorder.requests[0].url.params["postalcode"] == "90210"


@pytest.mark.asyncio
async def test_lookup_postal_code_missing_or_failing_returns_none() -> None:
    directory, _ = make_directory(
        {"/postalCodeLookupJSON": [json_response({"postalCodes": []})]}
    )
    assert await directory.lookup_postal_code("US", "00000") is None

    failing, _ = make_directory(
        {"/postalCodeLookupJSON": [text_response("denied", 401)]}
    )
    assert await failing.lookup_postal_code("US", "90210") is None


@pytest.mark.asyncio
async def test_status_payload_limit_is_retried() -> None:
    clock = FakeClock()
    limit = {"status": {"message": "hourly limit exceeded", "value": 19}}
    directory, recorder = make_directory(
        {"/countryInfoJSON": [json_response(limit), json_response(COUNTRY_INFO)]},
        clock=clock,
    )

    countries = await directory.countries()

    assert len(countries) == 2
    assert clock.sleeps == [1.0]


def test_check_status_payload_classification() -> None:
    check_status_payload({"geonames": []})
    with pytest.raises(TransientNetworkError):
        check_status_payload({"status": {"message": "overloaded", "value": 22}})
    with pytest.raises(FatalUpstreamError, match="user does not exist"):
        check_status_payload({"status": {"message": "user does not exist", "value": 10}})
    with pytest.raises(ProtocolError):
        check_status_payload([])


@pytest.mark.asyncio
async def test_collection_field_must_be_a_list() -> None:
    directory, _ = make_directory({"/countryInfoJSON": [json_response({"geonames": "x"})]})

    with pytest.raises(ProtocolError):
        await directory.countries()


def test_from_settings_wires_policy(monkeypatch) -> None:
    monkeypatch.setenv("GEONAMES_USERNAME", "acme")
    monkeypatch.setenv("GEONAMES_MAX_RETRIES", "5")
    monkeypatch.setenv("GEONAMES_LENIENT_COUNTRIES", "ca,mx")
    settings = config._read_settings()

    directory = LocationDirectory.from_settings(settings, clock=FakeClock())

    assert directory.client.client_id == "acme"
    assert directory.client.retry.max_attempts == 5
    assert directory.lenient_countries == {"CA", "MX"}
    assert directory.match_policy("mx").lenient is True
    assert directory.match_policy("US").lenient is False

import pytest
from tenacity import wait_none

from src.fleet_gps.gpsbuddy.client import (
    GpsBuddyClient,
    live_function_arguments,
    live_function_candidates,
)
from src.fleet_gps.gpsbuddy.exceptions import (
    GpsBuddyAuthException,
    GpsBuddyFetchException,
    GpsBuddyHTTPException,
    GpsBuddyResponseShapeException,
    GpsBuddyTokenException,
    GpsBuddyTransportException,
)
from src.fleet_gps.gpsbuddy.session import SessionTokenProvider
from src.fleet_gps.gpsbuddy.strategies import (
    DirectCredentialStrategy,
    TokenRoutineStrategy,
)
from src.fleet_gps.gpsbuddy.token_cache import TokenCache

BY_GROUP = "gpsb_unitvehicle_filter_by_group"
AUTH_ERROR = {"error": {"code": "MI001", "message": "Login failed"}}
ROWS = [{"vehicleid": 1, "vehiclename": "34 abc 1", "velocity": "50"}]


def transport_error():
    return GpsBuddyTransportException("http://gpsbuddy.test", "timeout")


# region Fixtures
@pytest.fixture
def make_client(fake_transport_factory):
    def _make(responses):
        transport = fake_transport_factory(responses)
        client = GpsBuddyClient(transport=transport, wait=wait_none())
        return client, transport

    return _make


# endregion


def test_live_candidates_are_deduplicated_in_order(connection):
    assert live_function_candidates(connection) == [
        BY_GROUP,
        "gpsb_unitvehicle_filter",
        "gpsb_unitvehicle_filter_2",
    ]


def test_group_id_only_for_by_group_functions(connection):
    assert live_function_arguments(connection, BY_GROUP) == {
        "p_companyid": 1234,
        "p_groupid": 7,
    }
    assert live_function_arguments(connection, "gpsb_unitvehicle_filter") == {
        "p_companyid": 1234
    }


async def test_direct_strategy_success(make_client, connection):
    client, transport = make_client({BY_GROUP: [{BY_GROUP: ROWS}]})

    result = await client.fetch_live_vehicles(connection)

    assert result.meta.function_name == BY_GROUP
    assert [v.plate for v in result.vehicles] == ["34 ABC 1"]
    call = transport.calls[0]
    assert call["timeout"] == 15
    assert call["params"]["login"] == "fleet"
    assert call["params"]["password"] == "secret"
    assert call["params"]["returnType"] == "json"
    assert call["params"]["p_groupid"] == 7


async def test_direct_strategy_retries_transport_errors(make_client, connection):
    client, transport = make_client(
        {BY_GROUP: [transport_error(), transport_error(), {"data": ROWS}]}
    )

    result = await client.fetch_live_vehicles(connection)

    assert len(result.vehicles) == 1
    assert transport.paths() == [BY_GROUP] * 3


async def test_auth_rejection_falls_back_to_token_strategy(make_client, connection):
    client, transport = make_client(
        {
            BY_GROUP: [AUTH_ERROR],
            "Service/InitializeSession": ["<token>tok-1</token>"],
            "Service/ExecuteReturnSet": [{"gpsb_unitvehicle_filter_by_group": ROWS}],
        }
    )

    result = await client.fetch_live_vehicles(connection)

    assert len(result.vehicles) == 1
    # Auth rejection is not retried under the direct strategy
    assert transport.paths() == [
        BY_GROUP,
        "Service/InitializeSession",
        "Service/ExecuteReturnSet",
    ]
    routine_call = transport.calls[-1]
    assert routine_call["params"]["token"] == "tok-1"
    assert "<_name>gpsb_unitvehicle_filter_by_group</_name>" in (
        routine_call["params"]["value"]
    )
    assert routine_call["timeout"] == 20


async def test_token_rejection_invalidates_cache(fake_transport_factory, connection):
    transport = fake_transport_factory(
        {
            "Service/InitializeSession": [{"success": "tok-1"}],
            "Service/ExecuteReturnSet": [AUTH_ERROR],
        }
    )
    cache = TokenCache()
    provider = SessionTokenProvider(transport, cache, wait=wait_none())
    strategy = TokenRoutineStrategy(transport, provider, wait=wait_none())

    outcome = await strategy.attempt(connection, BY_GROUP, {"p_companyid": 1})

    assert outcome.auth_rejected is True
    assert isinstance(outcome.error, GpsBuddyAuthException)
    assert cache.token is None


async def test_session_tries_xml_then_json(fake_transport_factory, connection):
    responses = ["<html/>", {"Success": "json-token"}]
    transport = fake_transport_factory({"Service/InitializeSession": responses})
    provider = SessionTokenProvider(transport, TokenCache(), wait=wait_none())

    assert await provider.acquire(connection) == "json-token"
    return_types = [call["params"]["returnType"] for call in transport.calls]
    assert return_types == ["xml", "json"]
    assert transport.calls[0]["params"]["isToken"] == 0
    assert transport.calls[0]["timeout"] == 10


async def test_session_without_token_raises_summary(fake_transport_factory, connection):
    transport = fake_transport_factory({"Service/InitializeSession": [{"foo": "bar"}]})
    provider = SessionTokenProvider(transport, TokenCache(), wait=wait_none())

    with pytest.raises(GpsBuddyTokenException) as exc_info:
        await provider.acquire(connection)

    assert exc_info.value.summary == "object keys=[foo]"
    # 3 attempts x 2 return types
    assert len(transport.calls) == 6


async def test_direct_strategy_gives_up_after_three_attempts(
    fake_transport_factory, connection
):
    transport = fake_transport_factory(
        {BY_GROUP: [GpsBuddyHTTPException("http://gpsbuddy.test", 502)]}
    )
    strategy = DirectCredentialStrategy(transport, wait=wait_none())

    outcome = await strategy.attempt(connection, BY_GROUP, {})

    assert not outcome.ok
    assert isinstance(outcome.error, GpsBuddyHTTPException)
    assert len(transport.calls) == 3


async def test_missing_array_tries_next_candidate(make_client, connection):
    client, transport = make_client(
        {
            BY_GROUP: [{"unexpected": True}],
            "gpsb_unitvehicle_filter": [{"error": {"code": "X", "message": "boom"}}],
            "gpsb_unitvehicle_filter_2": [{"gpsb_unitvehicle_filter_2": []}],
        }
    )

    result = await client.fetch_live_vehicles(connection)

    assert result.meta.function_name == "gpsb_unitvehicle_filter_2"
    assert result.vehicles == []


async def test_all_candidates_failing_raises_fetch_exception(make_client, connection):
    client, transport = make_client(
        {
            BY_GROUP: [{"nothing": []}],
            "gpsb_unitvehicle_filter": [{"nothing": []}],
            "gpsb_unitvehicle_filter_2": [{"nothing": []}],
        }
    )

    with pytest.raises(GpsBuddyFetchException) as exc_info:
        await client.fetch_live_vehicles(connection)

    error = exc_info.value
    assert error.attempted == [
        BY_GROUP,
        "gpsb_unitvehicle_filter",
        "gpsb_unitvehicle_filter_2",
    ]
    assert isinstance(error.last_error, GpsBuddyResponseShapeException)
    assert error.__cause__ is error.last_error
    assert "gpsb_unitvehicle_filter_2" in str(error)

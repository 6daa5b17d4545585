"""
Failure Injection Tests.

Validates resilience against database pool exhaustion and directory
outages.
"""

import pytest
from sqlalchemy.exc import TimeoutError as PoolTimeoutError, OperationalError

from backend.app.core.exceptions import TransientStorageError
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError, retry_transient, is_transient_db_error
from backend.app.domain.billing.bill_engine import BillComputationEngine
from backend.app.services.directory import DirectoryClient, DirectoryConnectionError, DirectoryError


@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Test that circuit breaker opens after threshold failures."""
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=60)

    async def failing_func():
        raise ValueError("Boom")

    for _ in range(2):
        with pytest.raises(ValueError):
            await cb.call(failing_func)

    with pytest.raises(CircuitOpenError):
        await cb.call(failing_func)


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_recovers(mocker):
    cb = CircuitBreaker(failure_threshold=1, reset_timeout=0)

    async def failing_func():
        raise ValueError("Boom")

    async def ok_func():
        return "ok"

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    mocker.patch("backend.app.core.reliability.time.time", return_value=cb.last_failure_time + 1)
    assert await cb.call(ok_func) == "ok"
    assert cb.state == "CLOSED"


def test_transient_error_classification():
    assert is_transient_db_error(PoolTimeoutError("QueuePool limit of size 20 overflow 10 reached"))
    too_many = OperationalError("SELECT 1", {}, Exception("FATAL: sorry, too many clients already"))
    assert is_transient_db_error(too_many)
    syntax = OperationalError("SELEC 1", {}, Exception("syntax error"))
    assert not is_transient_db_error(syntax)
    assert not is_transient_db_error(ValueError("nope"))


@pytest.mark.asyncio
async def test_retry_transient_recovers(mocker):
    func = mocker.AsyncMock(side_effect=[PoolTimeoutError("pool exhausted"), "connected"])

    result = await retry_transient(func, attempts=2, base_delay=0)

    assert result == "connected"
    assert func.await_count == 2


@pytest.mark.asyncio
async def test_retry_transient_gives_up(mocker):
    func = mocker.AsyncMock(side_effect=PoolTimeoutError("pool exhausted"))

    with pytest.raises(TransientStorageError):
        await retry_transient(func, attempts=2, base_delay=0)
    assert func.await_count == 3


@pytest.mark.asyncio
async def test_retry_transient_does_not_retry_other_errors(mocker):
    func = mocker.AsyncMock(side_effect=KeyError("boom"))

    with pytest.raises(KeyError):
        await retry_transient(func, attempts=2, base_delay=0)
    assert func.await_count == 1


@pytest.mark.asyncio
async def test_storage_unavailable_maps_to_503(client, staff_headers, mocker):
    mocker.patch.object(
        BillComputationEngine, "run_billing_for_cycle", side_effect=TransientStorageError()
    )

    response = await client.post("/v1/billing/run", json={"year": 2568, "month": 1}, headers=staff_headers)

    assert response.status_code == 503
    assert response.json()["error_code"] == "ERR_DB_001"


@pytest.mark.asyncio
async def test_directory_outage_opens_circuit(mocker):
    client = DirectoryClient(
        url="ldap://unreachable",
        breaker=CircuitBreaker(failure_threshold=2, reset_timeout=60, expected_exceptions=(DirectoryConnectionError,))
    )
    sync_login = mocker.patch.object(client, "_authenticate_sync", side_effect=DirectoryConnectionError("timed out"))

    for _ in range(2):
        with pytest.raises(DirectoryConnectionError):
            await client.authenticate("staff.anan", "secret")

    with pytest.raises(DirectoryConnectionError) as exc_info:
        await client.authenticate("staff.anan", "secret")

    assert exc_info.value.code == DirectoryError.CONNECTION_ERROR
    assert "temporarily unavailable" in exc_info.value.message
    assert sync_login.call_count == 2


@pytest.mark.asyncio
async def test_bad_password_does_not_trip_circuit(mocker):
    client = DirectoryClient(
        url="ldap://dc",
        breaker=CircuitBreaker(failure_threshold=1, reset_timeout=60, expected_exceptions=(DirectoryConnectionError,))
    )
    mocker.patch.object(
        client, "_authenticate_sync",
        side_effect=DirectoryError(DirectoryError.INVALID_CREDENTIALS, "Invalid username or password")
    )

    for _ in range(3):
        with pytest.raises(DirectoryError) as exc_info:
            await client.authenticate("staff.anan", "wrong")
        assert exc_info.value.code == DirectoryError.INVALID_CREDENTIALS

    assert client.breaker.state == "CLOSED"


@pytest.mark.asyncio
async def test_missing_credentials_short_circuit():
    client = DirectoryClient(url="ldap://dc")
    with pytest.raises(DirectoryError) as exc_info:
        await client.authenticate("", "secret")
    assert exc_info.value.code == DirectoryError.MISSING_CREDENTIALS


@pytest.mark.asyncio
async def test_correlation_id_echoed(client):
    response = await client.get("/health", headers={"X-Correlation-ID": "corr-42"})

    assert response.status_code == 200
    assert response.headers["X-Correlation-ID"] == "corr-42"
    assert "X-Process-Time" in response.headers

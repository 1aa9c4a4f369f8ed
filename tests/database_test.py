from unittest.mock import AsyncMock, patch

import pytest
from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from src.fleet_gps.database.database import DatabaseManager
from src.fleet_gps.database.dependencies import verify_database


# region Fixtures
@pytest.fixture(autouse=True)
def reset_connection_flag():
    yield
    DatabaseManager.is_connected = False


# endregion


@patch("sqlalchemy.ext.asyncio.engine.AsyncEngine.connect")
async def test_connect_failure(mock_connect):
    DatabaseManager.is_connected = False
    mock_connect.side_effect = SQLAlchemyError("Connection error")
    with pytest.raises(SQLAlchemyError):
        await DatabaseManager.connect()
    assert DatabaseManager.is_connected is False


@patch("sqlalchemy.ext.asyncio.engine.AsyncEngine.connect")
async def test_connect_already_connected(mock_connect, caplog):
    DatabaseManager.is_connected = True
    with caplog.at_level("INFO"):
        await DatabaseManager.connect()
        assert DatabaseManager.is_connected is True
        assert "Already connected to the database" in caplog.text
    mock_connect.assert_not_called()


@patch("sqlalchemy.ext.asyncio.engine.AsyncEngine.dispose")
async def test_disconnect_success(mock_dispose):
    DatabaseManager.is_connected = True
    await DatabaseManager.disconnect()
    assert DatabaseManager.is_connected is False
    mock_dispose.assert_awaited_once()


@patch("sqlalchemy.ext.asyncio.engine.AsyncEngine.dispose")
async def test_disconnect_failure(mock_dispose):
    DatabaseManager.is_connected = True
    mock_dispose.side_effect = SQLAlchemyError("Disconnection error")
    with pytest.raises(SQLAlchemyError):
        await DatabaseManager.disconnect()
    assert DatabaseManager.is_connected is True


@patch("sqlalchemy.ext.asyncio.engine.AsyncEngine.connect")
async def test_reconnect_failure(mock_connect):
    DatabaseManager.is_connected = False
    with patch.object(DatabaseManager, "retry_interval", 0):
        mock_connect.side_effect = SQLAlchemyError("Reconnection error")
        with pytest.raises(SQLAlchemyError):
            await DatabaseManager.reconnect(max_attempts=1)


@patch("src.fleet_gps.database.database.SessionLocal")
async def test_get_client_success(mock_session):
    mock_session.return_value = AsyncMock()
    DatabaseManager.is_connected = True
    session = await DatabaseManager.get_client()
    assert isinstance(session, AsyncMock)


async def test_get_client_failure():
    DatabaseManager.is_connected = False
    with pytest.raises(RuntimeError):
        await DatabaseManager.get_client()


@patch("src.fleet_gps.database.dependencies.db.get_client")
async def test_verify_database_yields_and_closes_session(mock_get_client):
    session = AsyncMock()
    mock_get_client.return_value = session
    DatabaseManager.is_connected = True

    dependency = verify_database()
    assert await dependency.__anext__() is session
    with pytest.raises(StopAsyncIteration):
        await dependency.__anext__()
    session.close.assert_awaited_once()


@patch("src.fleet_gps.database.dependencies.db.get_client")
@patch("src.fleet_gps.database.dependencies.db.reconnect")
async def test_verify_database_reconnect_success(mock_reconnect, mock_get_client):
    DatabaseManager.is_connected = False
    mock_get_client.return_value = AsyncMock()

    session = await verify_database().__anext__()

    mock_reconnect.assert_awaited_once()
    assert isinstance(session, AsyncMock)


@patch("src.fleet_gps.database.dependencies.db.reconnect")
async def test_verify_database_reconnect_failure(mock_reconnect):
    DatabaseManager.is_connected = False
    mock_reconnect.side_effect = SQLAlchemyError("Reconnection error")
    with pytest.raises(HTTPException) as exc_info:
        await verify_database().__anext__()
    assert exc_info.value.status_code == status.HTTP_503_SERVICE_UNAVAILABLE

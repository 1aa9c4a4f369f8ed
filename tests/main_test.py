from http import HTTPStatus
from unittest.mock import AsyncMock, patch

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from src.fleet_gps.main import app, lifespan


async def test_sqlalchemy_exception_handler(async_client):
    """Test SQLAlchemy exception handler returns 503."""
    response = await async_client.get("/force-sqlalchemy-error")
    assert response.status_code == HTTPStatus.SERVICE_UNAVAILABLE
    assert "Database connection error" in response.json()["detail"]


@patch("src.fleet_gps.main.GpsRefreshScheduler")
@patch("src.fleet_gps.main.DatabaseManager.connect", new_callable=AsyncMock)
@patch("src.fleet_gps.main.DatabaseManager.disconnect", new_callable=AsyncMock)
@patch("src.fleet_gps.main.DatabaseManager.create_tables", new_callable=AsyncMock)
async def test_lifespan_startup_teardown(
    mock_create_tables,
    mock_disconnect,
    mock_connect,
    mock_scheduler,
):
    test_app = FastAPI(lifespan=lifespan)

    async with test_app.router.lifespan_context(test_app):
        mock_connect.assert_awaited_once()
        mock_create_tables.assert_awaited_once()
        mock_scheduler.return_value.run.assert_called_once()

    # teardown
    mock_scheduler.return_value.stop.assert_called_once()
    mock_disconnect.assert_awaited_once()


# Optional route for testing exception handler (not in main.py)
@app.get("/force-sqlalchemy-error")
async def force_sqlalchemy_error():
    raise SQLAlchemyError("Simulated DB error")

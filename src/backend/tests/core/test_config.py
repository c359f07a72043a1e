"""
Tests for settings validation and lifecycle handlers.
"""

import pytest
from fastapi import FastAPI
from pydantic import ValidationError

from core.config import Settings
from core.events import create_start_app_handler, create_stop_app_handler
from services.storage_service import LedgerStore


@pytest.mark.unit
class TestSettings:
    """Settings defaults and validators."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.FORCED_LOSS_PROBABILITY == 0.80
        assert settings.game_cooldown_ms == 24 * 3_600_000
        assert settings.MAX_REFERRALS_PER_IP_PER_HOUR == 3

    @pytest.mark.parametrize("probability", [-0.01, 1.01])
    def test_probability_out_of_range(self, probability):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, FORCED_LOSS_PROBABILITY=probability)

    def test_caps_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, MAX_SUSPICIOUS_ACTIONS=0)

    def test_cors_origins_list(self):
        settings = Settings(_env_file=None, CORS_ORIGINS="https://a.example, https://b.example")

        assert settings.cors_origins_list == ["https://a.example", "https://b.example"]

    def test_azure_tables_configured(self):
        assert Settings(_env_file=None, AZURE_STORAGE_TABLE_ENDPOINT="https://x.table.core.windows.net").azure_tables_configured
        assert not Settings(_env_file=None).azure_tables_configured


@pytest.mark.unit
class TestLifecycle:
    """Startup builds the engine, shutdown releases it."""

    async def test_start_and_stop(self):
        from services import engine as engine_module

        app = FastAPI()

        await create_start_app_handler(app)()
        assert app.state.engine is engine_module.get_engine()
        assert app.state.engine.store.backend_name == "in_memory"
        assert LedgerStore.NS_GAME_COOLDOWNS in app.state.engine.store._cache

        await create_stop_app_handler(app)()
        assert engine_module._engine is None

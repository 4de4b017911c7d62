"""
Integration Tests for the Profile Sync Coordinator

Tests profile fetch/create/update and the preferences upsert.
"""

from unittest.mock import AsyncMock

import pytest

from conftest import USER_ID
from cgpa_tracker.data_models import Profile
from cgpa_tracker.errors import CacheError, RemoteError, ValidationError
from cgpa_tracker.offline_cache import MemoryStore, OfflineCache
from cgpa_tracker.sync_coordinator import ProfileSyncCoordinator, SyncState

NEW_PROFILE = {"full_name": "Amina Nakato", "program": "BSc Computer Science"}


class TestProfile:
    """Tests for fetch(), create() and update()"""

    @pytest.mark.asyncio
    async def test_missing_profile(self, profile_coordinator):
        assert await profile_coordinator.fetch() is None
        assert profile_coordinator.no_data is True
        assert profile_coordinator.state is SyncState.RECONCILED

    @pytest.mark.asyncio
    async def test_create_fills_defaults(self, profile_coordinator, backend, offline_cache):
        profile = await profile_coordinator.create(NEW_PROFILE)

        assert profile.id == USER_ID
        assert profile.university == "ISBAT University"
        assert profile.country == "Uganda"
        assert backend.profiles[USER_ID]["program"] == "BSc Computer Science"
        assert await offline_cache.load_profile() == profile

    @pytest.mark.asyncio
    async def test_create_requires_program(self, profile_coordinator, backend):
        with pytest.raises(ValidationError) as excinfo:
            await profile_coordinator.create({"full_name": "Amina Nakato"})

        assert excinfo.value.errors["program"] == "Program is required"
        assert backend.profiles == {}

    @pytest.mark.asyncio
    async def test_fetch_existing_profile(self, profile_coordinator, backend):
        backend.profiles[USER_ID] = {"id": USER_ID, "full_name": "Amina Nakato", "program": "BSc CS"}

        profile = await profile_coordinator.fetch()

        assert profile.full_name == "Amina Nakato"
        assert profile_coordinator.stale is False

    @pytest.mark.asyncio
    async def test_update(self, profile_coordinator, backend):
        await profile_coordinator.create(NEW_PROFILE)

        profile = await profile_coordinator.update({"program": "  BSc Software Engineering "})

        assert profile.program == "BSc Software Engineering"
        assert backend.profiles[USER_ID]["program"] == "BSc Software Engineering"
        assert profile_coordinator.state is SyncState.RECONCILED

    @pytest.mark.asyncio
    async def test_failed_update_rolls_back(self, profile_coordinator, backend):
        before = await profile_coordinator.create(NEW_PROFILE)
        backend.update_profile = AsyncMock(side_effect=RemoteError("unavailable", 503))

        with pytest.raises(RemoteError):
            await profile_coordinator.update({"program": "BSc Software Engineering"})

        assert profile_coordinator.profile == before
        assert profile_coordinator.state is SyncState.ERRORED
        assert backend.update_profile.await_count == 2

    @pytest.mark.asyncio
    async def test_invalid_student_id(self, profile_coordinator, backend):
        await profile_coordinator.create(NEW_PROFILE)
        backend.update_profile = AsyncMock()

        with pytest.raises(ValidationError):
            await profile_coordinator.update({"student_id": "bad id!"})

        backend.update_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_offline_serves_cached_profile(self, profile_coordinator, offline_cache, probe):
        cached = Profile(id=USER_ID, full_name="Amina Nakato", program="BSc CS")
        await offline_cache.save_profile(cached)
        probe.online = False

        assert await profile_coordinator.fetch() == cached
        assert profile_coordinator.stale is True
        assert profile_coordinator.no_data is False

    @pytest.mark.asyncio
    async def test_offline_keeps_loaded_profile_when_cache_is_unwritable(self, backend, probe, no_sleep):
        class ReadOnlyStore(MemoryStore):
            async def set(self, key, value):
                raise CacheError("read-only")

        coordinator = ProfileSyncCoordinator(backend, OfflineCache(ReadOnlyStore()), probe, USER_ID, sleep=no_sleep)
        backend.profiles[USER_ID] = {"id": USER_ID, "full_name": "Amina Nakato", "program": "BSc CS"}
        loaded = await coordinator.fetch()
        probe.online = False

        assert await coordinator.fetch() == loaded
        assert coordinator.stale is True
        assert coordinator.no_data is False


class TestPreferences:
    """Tests for fetch_preferences() and update_preferences()"""

    @pytest.mark.asyncio
    async def test_defaults_created_on_first_fetch(self, profile_coordinator, backend):
        preferences = await profile_coordinator.fetch_preferences()

        assert preferences.default_ia_max == 30
        assert preferences.default_ue_max == 70
        assert backend.preferences[USER_ID]["haptic_enabled"] is True

    @pytest.mark.asyncio
    async def test_update_inserts_when_missing(self, profile_coordinator, backend):
        preferences = await profile_coordinator.update_preferences({"default_ue_max": 60})

        assert preferences.default_ue_max == 60
        assert backend.preferences[USER_ID]["default_ue_max"] == 60

    @pytest.mark.asyncio
    async def test_update_existing(self, profile_coordinator, backend):
        await profile_coordinator.fetch_preferences()

        preferences = await profile_coordinator.update_preferences({"notifications_enabled": False, "theme": "dark"})

        assert preferences.notifications_enabled is False
        assert "theme" not in backend.preferences[USER_ID]

    @pytest.mark.asyncio
    async def test_max_marks_must_be_positive(self, profile_coordinator, backend):
        with pytest.raises(ValidationError) as excinfo:
            await profile_coordinator.update_preferences({"default_ia_max": 0})

        assert excinfo.value.errors["default_ia_max"] == "IA max marks must be greater than 0"
        assert backend.preferences == {}

"""
Pytest Configuration and Fixtures

Provides common fixtures for all tests including:
- Sample courses and semesters
- In-memory cache store
- Fake backend and connectivity probe
"""

import itertools
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from unittest.mock import AsyncMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cgpa_tracker.data_models import Course, Semester
from cgpa_tracker.errors import RemoteError
from cgpa_tracker.offline_cache import MemoryStore, OfflineCache
from cgpa_tracker.retry import RetryPolicy
from cgpa_tracker.score_aggregator import apply_scores
from cgpa_tracker.sync_coordinator import ProfileSyncCoordinator, SemesterSyncCoordinator

USER_ID = "user-1"
SERVER_TIME = "2024-03-01T10:00:00"


def make_course(
    course_id: str,
    semester_id: str,
    credit_hours: int,
    ia_score: Optional[float],
    ue_score: Optional[float],
    name: str = "Course",
) -> Course:
    """Course with derived grade fields filled in from its scores"""
    fields = apply_scores(
        {"ia_score": ia_score, "ia_max": 30, "ue_score": ue_score, "ue_max": 70}
    )
    return Course(
        id=course_id,
        semester_id=semester_id,
        user_id=USER_ID,
        name=name,
        credit_hours=credit_hours,
        **fields,
    )


class FakeProbe:
    """Connectivity probe with a switchable answer"""

    def __init__(self, online: bool = True):
        self.online = online
        self.calls = 0

    async def is_online(self) -> bool:
        self.calls += 1
        return self.online


class FakeBackend:
    """In-memory BackendDataService with server-assigned ids and timestamps"""

    def __init__(self):
        self.semesters: Dict[str, Dict[str, Any]] = {}
        self.courses: Dict[str, Dict[str, Any]] = {}
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.preferences: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)

    def _stamp(self, prefix: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        return {**values, "id": f"{prefix}-{next(self._ids)}", "created_at": SERVER_TIME, "updated_at": SERVER_TIME}

    @staticmethod
    def _not_found(table: str) -> RemoteError:
        return RemoteError(f"No {table} row matched", status_code=404, code="PGRST116")

    # Seeding helpers
    def seed_semester(self, semester_number: int, **fields) -> Dict[str, Any]:
        row = self._stamp("sem", {"user_id": USER_ID, "semester_number": semester_number, **fields})
        self.semesters[row["id"]] = row
        return row

    def seed_course(self, semester_id: str, name: str, credit_hours: int, ia_score, ue_score) -> Dict[str, Any]:
        values = apply_scores(
            {
                "name": name,
                "credit_hours": credit_hours,
                "ia_score": ia_score,
                "ia_max": 30,
                "ue_score": ue_score,
                "ue_max": 70,
            }
        )
        row = self._stamp("course", {"user_id": USER_ID, "semester_id": semester_id, **values})
        self.courses[row["id"]] = row
        return row

    # Semesters / courses
    async def fetch_semesters(self, user_id: str) -> List[Dict[str, Any]]:
        rows = [dict(r) for r in self.semesters.values() if r["user_id"] == user_id]
        return sorted(rows, key=lambda r: r["semester_number"])

    async def fetch_courses(self, user_id: str) -> List[Dict[str, Any]]:
        return [dict(r) for r in self.courses.values() if r["user_id"] == user_id]

    async def fetch_semester(self, semester_id: str) -> Optional[Dict[str, Any]]:
        row = self.semesters.get(semester_id)
        return dict(row) if row else None

    async def fetch_semester_courses(self, semester_id: str) -> List[Dict[str, Any]]:
        return [dict(r) for r in self.courses.values() if r["semester_id"] == semester_id]

    async def fetch_course(self, course_id: str) -> Optional[Dict[str, Any]]:
        row = self.courses.get(course_id)
        return dict(row) if row else None

    async def insert_semester(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        row = self._stamp("sem", values)
        self.semesters[row["id"]] = row
        return dict(row)

    async def update_semester(self, semester_id: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        if semester_id not in self.semesters:
            raise self._not_found("semesters")
        self.semesters[semester_id].update(values)
        return dict(self.semesters[semester_id])

    async def delete_semester(self, semester_id: str) -> None:
        self.semesters.pop(semester_id, None)
        for course_id in [cid for cid, r in self.courses.items() if r["semester_id"] == semester_id]:
            del self.courses[course_id]

    async def insert_course(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        row = self._stamp("course", values)
        self.courses[row["id"]] = row
        return dict(row)

    async def update_course(self, course_id: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        if course_id not in self.courses:
            raise self._not_found("courses")
        self.courses[course_id].update(values)
        return dict(self.courses[course_id])

    async def delete_course(self, course_id: str) -> None:
        self.courses.pop(course_id, None)

    # Profile / preferences
    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        row = self.profiles.get(user_id)
        return dict(row) if row else None

    async def insert_profile(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        row = {**values, "created_at": SERVER_TIME, "updated_at": SERVER_TIME}
        self.profiles[row["id"]] = row
        return dict(row)

    async def update_profile(self, user_id: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        if user_id not in self.profiles:
            raise self._not_found("profiles")
        self.profiles[user_id].update(values)
        return dict(self.profiles[user_id])

    async def fetch_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        row = self.preferences.get(user_id)
        return dict(row) if row else None

    async def insert_preferences(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        row = {**values, "created_at": SERVER_TIME, "updated_at": SERVER_TIME}
        self.preferences[row["user_id"]] = row
        return dict(row)

    async def update_preferences(self, user_id: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        if user_id not in self.preferences:
            raise self._not_found("preferences")
        self.preferences[user_id].update(values)
        return dict(self.preferences[user_id])


@pytest.fixture
def sample_courses() -> List[Course]:
    """Three graded courses: 4 cr A, 3 cr B, 3 cr C+"""
    return [
        make_course("c1", "s1", 4, 26, 60, name="Calculus"),      # 86% -> A (5.0)
        make_course("c2", "s1", 3, 24, 50, name="Physics"),       # 74% -> B (4.0)
        make_course("c3", "s1", 3, 20, 47, name="Programming"),   # 67% -> C+ (3.5)
    ]


@pytest.fixture
def sample_semesters() -> List[Semester]:
    """Semester 1 (gpa 4.0, 4 cr) and semester 2 (gpa 3.0, 6 cr), out of order"""
    return [
        Semester(id="s2", user_id=USER_ID, semester_number=2, gpa=3.0, total_credits=6),
        Semester(id="s1", user_id=USER_ID, semester_number=1, gpa=4.0, total_credits=4),
    ]


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def offline_cache(memory_store) -> OfflineCache:
    return OfflineCache(memory_store)


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe(online=True)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Stand-in for asyncio.sleep so retries do not wait"""
    return AsyncMock(return_value=None)


@pytest.fixture
def coordinator(backend, offline_cache, probe, no_sleep) -> SemesterSyncCoordinator:
    return SemesterSyncCoordinator(
        backend,
        offline_cache,
        probe,
        USER_ID,
        read_policy=RetryPolicy(attempts=3),
        write_policy=RetryPolicy(attempts=2),
        sleep=no_sleep,
    )


@pytest.fixture
def profile_coordinator(backend, offline_cache, probe, no_sleep) -> ProfileSyncCoordinator:
    return ProfileSyncCoordinator(backend, offline_cache, probe, USER_ID, sleep=no_sleep)

#!/usr/bin/env python3
"""
SYNC COORDINATOR - Offline-capable, optimistically updated view of student data

ROOTS:
✅ SemesterSyncCoordinator: semesters + their courses (SemesterSnapshot)
✅ ProfileSyncCoordinator: student profile + preferences

FETCH:
1. Probe connectivity (bounded timeout)
2. Offline: serve the cached snapshot (stale), else keep an already loaded
   view (stale), else an empty one flagged no_data
3. Online: read from the backend with retries, overwrite the cache
4. Remote failure: fall back to the cache, else Errored + RemoteError
Concurrent fetch() calls share one in-flight task. Any mutation cancels it.

MUTATIONS:
Validate -> apply optimistically (temp-* ids, derived grade fields, semester
aggregates) -> remote write with retries -> commit or roll back. Every
mutation gets a monotonic sequence number; a confirmation older than the
newest local mutation of the same entity does not overwrite it.

After a course change is confirmed, the owning semester's gpa/total_credits
are pushed to the backend as a separate write, computed over the courses the
server has confirmed. That push failing is only logged; the next fetch
recomputes aggregates from the courses anyway.

Priority: Core state for every screen
Dependencies: asyncio, pydantic models, backend_client, offline_cache
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Tuple, TypeVar

from pydantic import ValidationError as PydanticValidationError

from .analytics import AnalyticsData, build_analytics
from .backend_client import BackendDataService, Row
from .connectivity import ConnectivityProbe
from .data_models import Course, Preferences, Profile, Semester, SemesterSnapshot
from .errors import RemoteError, ValidationError
from .gpa_calculator import GPATrend, cgpa_of, gpa_of, semester_trend, total_credits_of
from .grade_scale import DEFAULT_IA_MAX, DEFAULT_UE_MAX
from .offline_cache import OfflineCache
from .retry import READ_POLICY, WRITE_POLICY, RetryPolicy, with_retry
from .score_aggregator import apply_scores
from .settings import Settings, get_settings
from .transactions import (
    Mutation,
    PendingTransaction,
    apply_mutation,
    build_snapshot,
    commit_mutation,
    confirmed_semesters,
    new_temp_id,
    rollback,
    with_aggregates,
)
from .validation import (
    as_fields,
    ensure_valid,
    parse_date,
    sanitize_string,
    validate_course,
    validate_profile,
    validate_semester,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEMESTER_TABLES = ("semesters", "courses")
PROFILE_FIELDS = ("full_name", "university", "program", "country", "student_id", "start_year", "avatar_url")
PREFERENCE_FIELDS = ("default_ia_max", "default_ue_max", "notifications_enabled", "haptic_enabled")


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    OPTIMISTIC_PENDING = "optimistic_pending"
    RECONCILED = "reconciled"
    ERRORED = "errored"


def _payload(values: Mapping[str, Any]) -> Dict[str, Any]:
    """JSON-ready copy of a values dict (dates as ISO strings)"""
    return {
        key: value.isoformat() if isinstance(value, (date, datetime)) else value
        for key, value in values.items()
    }


def _parsed(parse: Callable[[], T]) -> T:
    """Run a model parse, reporting malformed backend rows as RemoteError"""
    try:
        return parse()
    except PydanticValidationError as e:
        raise RemoteError(f"Backend returned a malformed row ({e.error_count()} errors)") from e


def _clean_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return value
    value = sanitize_string(value)
    return value or None


def _row_id(row: Optional[Row], fallback: str) -> str:
    return str(row["id"]) if row and row.get("id") is not None else fallback


class _SyncRoot(ABC):
    """State, observers and the shared fetch task common to both roots"""

    def __init__(
        self,
        backend: BackendDataService,
        cache: OfflineCache,
        probe: ConnectivityProbe,
        user_id: str,
        read_policy: RetryPolicy = READ_POLICY,
        write_policy: RetryPolicy = WRITE_POLICY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.backend = backend
        self.cache = cache
        self.probe = probe
        self.user_id = user_id
        self.read_policy = read_policy
        self.write_policy = write_policy
        self._sleep = sleep
        self._clock = clock

        self.state = SyncState.IDLE
        self.last_error: Optional[BaseException] = None
        self.no_data = False
        self._observers: List[Callable[[Any], None]] = []
        self._fetch_task: Optional[asyncio.Task] = None
        self._sequence = 0

    @classmethod
    def from_settings(
        cls,
        backend: BackendDataService,
        cache: OfflineCache,
        user_id: str,
        settings: Optional[Settings] = None,
    ):
        """Build a coordinator with probe and retry policies taken from Settings"""
        settings = settings or get_settings()
        probe = ConnectivityProbe(settings.CONNECTIVITY_URL, settings.CONNECTIVITY_TIMEOUT)
        return cls(
            backend,
            cache,
            probe,
            user_id,
            read_policy=RetryPolicy(settings.READ_RETRIES, settings.RETRY_BASE_DELAY, settings.RETRY_MAX_DELAY),
            write_policy=RetryPolicy(settings.WRITE_RETRIES, settings.RETRY_BASE_DELAY, settings.RETRY_MAX_DELAY),
        )

    # =========================
    # Observers
    # =========================

    def subscribe(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Call callback(coordinator) on every state or data change"""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._observers):
            try:
                callback(self)
            except Exception:
                logger.exception(f"Observer {callback!r} failed")

    def _set_state(self, state: SyncState) -> None:
        if state != self.state:
            logger.debug(f"{type(self).__name__}: {self.state.value} -> {state.value}")
            self.state = state
        self._notify()

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    # =========================
    # Backend access
    # =========================

    async def _read(self, call: Callable[[], Awaitable[T]], description: str) -> T:
        return await with_retry(call, self.read_policy, description, self._sleep)

    async def _write(self, call: Callable[[], Awaitable[T]], description: str) -> T:
        return await with_retry(call, self.write_policy, description, self._sleep)

    # =========================
    # Fetch task
    # =========================

    @abstractmethod
    async def _run_fetch(self) -> Tuple[Any, Optional[RemoteError]]:
        """Load the root's data; returns (value, error) so shared callers can re-raise"""

    def _start_fetch(self) -> asyncio.Task:
        if self._fetch_task is None or self._fetch_task.done():
            self._fetch_task = asyncio.get_running_loop().create_task(self._run_fetch())
        return self._fetch_task

    async def _shared_fetch(self, current: Callable[[], Any]) -> Any:
        """Await the in-flight fetch; a fetch cancelled by a mutation yields the current view"""
        task = self._start_fetch()
        try:
            value, error = await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                logger.debug("Fetch superseded by a local mutation")
                return current()
            raise
        if error is not None:
            raise error
        return value

    def _cancel_fetch(self) -> None:
        if self._fetch_task is not None and not self._fetch_task.done():
            logger.debug("Cancelling in-flight fetch")
            self._fetch_task.cancel()

    def close(self) -> None:
        """Cancel in-flight work and drop observers"""
        self._cancel_fetch()
        self._observers.clear()


class SemesterSyncCoordinator(_SyncRoot):
    """
    Owner of the semester/course snapshot

    Readers get immutable SemesterSnapshot objects; all writes go through the
    mutation methods, which apply optimistically and reconcile with the
    backend.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._snapshot = SemesterSnapshot()
        self._version = 0
        self._pending: Dict[int, PendingTransaction] = {}
        self._entity_seq: Dict[str, int] = {}
        self._id_map: Dict[str, str] = {}
        self._creates: Dict[str, asyncio.Future] = {}
        self._failed_creates: Set[str] = set()
        self._refetch_requested = False
        self._loaded = False

    # =========================
    # Read accessors
    # =========================

    @property
    def snapshot(self) -> SemesterSnapshot:
        return self._snapshot

    @property
    def semesters(self) -> Tuple[Semester, ...]:
        return self._snapshot.semesters

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def resolve_id(self, entity_id: str) -> str:
        """Server id for a temp id that has been confirmed, else the id unchanged"""
        return self._id_map.get(entity_id, entity_id)

    def get_semester(self, semester_id: str) -> Optional[Semester]:
        return self._snapshot.get_semester(self.resolve_id(semester_id))

    def get_course(self, course_id: str) -> Optional[Course]:
        return self._snapshot.get_course(self.resolve_id(course_id))

    def cgpa(self) -> Optional[float]:
        return cgpa_of(self._snapshot.semesters)

    def trend(self) -> GPATrend:
        return semester_trend(self._snapshot.semesters)

    def analytics(self) -> AnalyticsData:
        return build_analytics(self._snapshot.semesters)

    def _set_snapshot(self, snapshot: SemesterSnapshot) -> None:
        if snapshot is self._snapshot:
            return
        self._snapshot = snapshot
        self._version += 1
        self._notify()

    # =========================
    # Fetch
    # =========================

    async def fetch(self) -> SemesterSnapshot:
        """
        Load semesters from the backend, or the cache when offline

        Returns:
            The snapshot now held by the coordinator

        Raises:
            RemoteError: Backend failed and nothing is cached
        """
        if self._pending:
            # Would overwrite optimistic state; refetch once writes settle
            self._refetch_requested = True
            return self._snapshot
        return await self._shared_fetch(lambda: self._snapshot)

    async def _serve_cache(self) -> Optional[SemesterSnapshot]:
        cached = await self.cache.load_snapshot()
        if cached is not None:
            self.no_data = False
            self._loaded = True
            self._set_snapshot(cached)
        return cached

    async def _run_fetch(self) -> Tuple[SemesterSnapshot, Optional[RemoteError]]:
        self._set_state(SyncState.FETCHING)

        if not await self.probe.is_online():
            if await self._serve_cache() is not None:
                logger.info(f"Offline, serving {len(self._snapshot.semesters)} cached semesters")
            elif self._loaded:
                logger.warning("Offline and the semester cache is empty, keeping the loaded semesters")
                self.no_data = False
                self._set_snapshot(self._snapshot.model_copy(update={"stale": True}))
            else:
                logger.info("Offline with no cached semesters")
                self.no_data = True
                self._set_snapshot(SemesterSnapshot(stale=True))
            self._set_state(SyncState.RECONCILED)
            return self._snapshot, None

        try:
            semester_rows = await self._read(lambda: self.backend.fetch_semesters(self.user_id), "fetch semesters")
            course_rows = await self._read(lambda: self.backend.fetch_courses(self.user_id), "fetch courses")
            snapshot = _parsed(lambda: build_snapshot(semester_rows, course_rows, last_sync=self._clock()))
        except RemoteError as e:
            self.last_error = e
            if await self._serve_cache() is not None:
                logger.warning(f"Fetching semesters failed, serving cached copy: {e}")
                self._set_state(SyncState.RECONCILED)
                return self._snapshot, None
            logger.error(f"Fetching semesters failed with nothing cached: {e}")
            self._set_state(SyncState.ERRORED)
            return self._snapshot, e

        await self.cache.save_semesters(list(snapshot.semesters), snapshot.last_sync)
        self.no_data = False
        self._loaded = True
        self.last_error = None
        if not self._pending:
            self._forget_settled()
        self._set_snapshot(snapshot)
        self._set_state(SyncState.RECONCILED)
        logger.info(
            f"Fetched {len(snapshot.semesters)} semesters with {len(snapshot.all_courses())} courses"
        )
        return snapshot, None

    def handle_remote_change(self, table: str, record: Optional[Mapping[str, Any]] = None) -> Optional[asyncio.Task]:
        """
        Realtime change notification for this user's rows

        Schedules a refetch of the semester root, or defers it until pending
        mutations settle.
        """
        if table not in SEMESTER_TABLES:
            return None
        record_id = record.get("id") if record else None
        logger.info(f"Remote change on {table} ({record_id}), invalidating semesters")
        if self._pending:
            self._refetch_requested = True
            return None
        return self._start_fetch()

    def _maybe_refetch(self) -> None:
        if self._refetch_requested and not self._pending:
            self._refetch_requested = False
            self._start_fetch()

    # =========================
    # Transactions
    # =========================

    async def _resolve_server_id(self, entity_id: str) -> str:
        """Wait for a pending create so dependent writes use the server id"""
        if entity_id in self._id_map:
            return self._id_map[entity_id]
        future = self._creates.get(entity_id)
        if future is None:
            return entity_id
        server_id = await future
        if server_id is None:
            raise RemoteError(f"{entity_id} was never created on the server")
        return server_id

    def _is_orphaned(self, mutation: Mutation) -> bool:
        return mutation.entity_id in self._failed_creates or mutation.semester_id in self._failed_creates

    def _forget_settled(self) -> None:
        """Drop id and sequence bookkeeping; only valid with nothing pending"""
        self._entity_seq.clear()
        self._id_map.clear()
        self._failed_creates.clear()

    async def _transact(self, mutation: Mutation, remote: Callable[[], Awaitable[Optional[Row]]]) -> Optional[Row]:
        self._cancel_fetch()
        if not self._pending:
            self._forget_settled()

        txn = PendingTransaction(
            previous_snapshot=self._snapshot,
            mutation=mutation,
            sequence=self._next_sequence(),
            applied_version=self._version + 1,
        )
        self._pending[txn.sequence] = txn
        self._entity_seq[mutation.entity_id] = txn.sequence
        if mutation.kind == "create":
            self._creates[mutation.entity_id] = asyncio.get_running_loop().create_future()

        self._set_snapshot(apply_mutation(self._snapshot, mutation))
        self._set_state(SyncState.OPTIMISTIC_PENDING)

        try:
            row = await remote()
            self._commit(txn, row)
        except (RemoteError, asyncio.CancelledError) as e:
            del self._pending[txn.sequence]
            self._roll_back(txn, e)
            raise

        del self._pending[txn.sequence]
        await self._after_commit(txn)
        return row

    def _commit(self, txn: PendingTransaction, row: Optional[Row]) -> None:
        mutation = txn.mutation
        key = self.resolve_id(mutation.entity_id)
        superseded = self._entity_seq.get(key, 0) > txn.sequence
        if superseded:
            logger.warning(
                f"Result of {mutation.kind} {mutation.entity} {key} (seq {txn.sequence}) "
                f"is older than a newer local change; keeping the local value"
            )

        snapshot = _parsed(lambda: commit_mutation(self._snapshot, txn, row, superseded))

        if mutation.kind == "create":
            server_id = str(row["id"])
            self._id_map[mutation.entity_id] = server_id
            if mutation.entity_id in self._entity_seq:
                self._entity_seq[server_id] = self._entity_seq.pop(mutation.entity_id)
            self._creates.pop(mutation.entity_id).set_result(server_id)

        self._loaded = True
        self._set_snapshot(snapshot)
        logger.info(f"Committed {mutation.kind} {mutation.entity} {self.resolve_id(mutation.entity_id)}")

    def _roll_back(self, txn: PendingTransaction, error: BaseException) -> None:
        mutation = txn.mutation
        if mutation.kind == "create":
            self._failed_creates.add(mutation.entity_id)
            self._creates.pop(mutation.entity_id).set_result(None)

        key = self.resolve_id(mutation.entity_id)
        superseded = mutation.kind == "update" and self._entity_seq.get(key, 0) > txn.sequence
        if superseded or (mutation.kind != "create" and self._is_orphaned(mutation)):
            logger.warning(f"{mutation.kind} {mutation.entity} {key} failed; entity already changed locally")
        else:
            self._set_snapshot(rollback(self._snapshot, txn, self._version, key))
            logger.warning(f"Rolled back {mutation.kind} {mutation.entity} {key}: {error}")

        self.last_error = error
        self._set_state(SyncState.ERRORED)
        self._maybe_refetch()

    async def _after_commit(self, txn: PendingTransaction) -> None:
        mutation = txn.mutation
        await self._persist()
        if mutation.entity == "course" and mutation.semester_id:
            await self._push_aggregates(self.resolve_id(mutation.semester_id))

        if not self._pending:
            self.last_error = None
            self._set_state(SyncState.RECONCILED)
            self._maybe_refetch()

    async def _persist(self) -> None:
        await self.cache.save_semesters(
            confirmed_semesters(self._snapshot), self._snapshot.last_sync or self._clock()
        )

    def _confirmed_courses(self, semester: Semester) -> List[Course]:
        """
        A semester's courses as the server currently holds them

        Courses still being created are left out; courses with a pending
        update or delete count with their value from before the first
        pending change.
        """
        confirmed = {course.id: course for course in semester.courses if not course.is_optimistic}
        seen: Set[str] = set()
        for sequence in sorted(self._pending):
            txn = self._pending[sequence]
            mutation = txn.mutation
            if mutation.entity != "course" or mutation.kind == "create":
                continue
            course_id = self.resolve_id(mutation.entity_id)
            if course_id in seen:
                continue
            seen.add(course_id)
            before = txn.previous_snapshot.get_course(mutation.entity_id)
            if before is None or self.resolve_id(before.semester_id) != semester.id:
                continue
            before = before.model_copy(update={"id": course_id, "semester_id": semester.id})
            if not before.is_optimistic:
                confirmed[course_id] = before
        return list(confirmed.values())

    async def _push_aggregates(self, semester_id: str) -> None:
        """Write a semester's gpa/total_credits over its confirmed courses to the backend"""
        semester = self._snapshot.get_semester(semester_id)
        if semester is None or semester.is_optimistic:
            return
        confirmed = self._confirmed_courses(semester)
        values = {
            "gpa": gpa_of(confirmed),
            "total_credits": total_credits_of(confirmed),
            "updated_at": self._clock().isoformat(),
        }
        try:
            await self._write(lambda: self.backend.update_semester(semester_id, values), "update semester aggregates")
        except RemoteError as e:
            logger.warning(f"Failed to update aggregates of semester {semester_id}: {e}")

    # =========================
    # Semester mutations
    # =========================

    def _require_semester(self, semester_id: str) -> Semester:
        semester = self.get_semester(semester_id)
        if semester is None:
            raise LookupError(f"Semester {semester_id} not found")
        return semester

    @staticmethod
    def _semester_values(fields: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "semester_number": int(fields["semester_number"]),
            "name": _clean_text(fields.get("name")),
            "start_date": parse_date(fields.get("start_date")),
            "end_date": parse_date(fields.get("end_date")),
        }

    async def add_semester(self, data: Any) -> Optional[Semester]:
        """
        Create a semester

        Raises:
            ValidationError: Bad form input (nothing is applied)
            RemoteError: Backend rejected the write (view rolled back)
        """
        fields = dict(as_fields(data))
        ensure_valid(validate_semester(fields, self._snapshot.semester_numbers))

        values = {"user_id": self.user_id, **self._semester_values(fields)}
        temp_id = new_temp_id()

        async def remote():
            return await self._write(lambda: self.backend.insert_semester(_payload(values)), "insert semester")

        row = await self._transact(Mutation("semester", "create", temp_id, values=values), remote)
        return self.get_semester(_row_id(row, temp_id))

    async def update_semester(self, semester_id: str, data: Any) -> Optional[Semester]:
        current = self._require_semester(semester_id)
        fields = {
            "semester_number": current.semester_number,
            "name": current.name,
            "start_date": current.start_date,
            "end_date": current.end_date,
            **as_fields(data),
        }
        others = [s.semester_number for s in self._snapshot.semesters if s.id != current.id]
        ensure_valid(validate_semester(fields, others))
        values = self._semester_values(fields)

        async def remote():
            server_id = await self._resolve_server_id(current.id)
            payload = _payload({**values, "updated_at": self._clock()})
            return await self._write(lambda: self.backend.update_semester(server_id, payload), "update semester")

        row = await self._transact(Mutation("semester", "update", current.id, values=values), remote)
        return self.get_semester(_row_id(row, current.id))

    async def delete_semester(self, semester_id: str) -> None:
        """Delete a semester and, with it, its courses"""
        current = self._require_semester(semester_id)

        async def remote():
            server_id = await self._resolve_server_id(current.id)
            await self._write(lambda: self.backend.delete_semester(server_id), "delete semester")

        await self._transact(Mutation("semester", "delete", current.id), remote)

    async def recalculate_semester_gpa(self, semester_id: str) -> Optional[float]:
        """Recompute a semester's aggregates from its courses and push them"""
        semester = self._require_semester(semester_id)
        recomputed = with_aggregates(semester)
        if recomputed != semester:
            self._set_snapshot(
                self._snapshot.model_copy(
                    update={"semesters": tuple(recomputed if s.id == semester.id else s for s in self._snapshot.semesters)}
                )
            )
            await self._persist()
        await self._push_aggregates(semester.id)
        return recomputed.gpa

    # =========================
    # Course mutations
    # =========================

    def _require_course(self, course_id: str) -> Course:
        course = self.get_course(course_id)
        if course is None:
            raise LookupError(f"Course {course_id} not found")
        return course

    @staticmethod
    def _course_values(fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Normalised course fields with grade fields derived from the scores"""
        return apply_scores(
            {
                "name": _clean_text(fields.get("name")),
                "credit_hours": int(fields["credit_hours"]),
                "ia_score": fields.get("ia_score"),
                "ia_max": fields.get("ia_max"),
                "ue_score": fields.get("ue_score"),
                "ue_max": fields.get("ue_max"),
            }
        )

    async def add_course(self, semester_id: str, data: Any) -> Optional[Course]:
        """
        Add a course to a semester

        Derived grade fields and the semester's GPA update immediately; the
        backend write follows.
        """
        semester = self._require_semester(semester_id)
        fields = {"ia_max": DEFAULT_IA_MAX, "ue_max": DEFAULT_UE_MAX, **as_fields(data)}
        ensure_valid(validate_course(fields))

        values = {"user_id": self.user_id, **self._course_values(fields)}
        temp_id = new_temp_id()

        async def remote():
            server_semester_id = await self._resolve_server_id(semester.id)
            payload = _payload({**values, "semester_id": server_semester_id})
            return await self._write(lambda: self.backend.insert_course(payload), "insert course")

        mutation = Mutation("course", "create", temp_id, semester_id=semester.id, values=values)
        row = await self._transact(mutation, remote)
        return self.get_course(_row_id(row, temp_id))

    async def update_course(self, course_id: str, data: Any) -> Optional[Course]:
        current = self._require_course(course_id)
        fields = {
            "name": current.name,
            "credit_hours": current.credit_hours,
            "ia_score": current.ia_score,
            "ia_max": current.ia_max,
            "ue_score": current.ue_score,
            "ue_max": current.ue_max,
            **as_fields(data),
        }
        ensure_valid(validate_course(fields))
        values = self._course_values(fields)

        async def remote():
            server_id = await self._resolve_server_id(current.id)
            payload = _payload({**values, "updated_at": self._clock()})
            return await self._write(lambda: self.backend.update_course(server_id, payload), "update course")

        mutation = Mutation("course", "update", current.id, semester_id=current.semester_id, values=values)
        row = await self._transact(mutation, remote)
        return self.get_course(_row_id(row, current.id))

    async def delete_course(self, course_id: str) -> None:
        current = self._require_course(course_id)

        async def remote():
            server_id = await self._resolve_server_id(current.id)
            await self._write(lambda: self.backend.delete_course(server_id), "delete course")

        await self._transact(Mutation("course", "delete", current.id, semester_id=current.semester_id), remote)


class ProfileSyncCoordinator(_SyncRoot):
    """Owner of the student profile and preferences"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._profile: Optional[Profile] = None
        self._confirmed: Optional[Profile] = None
        self._confirmed_seq = 0
        self._pending: Dict[int, Dict[str, Any]] = {}
        self._preferences: Optional[Preferences] = None
        self.stale = False

    @property
    def profile(self) -> Optional[Profile]:
        return self._profile

    @property
    def preferences(self) -> Optional[Preferences]:
        return self._preferences

    async def fetch(self) -> Optional[Profile]:
        """Load the profile (None when the student has not created one)"""
        if self._pending:
            return self._profile
        return await self._shared_fetch(lambda: self._profile)

    def _set_profile(self, profile: Optional[Profile], stale: bool) -> None:
        self._profile = self._confirmed = profile
        self._confirmed_seq = self._sequence
        self.stale = stale
        self._notify()

    async def _run_fetch(self) -> Tuple[Optional[Profile], Optional[RemoteError]]:
        self._set_state(SyncState.FETCHING)

        if not await self.probe.is_online():
            cached = await self.cache.load_profile()
            if cached is None and self._confirmed is not None:
                logger.warning("Offline and the profile cache is empty, keeping the loaded profile")
                cached = self._confirmed
            else:
                logger.info(f"Offline, {'serving cached' if cached else 'no cached'} profile")
            self.no_data = cached is None
            self._set_profile(cached, stale=True)
            self._set_state(SyncState.RECONCILED)
            return cached, None

        try:
            row = await self._read(lambda: self.backend.fetch_profile(self.user_id), "fetch profile")
            profile = _parsed(lambda: Profile.model_validate(row)) if row else None
        except RemoteError as e:
            self.last_error = e
            cached = await self.cache.load_profile()
            if cached is not None:
                logger.warning(f"Fetching profile failed, serving cached copy: {e}")
                self._set_profile(cached, stale=True)
                self._set_state(SyncState.RECONCILED)
                return cached, None
            logger.error(f"Fetching profile failed with nothing cached: {e}")
            self._set_state(SyncState.ERRORED)
            return None, e

        if profile is not None:
            await self.cache.save_profile(profile)
        self.no_data = profile is None
        self.last_error = None
        self._set_profile(profile, stale=False)
        self._set_state(SyncState.RECONCILED)
        return profile, None

    @staticmethod
    def _profile_values(data: Any) -> Dict[str, Any]:
        fields = as_fields(data)
        return {name: _clean_text(fields[name]) for name in PROFILE_FIELDS if name in fields}

    async def create(self, data: Any) -> Profile:
        """Create the student's profile (university/country defaulted)"""
        values = {
            "university": Profile.model_fields["university"].default,
            "country": Profile.model_fields["country"].default,
            **{k: v for k, v in self._profile_values(data).items() if v is not None},
        }
        ensure_valid(validate_profile(values))

        try:
            row = await self._write(
                lambda: self.backend.insert_profile(_payload({"id": self.user_id, **values})), "insert profile"
            )
            profile = _parsed(lambda: Profile.model_validate(row))
        except RemoteError as e:
            self.last_error = e
            self._set_state(SyncState.ERRORED)
            raise

        await self.cache.save_profile(profile)
        self.no_data = False
        self._set_profile(profile, stale=False)
        self._set_state(SyncState.RECONCILED)
        return profile

    def _replay(self) -> Optional[Profile]:
        """Confirmed profile with still-pending updates applied in order"""
        profile = self._confirmed
        if profile is None:
            return None
        for sequence in sorted(self._pending):
            profile = Profile.model_validate({**profile.model_dump(), **self._pending[sequence]})
        return profile

    async def update(self, data: Any) -> Profile:
        """Optimistically update profile fields"""
        current = self._profile
        if current is None:
            raise LookupError("No profile loaded")
        values = self._profile_values(data)
        ensure_valid(validate_profile({**current.model_dump(include=set(PROFILE_FIELDS)), **values}))

        self._cancel_fetch()
        if self._confirmed is None:
            self._confirmed = current
        sequence = self._next_sequence()
        self._pending[sequence] = values
        self._profile = self._replay()
        self._set_state(SyncState.OPTIMISTIC_PENDING)

        try:
            row = await self._write(
                lambda: self.backend.update_profile(self.user_id, _payload({**values, "updated_at": self._clock()})),
                "update profile",
            )
            server = _parsed(lambda: Profile.model_validate(row))
        except (RemoteError, asyncio.CancelledError) as e:
            del self._pending[sequence]
            self._profile = self._replay()
            self.last_error = e
            logger.warning(f"Rolled back profile update (seq {sequence}): {e}")
            self._set_state(SyncState.ERRORED)
            raise

        del self._pending[sequence]
        if sequence > self._confirmed_seq:
            self._confirmed, self._confirmed_seq = server, sequence
        else:
            logger.warning(f"Discarding stale profile update result (seq {sequence})")
        self._profile = self._replay()
        await self.cache.save_profile(self._confirmed)
        if not self._pending:
            self.last_error = None
            self._set_state(SyncState.RECONCILED)
        else:
            self._notify()
        return self._profile

    # =========================
    # Preferences
    # =========================

    async def fetch_preferences(self) -> Preferences:
        """Load preferences, creating the defaults on first use"""
        row = await self._read(lambda: self.backend.fetch_preferences(self.user_id), "fetch preferences")
        if row is None:
            logger.info("No preferences stored yet, creating defaults")
            defaults = Preferences(user_id=self.user_id).model_dump(exclude={"created_at", "updated_at"})
            row = await self._write(lambda: self.backend.insert_preferences(defaults), "insert preferences")
        self._preferences = _parsed(lambda: Preferences.model_validate(row))
        self._notify()
        return self._preferences

    async def update_preferences(self, data: Mapping[str, Any]) -> Preferences:
        """Update preferences, inserting the row when none exists"""
        values = {name: data[name] for name in PREFERENCE_FIELDS if name in data}
        errors = {
            name: f"{label} max marks must be greater than 0"
            for name, label in (("default_ia_max", "IA"), ("default_ue_max", "UE"))
            if name in values and not (isinstance(values[name], (int, float)) and values[name] > 0)
        }
        if errors:
            raise ValidationError(errors)

        payload = {**values, "updated_at": self._clock().isoformat()}
        try:
            row = await self._write(
                lambda: self.backend.update_preferences(self.user_id, payload), "update preferences"
            )
        except RemoteError as e:
            if not e.is_not_found:
                raise
            row = await self._write(
                lambda: self.backend.insert_preferences({"user_id": self.user_id, **payload}), "insert preferences"
            )
        self._preferences = _parsed(lambda: Preferences.model_validate(row))
        self._notify()
        return self._preferences


__all__ = [
    "SyncState",
    "SemesterSyncCoordinator",
    "ProfileSyncCoordinator",
]

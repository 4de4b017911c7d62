#!/usr/bin/env python3
"""
TRANSACTIONS - Pure optimistic-update operations over the semester snapshot

LIFECYCLE OF A MUTATION:
1. apply_mutation(): Change the local view before the backend answers
2. commit_mutation(): Swap the optimistic entity for the server's copy
3. rollback(): Undo the optimistic change when the backend call fails

Each PendingTransaction carries the snapshot it was applied to, the mutation
and a monotonic local sequence number. Semester GPA/credit aggregates are
recomputed from the course set whenever a course changes, so every snapshot
returned here satisfies gpa == gpa_of(courses).

Nothing in this module performs I/O or keeps state.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Literal, Mapping, Optional, Tuple

from .data_models import TEMP_ID_PREFIX, Course, Semester, SemesterSnapshot
from .gpa_calculator import gpa_of, total_credits_of

EntityKind = Literal["semester", "course"]
MutationKind = Literal["create", "update", "delete"]

# Fields the server assigns on insert; kept from the server copy even when a
# newer local edit supersedes the insert's values
SERVER_ASSIGNED_FIELDS = ("id", "user_id", "created_at", "updated_at")


@dataclass(frozen=True)
class Mutation:
    """One local change to a course or semester"""
    entity: EntityKind
    kind: MutationKind
    entity_id: str
    semester_id: Optional[str] = None
    values: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PendingTransaction:
    """An applied but unconfirmed mutation"""
    previous_snapshot: SemesterSnapshot
    mutation: Mutation
    sequence: int
    applied_version: int = 0


def new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{int(datetime.now().timestamp() * 1000)}-{uuid.uuid4().hex[:6]}"


def with_aggregates(semester: Semester) -> Semester:
    """Semester with gpa/total_credits recomputed from its courses"""
    return semester.model_copy(
        update={
            "gpa": gpa_of(semester.courses),
            "total_credits": total_credits_of(semester.courses),
        }
    )


def _ordered(semesters: Iterable[Semester]) -> Tuple[Semester, ...]:
    return tuple(sorted(semesters, key=lambda s: s.semester_number))


def _with_semesters(snapshot: SemesterSnapshot, semesters: Iterable[Semester]) -> SemesterSnapshot:
    return snapshot.model_copy(update={"semesters": _ordered(semesters)})


def _semester_index(snapshot: SemesterSnapshot, semester_id: str) -> Optional[int]:
    for index, semester in enumerate(snapshot.semesters):
        if semester.id == semester_id:
            return index
    return None


def _locate_course(snapshot: SemesterSnapshot, course_id: str) -> Optional[Tuple[int, int]]:
    for s_index, semester in enumerate(snapshot.semesters):
        for c_index, course in enumerate(semester.courses):
            if course.id == course_id:
                return s_index, c_index
    return None


def _update_semester_at(
    snapshot: SemesterSnapshot, index: int, change: Callable[[Semester], Optional[Semester]]
) -> SemesterSnapshot:
    """Replace (or drop, when change returns None) the semester at index"""
    semesters: List[Semester] = list(snapshot.semesters)
    changed = change(semesters[index])
    if changed is None:
        del semesters[index]
    else:
        semesters[index] = changed
    return _with_semesters(snapshot, semesters)


def _set_courses(semester: Semester, courses: Iterable[Course]) -> Semester:
    return with_aggregates(semester.model_copy(update={"courses": tuple(courses)}))


def _replace_course(snapshot: SemesterSnapshot, course_id: str, course: Optional[Course]) -> SemesterSnapshot:
    location = _locate_course(snapshot, course_id)
    if location is None:
        return snapshot
    s_index, c_index = location

    def change(semester: Semester) -> Semester:
        courses = list(semester.courses)
        if course is None:
            del courses[c_index]
        else:
            courses[c_index] = course
        return _set_courses(semester, courses)

    return _update_semester_at(snapshot, s_index, change)


def _merged_course(current: Course, values: Mapping[str, Any]) -> Course:
    return Course.model_validate({**current.model_dump(), **values})


def _merged_semester(current: Semester, values: Mapping[str, Any]) -> Semester:
    fields = {**current.model_dump(exclude={"courses"}), **values}
    fields.pop("courses", None)
    return Semester.model_validate(fields).model_copy(update={"courses": current.courses})


# =========================
# Apply
# =========================

def apply_mutation(snapshot: SemesterSnapshot, mutation: Mutation) -> SemesterSnapshot:
    """
    Optimistically apply a mutation

    Returns the snapshot unchanged when the targeted entity does not exist.
    """
    if mutation.entity == "course":
        return _apply_course(snapshot, mutation)
    return _apply_semester(snapshot, mutation)


def _apply_course(snapshot: SemesterSnapshot, mutation: Mutation) -> SemesterSnapshot:
    if mutation.kind == "create":
        index = _semester_index(snapshot, mutation.semester_id)
        if index is None:
            return snapshot
        course = Course.model_validate(
            {**mutation.values, "id": mutation.entity_id, "semester_id": mutation.semester_id}
        )
        return _update_semester_at(
            snapshot, index, lambda s: _set_courses(s, list(s.courses) + [course])
        )

    current = snapshot.get_course(mutation.entity_id)
    if current is None:
        return snapshot
    if mutation.kind == "update":
        return _replace_course(snapshot, current.id, _merged_course(current, mutation.values))
    return _replace_course(snapshot, current.id, None)


def _apply_semester(snapshot: SemesterSnapshot, mutation: Mutation) -> SemesterSnapshot:
    if mutation.kind == "create":
        semester = Semester.model_validate(
            {**mutation.values, "id": mutation.entity_id, "gpa": None, "total_credits": 0, "courses": ()}
        )
        return _with_semesters(snapshot, list(snapshot.semesters) + [semester])

    index = _semester_index(snapshot, mutation.entity_id)
    if index is None:
        return snapshot
    if mutation.kind == "update":
        return _update_semester_at(snapshot, index, lambda s: _merged_semester(s, mutation.values))
    return _update_semester_at(snapshot, index, lambda s: None)


# =========================
# Commit
# =========================

def commit_mutation(
    snapshot: SemesterSnapshot,
    txn: PendingTransaction,
    server_row: Optional[Mapping[str, Any]],
    superseded: bool = False,
) -> SemesterSnapshot:
    """
    Reconcile a confirmed mutation into the current snapshot

    Args:
        snapshot: Current local view
        txn: The transaction the backend confirmed
        server_row: Row returned by the backend (None for deletes)
        superseded: A newer local mutation of the same entity exists. Creates
            then only take the server-assigned id/timestamps; updates are
            dropped so the newer optimistic value survives.
    """
    mutation = txn.mutation
    if mutation.kind == "delete" or server_row is None:
        return snapshot
    if mutation.entity == "course":
        return _commit_course(snapshot, mutation, server_row, superseded)
    return _commit_semester(snapshot, mutation, server_row, superseded)


def _server_fields(server: Any) -> Dict[str, Any]:
    return {name: getattr(server, name) for name in SERVER_ASSIGNED_FIELDS}


def _commit_course(
    snapshot: SemesterSnapshot, mutation: Mutation, row: Mapping[str, Any], superseded: bool
) -> SemesterSnapshot:
    server = Course.model_validate(row)
    if mutation.kind == "create":
        current = snapshot.get_course(mutation.entity_id)
        if current is None:
            return snapshot
        if superseded:
            server = current.model_copy(update=_server_fields(server))
        return _replace_course(snapshot, current.id, server.model_copy(update={"semester_id": current.semester_id}))

    if superseded:
        return snapshot
    current = snapshot.get_course(server.id)
    if current is None:
        return snapshot
    return _replace_course(snapshot, current.id, server)


def _commit_semester(
    snapshot: SemesterSnapshot, mutation: Mutation, row: Mapping[str, Any], superseded: bool
) -> SemesterSnapshot:
    server = Semester.model_validate({**row, "courses": ()})

    if mutation.kind == "create":
        index = _semester_index(snapshot, mutation.entity_id)
        if index is None:
            return snapshot

        def reconcile(current: Semester) -> Semester:
            base = current.model_copy(update=_server_fields(server)) if superseded else server
            courses = [c.model_copy(update={"semester_id": server.id}) for c in current.courses]
            return _set_courses(base, courses)

        return _update_semester_at(snapshot, index, reconcile)

    if superseded:
        return snapshot
    index = _semester_index(snapshot, server.id)
    if index is None:
        return snapshot
    return _update_semester_at(snapshot, index, lambda current: _set_courses(server, current.courses))


# =========================
# Rollback
# =========================

def rollback(
    snapshot: SemesterSnapshot,
    txn: PendingTransaction,
    current_version: int,
    current_id: Optional[str] = None,
) -> SemesterSnapshot:
    """
    Undo a failed mutation

    When nothing else changed the view since the mutation was applied
    (current_version == txn.applied_version) the pre-mutation snapshot is
    restored as is. Otherwise only the entity the mutation touched is
    restored, leaving other pending or confirmed changes in place.
    """
    if current_version == txn.applied_version:
        return txn.previous_snapshot
    return revert_mutation(snapshot, txn, current_id)


def revert_mutation(
    snapshot: SemesterSnapshot, txn: PendingTransaction, current_id: Optional[str] = None
) -> SemesterSnapshot:
    """Restore the touched entity from txn.previous_snapshot"""
    mutation = txn.mutation
    entity_id = current_id or mutation.entity_id
    previous = txn.previous_snapshot

    if mutation.entity == "course":
        if mutation.kind == "create":
            return _replace_course(snapshot, entity_id, None)

        before = previous.get_course(mutation.entity_id)
        if before is None:
            return snapshot
        if mutation.kind == "update":
            current = snapshot.get_course(entity_id)
            if current is None:
                return snapshot
            restored = before.model_copy(update={"id": current.id, "semester_id": current.semester_id})
            return _replace_course(snapshot, entity_id, restored)

        # delete: put the course back where it was
        if snapshot.get_course(entity_id) is not None:
            return snapshot
        index = _semester_index(snapshot, before.semester_id)
        if index is None:
            return snapshot
        position = _locate_course(previous, before.id)[1]

        def reinsert(semester: Semester) -> Semester:
            courses = list(semester.courses)
            courses.insert(min(position, len(courses)), before)
            return _set_courses(semester, courses)

        return _update_semester_at(snapshot, index, reinsert)

    index = _semester_index(snapshot, entity_id)
    if mutation.kind == "create":
        if index is None:
            return snapshot
        return _update_semester_at(snapshot, index, lambda s: None)

    before = previous.get_semester(mutation.entity_id)
    if before is None:
        return snapshot
    if mutation.kind == "update":
        if index is None:
            return snapshot
        return _update_semester_at(
            snapshot,
            index,
            lambda current: _set_courses(before.model_copy(update={"id": current.id}), current.courses),
        )

    if index is not None:
        return snapshot
    return _with_semesters(snapshot, list(snapshot.semesters) + [before])


# =========================
# Snapshot assembly
# =========================

def build_snapshot(
    semester_rows: Iterable[Mapping[str, Any]],
    course_rows: Iterable[Mapping[str, Any]],
    last_sync: Optional[datetime] = None,
) -> SemesterSnapshot:
    """
    Group course rows under their semesters (courses keep row order)

    Stored gpa/total_credits are recomputed from the grouped courses; a
    semester row whose aggregate push never landed would otherwise disagree
    with its own courses.
    """
    courses_by_semester: Dict[str, List[Course]] = {}
    for row in course_rows:
        course = Course.model_validate(row)
        courses_by_semester.setdefault(course.semester_id, []).append(course)

    semesters = [
        with_aggregates(
            Semester.model_validate({**row, "courses": courses_by_semester.get(str(row.get("id")), [])})
        )
        for row in semester_rows
    ]
    return SemesterSnapshot(semesters=_ordered(semesters), last_sync=last_sync, stale=False)


def confirmed_semesters(snapshot: SemesterSnapshot) -> List[Semester]:
    """Semesters and courses that exist on the server (no temp ids)"""
    confirmed = []
    for semester in snapshot.semesters:
        if semester.is_optimistic:
            continue
        courses = [c for c in semester.courses if not c.is_optimistic]
        if len(courses) != len(semester.courses):
            semester = _set_courses(semester, courses)
        confirmed.append(semester)
    return confirmed


__all__ = [
    "Mutation",
    "PendingTransaction",
    "new_temp_id",
    "with_aggregates",
    "apply_mutation",
    "commit_mutation",
    "rollback",
    "revert_mutation",
    "build_snapshot",
    "confirmed_semesters",
]

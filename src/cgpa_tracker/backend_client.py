#!/usr/bin/env python3
"""
BACKEND CLIENT - Row-level CRUD against the hosted (Supabase/PostgREST) backend

TABLES:
✅ semesters - scoped by user_id, ordered by semester_number
✅ courses - scoped by user_id / semester_id, ordered by created_at
✅ profiles - keyed by the student's identity (id)
✅ preferences - keyed by user_id

Every call returns plain row dicts or raises RemoteError (HTTP status and
PostgREST error code attached). Authentication is out of scope: the caller
passes an already-issued access token.

Dependencies: httpx
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

import httpx

from .errors import RemoteError
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class BackendDataService(Protocol):
    """Operations the sync coordinators need from the backend"""

    async def fetch_semesters(self, user_id: str) -> List[Row]: ...

    async def fetch_courses(self, user_id: str) -> List[Row]: ...

    async def fetch_semester(self, semester_id: str) -> Optional[Row]: ...

    async def fetch_semester_courses(self, semester_id: str) -> List[Row]: ...

    async def fetch_course(self, course_id: str) -> Optional[Row]: ...

    async def insert_semester(self, values: Mapping[str, Any]) -> Row: ...

    async def update_semester(self, semester_id: str, values: Mapping[str, Any]) -> Row: ...

    async def delete_semester(self, semester_id: str) -> None: ...

    async def insert_course(self, values: Mapping[str, Any]) -> Row: ...

    async def update_course(self, course_id: str, values: Mapping[str, Any]) -> Row: ...

    async def delete_course(self, course_id: str) -> None: ...

    async def fetch_profile(self, user_id: str) -> Optional[Row]: ...

    async def insert_profile(self, values: Mapping[str, Any]) -> Row: ...

    async def update_profile(self, user_id: str, values: Mapping[str, Any]) -> Row: ...

    async def fetch_preferences(self, user_id: str) -> Optional[Row]: ...

    async def insert_preferences(self, values: Mapping[str, Any]) -> Row: ...

    async def update_preferences(self, user_id: str, values: Mapping[str, Any]) -> Row: ...


def _eq(value: Any) -> str:
    return f"eq.{value}"


class SupabaseRestClient:
    """PostgREST client implementing BackendDataService"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        base_url = (base_url or settings.SUPABASE_URL or "").rstrip("/")
        api_key = api_key or settings.SUPABASE_ANON_KEY
        if not base_url or not api_key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be configured")

        self.base = f"{base_url}/rest/v1"
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        }
        self._client = httpx.AsyncClient(
            base_url=self.base,
            headers=self.headers,
            timeout=timeout or settings.BACKEND_TIMEOUT,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SupabaseRestClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # =========================
    # Generic PostgREST verbs
    # =========================

    async def _request(self, method: str, table: str, **kwargs) -> Any:
        logger.debug(f"{method} /{table} params={kwargs.get('params')}")
        try:
            response = await self._client.request(method, f"/{table}", **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._to_remote_error(e.response) from e
        except httpx.HTTPError as e:
            raise RemoteError(f"{method} {table} failed: {type(e).__name__}: {e}") from e

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _to_remote_error(response: httpx.Response) -> RemoteError:
        code = None
        message = response.text or response.reason_phrase
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("message") or message
        return RemoteError(message, status_code=response.status_code, code=code)

    async def select(
        self,
        table: str,
        filters: Mapping[str, Any],
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        params = {"select": "*"}
        params.update({column: _eq(value) for column, value in filters.items()})
        if order:
            params["order"] = order
        if limit:
            params["limit"] = str(limit)
        return await self._request("GET", table, params=params) or []

    async def select_one(self, table: str, filters: Mapping[str, Any]) -> Optional[Row]:
        rows = await self.select(table, filters, limit=1)
        return rows[0] if rows else None

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        rows = await self._request(
            "POST", table, json=dict(values), headers={"Prefer": "return=representation"}
        )
        if not rows:
            raise RemoteError(f"Insert into {table} returned no row")
        return rows[0]

    async def update(self, table: str, filters: Mapping[str, Any], values: Mapping[str, Any]) -> Row:
        params = {column: _eq(value) for column, value in filters.items()}
        rows = await self._request(
            "PATCH", table, params=params, json=dict(values), headers={"Prefer": "return=representation"}
        )
        if not rows:
            raise RemoteError(f"No {table} row matched {params}", status_code=404, code="PGRST116")
        return rows[0]

    async def delete(self, table: str, filters: Mapping[str, Any]) -> None:
        params = {column: _eq(value) for column, value in filters.items()}
        await self._request("DELETE", table, params=params)

    # =========================
    # Semesters / courses
    # =========================

    async def fetch_semesters(self, user_id: str) -> List[Row]:
        return await self.select("semesters", {"user_id": user_id}, order="semester_number.asc")

    async def fetch_courses(self, user_id: str) -> List[Row]:
        return await self.select("courses", {"user_id": user_id}, order="created_at.asc")

    async def fetch_semester(self, semester_id: str) -> Optional[Row]:
        return await self.select_one("semesters", {"id": semester_id})

    async def fetch_semester_courses(self, semester_id: str) -> List[Row]:
        return await self.select("courses", {"semester_id": semester_id}, order="created_at.asc")

    async def fetch_course(self, course_id: str) -> Optional[Row]:
        return await self.select_one("courses", {"id": course_id})

    async def insert_semester(self, values: Mapping[str, Any]) -> Row:
        return await self.insert("semesters", values)

    async def update_semester(self, semester_id: str, values: Mapping[str, Any]) -> Row:
        return await self.update("semesters", {"id": semester_id}, values)

    async def delete_semester(self, semester_id: str) -> None:
        await self.delete("semesters", {"id": semester_id})

    async def insert_course(self, values: Mapping[str, Any]) -> Row:
        return await self.insert("courses", values)

    async def update_course(self, course_id: str, values: Mapping[str, Any]) -> Row:
        return await self.update("courses", {"id": course_id}, values)

    async def delete_course(self, course_id: str) -> None:
        await self.delete("courses", {"id": course_id})

    # =========================
    # Profile / preferences
    # =========================

    async def fetch_profile(self, user_id: str) -> Optional[Row]:
        return await self.select_one("profiles", {"id": user_id})

    async def insert_profile(self, values: Mapping[str, Any]) -> Row:
        return await self.insert("profiles", values)

    async def update_profile(self, user_id: str, values: Mapping[str, Any]) -> Row:
        return await self.update("profiles", {"id": user_id}, values)

    async def fetch_preferences(self, user_id: str) -> Optional[Row]:
        return await self.select_one("preferences", {"user_id": user_id})

    async def insert_preferences(self, values: Mapping[str, Any]) -> Row:
        return await self.insert("preferences", values)

    async def update_preferences(self, user_id: str, values: Mapping[str, Any]) -> Row:
        return await self.update("preferences", {"user_id": user_id}, values)


__all__ = ["Row", "BackendDataService", "SupabaseRestClient"]

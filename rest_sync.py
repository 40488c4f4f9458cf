#!/usr/bin/env python3
"""
REST client for the workout backend, implementing the SyncAdapter contract.

Endpoints:
  POST /workouts                  create   {"workout": {"routine_id": ...}}
  PUT  /workouts/<id>/pause       pause    {"reason": ...}
  PUT  /workouts/<id>/resume      resume
  PUT  /workouts/<id>/complete    complete {perceived_intensity, energy_level, mood, notes}
  PUT  /workouts/<id>/abandon     abandon
  GET  /workouts                  history / active sessions

Transport errors, timeouts, 408/429 and 5xx map to a retryable
SyncFailure(network); 404 to not_found; other 4xx to validation.

Usage:
    adapter = RestSyncAdapter()
    sess = WorkoutSession(routine, adapter)
    await sess.start()
    ...
    await adapter.aclose()
"""

import logging

import httpx
from pydantic import ValidationError

import app_config
from session_errors import SyncErrorKind, SyncFailure
from session_models import ACTIVE_STATUSES, TERMINAL_STATUSES, SessionRecord
from sync_adapter import SyncAdapter

log = logging.getLogger("sync")

RETRYABLE_STATUS = {408, 429}
_TERMINAL = {s.value for s in TERMINAL_STATUSES}
_ACTIVE = {s.value for s in ACTIVE_STATUSES}


def _error_detail(resp):
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        for key in ("error", "message", "errors"):
            if body.get(key):
                return str(body[key])[:200]
    return str(body)[:200]


def _unwrap(data, key):
    """Backends answer either bare or wrapped ({"workout": {...}})."""
    if isinstance(data, dict) and isinstance(data.get(key), (dict, list)):
        return data[key]
    return data


class RestSyncAdapter(SyncAdapter):
    def __init__(self, base_url=None, token=None, timeout=None, transport=None):
        self.base_url = (base_url or app_config.api_url()).rstrip("/")
        self.token = token if token is not None else app_config.read_api_token()
        self.timeout = timeout or app_config.http_timeout()
        self._transport = transport
        self._client = None

    def _get_client(self):
        if self._client is None:
            headers = {"Content-Type": "application/json", "Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url, headers=headers, timeout=self.timeout, transport=self._transport
            )
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, operation, method, path, payload=None, idempotency_key=None):
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        try:
            resp = await self._get_client().request(method, path, json=payload, headers=headers)
        except httpx.TransportError as e:
            raise SyncFailure(operation, SyncErrorKind.NETWORK, str(e) or type(e).__name__) from e

        status = resp.status_code
        if status >= 400:
            detail = _error_detail(resp)
            if status == 404:
                kind = SyncErrorKind.NOT_FOUND
            elif status >= 500 or status in RETRYABLE_STATUS:
                kind = SyncErrorKind.NETWORK
            else:
                kind = SyncErrorKind.VALIDATION
            raise SyncFailure(operation, kind, detail, status_code=status)

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            log.debug(f"{operation}: non-JSON response body ignored")
            return {}

    # --- SyncAdapter contract ---

    async def create(self, routine_id):
        data = await self._request("create", "POST", "/workouts", {"workout": {"routine_id": routine_id}})
        data = _unwrap(data, "workout")
        remote_id = data.get("id") if isinstance(data, dict) else None
        if remote_id is None:
            raise SyncFailure("create", SyncErrorKind.VALIDATION, "response has no session id")
        log.info(f"Created remote session {remote_id} for routine {routine_id}")
        return remote_id

    async def pause(self, remote_id, reason, idempotency_key=None):
        return await self._request(
            "pause", "PUT", f"/workouts/{remote_id}/pause", {"reason": reason}, idempotency_key
        )

    async def resume(self, remote_id, idempotency_key=None):
        return await self._request("resume", "PUT", f"/workouts/{remote_id}/resume", {}, idempotency_key)

    async def complete(self, remote_id, survey, idempotency_key=None):
        payload = survey.to_wire() if survey is not None else {}
        return await self._request("complete", "PUT", f"/workouts/{remote_id}/complete", payload, idempotency_key)

    async def abandon(self, remote_id, idempotency_key=None):
        return await self._request("abandon", "PUT", f"/workouts/{remote_id}/abandon", {}, idempotency_key)

    # --- Read path ---

    async def list_sessions(self):
        """All of the user's sessions as raw wire dicts."""
        data = _unwrap(await self._request("list", "GET", "/workouts"), "workouts")
        if not isinstance(data, list):
            log.warning(f"Unexpected /workouts payload type {type(data).__name__}")
            return []
        return data

    async def fetch_history(self):
        """Terminal sessions only, as raw dicts for the analytics engine."""
        return [d for d in await self.list_sessions() if isinstance(d, dict) and d.get("status") in _TERMINAL]

    async def active_sessions(self):
        """Remote sessions still in_progress or paused, parsed for restore()."""
        active = []
        for d in await self.list_sessions():
            if not isinstance(d, dict) or d.get("status") not in _ACTIVE:
                continue
            try:
                active.append(SessionRecord.from_wire(d))
            except ValidationError as e:
                log.warning(f"Skipping unreadable active session {d.get('id')}: {e.error_count()} errors")
        return active

# src/saglikhep_client/http_client.py

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)

import httpx

from .errors import NetworkFailure, failure_from_response

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class ClientMode(str, Enum):
    # Attaches the bearer token and renews it on 401
    AUTHENTICATED = "authenticated"
    # Login/register/password flows: never attaches a token
    ANONYMOUS_AUTH = "anonymous_auth"
    # No token, and responses come wrapped in {data, success, message}
    PUBLIC = "public"


class TokenSource(Protocol):
    def read(self) -> Any: ...


class Refresher(Protocol):
    async def refresh(self, stale_token: Optional[str]) -> str: ...


class UploadPart(Protocol):
    file_name: str
    content_type: str
    content: bytes


BodyFactory = Callable[[], Tuple[Dict[str, str], AsyncIterator[bytes]]]


@dataclass
class _RequestSpec:
    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    json: Any = None
    body_factory: Optional[BodyFactory] = None
    retried: bool = False
    headers: Dict[str, str] = field(default_factory=dict)


def clean_params(params: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Drops unset filters the way the web front end only appended truthy values."""
    if not params:
        return None
    cleaned = {k: v for k, v in params.items() if v is not None and v != ""}
    return cleaned or None


def _multipart_body(
    parts: Sequence[Tuple[str, UploadPart]],
    chunk_size: int,
    on_progress: Optional[ProgressCallback],
) -> BodyFactory:
    encoded = httpx.Request(
        "POST",
        "http://upload.invalid/",
        files=[(name, (part.file_name, part.content, part.content_type)) for name, part in parts],
    )
    body = encoded.read()
    headers = {
        "Content-Type": encoded.headers["Content-Type"],
        "Content-Length": str(len(body)),
    }
    # Shared across replays so the reported percentage never goes backwards
    reported = {"last": -1}

    def report(percent: int) -> None:
        if on_progress is not None and percent > reported["last"]:
            reported["last"] = percent
            on_progress(percent)

    async def chunks() -> AsyncIterator[bytes]:
        total = len(body)
        sent = 0
        for start in range(0, total, chunk_size):
            chunk = body[start:start + chunk_size]
            yield chunk
            sent += len(chunk)
            report(round(sent * 100 / total))
        if total == 0:
            report(100)

    def factory() -> Tuple[Dict[str, str], AsyncIterator[bytes]]:
        return dict(headers), chunks()

    return factory


class ApiClient:
    """
    Thin async wrapper around httpx.AsyncClient.

    The three flavours only differ in how a request is decorated and how the
    success envelope is read; see ClientMode.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        mode: ClientMode = ClientMode.AUTHENTICATED,
        credentials: Optional[TokenSource] = None,
        refresher: Optional[Refresher] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        upload_chunk_size: int = 64 * 1024,
    ):
        if mode is ClientMode.AUTHENTICATED and credentials is None:
            raise ValueError("An authenticated client needs a credential store.")
        self.mode = mode
        self.credentials = credentials
        self.refresher = refresher
        self.upload_chunk_size = upload_chunk_size
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # --- Verbs ---

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._request(_RequestSpec("GET", path, params=clean_params(params)))

    async def post(self, path: str, body: Any = None, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._request(_RequestSpec("POST", path, params=clean_params(params), json=body))

    async def put(self, path: str, body: Any = None, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._request(_RequestSpec("PUT", path, params=clean_params(params), json=body))

    async def patch(self, path: str, body: Any = None, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._request(_RequestSpec("PATCH", path, params=clean_params(params), json=body))

    async def delete(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._request(_RequestSpec("DELETE", path, params=clean_params(params)))

    async def get_paginated(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        result = await self.get(path, params)
        return result if isinstance(result, dict) else {"data": result}

    async def upload(
        self,
        path: str,
        file: UploadPart,
        on_progress: Optional[ProgressCallback] = None,
        field_name: str = "file",
    ) -> Any:
        factory = _multipart_body([(field_name, file)], self.upload_chunk_size, on_progress)
        return await self._request(_RequestSpec("POST", path, body_factory=factory))

    async def upload_multiple(
        self,
        path: str,
        files: Sequence[UploadPart],
        on_progress: Optional[ProgressCallback] = None,
        field_name: str = "files",
    ) -> Any:
        factory = _multipart_body([(field_name, f) for f in files], self.upload_chunk_size, on_progress)
        return await self._request(_RequestSpec("POST", path, body_factory=factory))

    # --- Internals ---

    def _current_token(self) -> Optional[str]:
        if self.mode is not ClientMode.AUTHENTICATED or self.credentials is None:
            return None
        return self.credentials.read().access_token

    async def _request(self, spec: _RequestSpec, token: Optional[str] = None) -> Any:
        if token is None:
            token = self._current_token()

        headers = dict(spec.headers)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        content = None
        if spec.body_factory is not None:
            body_headers, content = spec.body_factory()
            headers.update(body_headers)

        logger.debug("ApiClient[%s]: %s %s (retried: %s)", self.mode.value, spec.method, spec.path, spec.retried)
        try:
            response = await self._http.request(
                spec.method,
                spec.path,
                params=spec.params,
                json=spec.json,
                content=content,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            logger.warning("ApiClient[%s]: %s %s timed out", self.mode.value, spec.method, spec.path)
            raise NetworkFailure(f"Request timed out: {e}", spec.method, spec.path) from e
        except httpx.RequestError as e:
            logger.warning("ApiClient[%s]: %s %s failed: %s", self.mode.value, spec.method, spec.path, e)
            raise NetworkFailure(f"Could not reach the API: {e}", spec.method, spec.path) from e

        if (
            response.status_code == httpx.codes.UNAUTHORIZED
            and self.mode is ClientMode.AUTHENTICATED
            and self.refresher is not None
            and not spec.retried
        ):
            spec.retried = True
            logger.info("ApiClient: %s %s returned 401, renewing the session", spec.method, spec.path)
            new_token = await self.refresher.refresh(token)
            return await self._request(spec, token=new_token)

        payload = self._decode(response)
        if not response.is_success:
            logger.warning(
                "ApiClient[%s]: %s %s -> %s", self.mode.value, spec.method, spec.path, response.status_code
            )
            raise failure_from_response(response.status_code, payload)

        if self.mode is ClientMode.PUBLIC:
            return self._unwrap(response.status_code, payload)
        return payload

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _unwrap(status_code: int, payload: Any) -> Any:
        if not isinstance(payload, dict) or ("data" not in payload and "success" not in payload):
            return payload
        if payload.get("success") is False:
            raise failure_from_response(status_code, payload)
        return payload.get("data")

# src/saglikhep_client/stores/base.py

import logging
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from pydantic import BaseModel, ValidationError

from ..errors import ApiError, ValidationFailure, format_api_error
from ..http_client import ApiClient
from .models import Pagination, Resource, ToggleableResource, ToggleResult

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Resource)
TT = TypeVar("TT", bound=ToggleableResource)

Filters = Union[Mapping[str, Any], BaseModel, None]

LIKE = "like"
DISLIKE = "dislike"

DEFAULT_FILTERS: Dict[str, Any] = {"page": 1, "limit": 10, "sortBy": "createdAt", "sortOrder": "desc"}


@dataclass(frozen=True)
class ResourceEndpoints:
    """
    Where a resource lives on the API and how its payloads are keyed.

    With parent_scoped=True the collection is addressed per parent
    (e.g. /api/comments/{postId}) while single items stay at base_path/{id}.
    """
    name: str
    base_path: str
    list_key: str
    item_key: Optional[str] = None
    related_keys: Tuple[str, ...] = ()
    parent_scoped: bool = False

    def list_path(self, parent_id: Optional[str] = None) -> str:
        if self.parent_scoped:
            if not parent_id:
                raise ValueError(f"{self.name} are addressed through a parent id.")
            return f"{self.base_path}/{parent_id}"
        return self.base_path

    def item_path(self, item_id: str) -> str:
        return f"{self.base_path}/{item_id}"

    def action_path(self, item_id: str, action: str) -> str:
        return f"{self.base_path}/{item_id}/{action}"


def filters_to_params(filters: Filters) -> Optional[Dict[str, Any]]:
    if filters is None:
        return None
    if isinstance(filters, BaseModel):
        return filters.model_dump(by_alias=True, exclude_none=True)
    return dict(filters)


def reconcile_toggle(entity: TT, result: ToggleResult, toggled: str) -> TT:
    """
    Applies the server's answer to one cached copy, keeping like and dislike
    mutually exclusive. When the server leaves a side unspecified and both
    flags end up true, the side that was just toggled wins.
    """
    update: Dict[str, Any] = {}
    if result.is_liked is not None:
        update["is_liked"] = result.is_liked
    if result.is_disliked is not None:
        update["is_disliked"] = result.is_disliked
    if result.likes_count is not None:
        update["likes_count"] = max(result.likes_count, 0)
    if result.dislikes_count is not None:
        update["dislikes_count"] = max(result.dislikes_count, 0)

    merged = entity.model_copy(update=update)
    if merged.is_liked and merged.is_disliked:
        if toggled == LIKE:
            merged = merged.model_copy(update={"is_disliked": False})
        else:
            merged = merged.model_copy(update={"is_liked": False})
    return merged


def speculative_toggle(entity: TT, toggled: str) -> TT:
    # Flags only; counters stay server-authoritative
    if toggled == LIKE:
        liked = not entity.is_liked
        return entity.model_copy(update={"is_liked": liked, "is_disliked": entity.is_disliked and not liked})
    disliked = not entity.is_disliked
    return entity.model_copy(update={"is_disliked": disliked, "is_liked": entity.is_liked and not disliked})


class ResourceStore(Generic[T]):
    """
    In-memory cache of one resource type: a server-ordered list plus the
    single entity currently shown in detail.

    Failures are recorded in `error` instead of being raised, except
    ValidationFailure which the caller needs for field-level messages.

    List filters persist between calls: each fetch merges its own filters
    over `filters` and keeps the result for the next one.
    """

    default_filters: Mapping[str, Any] = DEFAULT_FILTERS

    def __init__(self, api: ApiClient, endpoints: ResourceEndpoints, model: Type[T]):
        self.api = api
        self.endpoints = endpoints
        self.model = model

        self.items: List[T] = []
        self.current: Optional[T] = None
        self.related: Dict[str, List[T]] = {}
        self.pagination: Optional[Pagination] = None
        self.meta: Dict[str, Any] = {}
        self.error: Optional[str] = None
        self.filters: Dict[str, Any] = dict(self.default_filters)

        self._pending = 0
        self._fetch_generation = 0
        self._detail_generation = 0

    @property
    def loading(self) -> bool:
        return self._pending > 0

    def get(self, item_id: str) -> Optional[T]:
        for item in self.items:
            if item.id == item_id:
                return item
        if self.current is not None and self.current.id == item_id:
            return self.current
        return None

    def reset(self) -> None:
        self.items = []
        self.current = None
        self.related = {}
        self.pagination = None
        self.meta = {}
        self.error = None
        self.filters = dict(self.default_filters)

    def set_filters(self, filters: Filters) -> Dict[str, Any]:
        self.filters = {**self.filters, **(filters_to_params(filters) or {})}
        return self.filters

    def clear_filters(self) -> Dict[str, Any]:
        self.filters = dict(self.default_filters)
        return self.filters

    # --- Reads ---

    async def fetch(self, filters: Filters = None, parent_id: Optional[str] = None) -> None:
        await self._fetch_page(self.endpoints.list_path(parent_id), filters)

    async def fetch_one(self, item_id: str) -> Optional[T]:
        payload = await self._fetch_detail("fetch_one", self.endpoints.item_path(item_id))
        if payload is _FAILED:
            return None
        entity = self._parse_entity(payload)
        if entity is None:
            return None
        self.current = entity
        self.related = self._parse_related(payload)
        self._replace_everywhere(entity)
        return entity

    async def _fetch_page(
        self, path: str, filters: Filters, extra: Optional[Mapping[str, Any]] = None
    ) -> None:
        # Only the most recently issued fetch may write the list. extra is sent but not kept in filters.
        self._fetch_generation += 1
        generation = self._fetch_generation
        params = self.set_filters(filters)
        self._pending += 1
        try:
            payload = await self.api.get(path, params={**params, **(extra or {})})
            items, pagination, meta = self._parse_page(payload)
        except ValidationFailure:
            raise
        except ApiError as e:
            if generation == self._fetch_generation:
                self._record_failure("fetch", e)
            return
        finally:
            self._pending -= 1

        if generation != self._fetch_generation:
            logger.debug(
                "ResourceStore[%s]: fetch - dropping stale response (generation %d < %d)",
                self.endpoints.name, generation, self._fetch_generation,
            )
            return
        self.items = items
        self.pagination = pagination
        self.meta = meta
        self.error = None
        logger.debug("ResourceStore[%s]: fetch - %d item(s) loaded", self.endpoints.name, len(items))

    async def _fetch_detail(self, action: str, path: str) -> Any:
        # Same rule as list fetches, on a separate counter: only the latest detail load may set current
        self._detail_generation += 1
        generation = self._detail_generation
        self._pending += 1
        try:
            payload = await self.api.get(path)
        except ValidationFailure:
            raise
        except ApiError as e:
            if generation == self._detail_generation:
                self._record_failure(action, e)
            return _FAILED
        finally:
            self._pending -= 1

        if generation != self._detail_generation:
            logger.debug(
                "ResourceStore[%s]: %s - dropping stale response (generation %d < %d)",
                self.endpoints.name, action, generation, self._detail_generation,
            )
            return _FAILED
        self.error = None
        return payload

    # --- Helpers ---

    async def _call(self, action: str, request: Any) -> Any:
        self._pending += 1
        try:
            result = await request
        except ValidationFailure:
            raise
        except ApiError as e:
            self._record_failure(action, e)
            return _FAILED
        finally:
            self._pending -= 1
        self.error = None
        return result

    def _record_failure(self, action: str, error: ApiError) -> None:
        self.error = format_api_error(error)
        logger.warning("ResourceStore[%s]: %s failed: %s", self.endpoints.name, action, self.error)

    def _parse_page(self, payload: Any) -> Tuple[List[T], Optional[Pagination], Dict[str, Any]]:
        if isinstance(payload, list):
            return self._parse_list(payload), None, {}
        if not isinstance(payload, dict):
            raise ApiError(f"Unexpected response while listing {self.endpoints.name}.")
        raw_items = payload.get(self.endpoints.list_key)
        if raw_items is None:
            raw_items = payload.get("data", [])
        pagination = None
        if isinstance(payload.get("pagination"), dict):
            pagination = self._validate(Pagination, payload["pagination"])
        meta = {k: v for k, v in payload.items() if k not in (self.endpoints.list_key, "data", "pagination")}
        return self._parse_list(raw_items), pagination, meta

    def _parse_list(self, raw_items: Any) -> List[T]:
        if not isinstance(raw_items, list):
            raise ApiError(f"Unexpected response while listing {self.endpoints.name}.")
        return [self._validate(self.model, raw) for raw in raw_items]

    def _parse_related(self, payload: Any) -> Dict[str, List[T]]:
        related: Dict[str, List[T]] = {}
        if not isinstance(payload, dict):
            return related
        for key in self.endpoints.related_keys:
            try:
                related[key] = self._parse_list(payload.get(key, []))
            except ApiError as e:
                logger.warning("ResourceStore[%s]: ignoring malformed '%s': %s", self.endpoints.name, key, e)
        return related

    def _parse_entity(self, payload: Any) -> Optional[T]:
        raw = payload
        key = self.endpoints.item_key
        if key and isinstance(payload, dict) and isinstance(payload.get(key), dict):
            raw = payload[key]
        try:
            return self._validate(self.model, raw)
        except ApiError as e:
            self._record_failure("parse", e)
            return None

    def _validate(self, model: Type[Any], raw: Any) -> Any:
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            raise ApiError(f"Unexpected {self.endpoints.name} payload from server.") from e

    def _replace_everywhere(self, entity: T) -> None:
        self._update_everywhere(entity.id, lambda _old: entity)

    def _update_everywhere(self, item_id: str, change: Callable[[T], T]) -> List[Tuple[T, T]]:
        """
        Applies change to the list copy and the detail copy of item_id.
        Returns (old, new) pairs so a caller can undo exactly what it wrote.
        """
        swaps: List[Tuple[T, T]] = []
        for index, item in enumerate(self.items):
            if item.id == item_id:
                new = change(item)
                self.items[index] = new
                swaps.append((item, new))
        if self.current is not None and self.current.id == item_id:
            old = self.current
            self.current = change(old)
            swaps.append((old, self.current))
        return swaps

    def _undo(self, swaps: List[Tuple[T, T]]) -> None:
        # Only copies still holding our speculative object are restored
        for old, new in swaps:
            for index, item in enumerate(self.items):
                if item is new:
                    self.items[index] = old
            if self.current is new:
                self.current = old


class MutableResourceStore(ResourceStore[T]):
    async def create(self, payload: Mapping[str, Any], parent_id: Optional[str] = None) -> Optional[T]:
        response = await self._call(
            "create", self.api.post(self.endpoints.list_path(parent_id), dict(payload))
        )
        if response is _FAILED:
            return None
        entity = self._parse_entity(response)
        if entity is not None:
            self.items = [entity] + self.items
        return entity

    async def update(self, item_id: str, payload: Mapping[str, Any]) -> Optional[T]:
        response = await self._call("update", self.api.put(self.endpoints.item_path(item_id), dict(payload)))
        if response is _FAILED:
            return None
        entity = self._parse_entity(response)
        if entity is not None:
            self._replace_everywhere(entity)
        return entity

    async def delete(self, item_id: str) -> bool:
        response = await self._call("delete", self.api.delete(self.endpoints.item_path(item_id)))
        if response is _FAILED:
            return False
        self.items = [item for item in self.items if item.id != item_id]
        if self.current is not None and self.current.id == item_id:
            self.current = None
        return True


class ToggleableResourceStore(MutableResourceStore[TT]):
    """
    Adds like/dislike toggles reconciled into every cached copy.

    By default flags change only after the server confirms. With
    optimistic=True they flip immediately and are overwritten by the server's
    answer, or rolled back if the request fails.
    """

    def __init__(
        self,
        api: ApiClient,
        endpoints: ResourceEndpoints,
        model: Type[TT],
        optimistic: bool = False,
    ):
        super().__init__(api, endpoints, model)
        self.optimistic = optimistic

    async def toggle_like(self, item_id: str) -> Optional[ToggleResult]:
        return await self._toggle(item_id, LIKE)

    async def toggle_dislike(self, item_id: str) -> Optional[ToggleResult]:
        return await self._toggle(item_id, DISLIKE)

    async def report(self, item_id: str, reason: str, description: Optional[str] = None) -> bool:
        body: Dict[str, Any] = {"reason": reason}
        if description:
            body["description"] = description
        response = await self._call("report", self.api.post(self.endpoints.action_path(item_id, "report"), body))
        return response is not _FAILED

    async def _toggle(self, item_id: str, toggled: str) -> Optional[ToggleResult]:
        swaps: List[Tuple[TT, TT]] = []
        if self.optimistic:
            swaps = self._update_everywhere(item_id, lambda e: speculative_toggle(e, toggled))

        self._pending += 1
        try:
            payload = await self.api.post(self.endpoints.action_path(item_id, toggled))
            result = self._validate(ToggleResult, payload if isinstance(payload, dict) else {})
        except ValidationFailure:
            self._undo(swaps)
            raise
        except ApiError as e:
            self._undo(swaps)
            self._record_failure(toggled, e)
            return None
        finally:
            self._pending -= 1

        self._update_everywhere(item_id, lambda e: reconcile_toggle(e, result, toggled))
        self.error = None
        logger.debug(
            "ResourceStore[%s]: %s %s -> liked=%s disliked=%s",
            self.endpoints.name, toggled, item_id, result.is_liked, result.is_disliked,
        )
        return result


class _Failed:
    def __repr__(self) -> str:
        return "<failed>"


_FAILED: Any = _Failed()

# src/saglikhep_client/stores/resources.py

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..errors import ApiError
from ..http_client import ApiClient
from .base import (
    _FAILED,
    Filters,
    MutableResourceStore,
    ResourceEndpoints,
    ResourceStore,
    ToggleableResourceStore,
    filters_to_params,
)
from .models import Blog, Comment, Event, EventStats, Expert, Pagination, Post

logger = logging.getLogger(__name__)

POST_ENDPOINTS = ResourceEndpoints(
    name="posts",
    base_path="/api/posts",
    list_key="posts",
    item_key="post",
    related_keys=("newPosts", "similarPosts"),
)
BLOG_ENDPOINTS = ResourceEndpoints(
    name="blogs",
    base_path="/api/blogs",
    list_key="blogs",
    item_key="blog",
    related_keys=("newBlogs", "similarBlogs"),
)
COMMENT_ENDPOINTS = ResourceEndpoints(
    name="comments",
    base_path="/api/comments",
    list_key="comments",
    item_key="comment",
    parent_scoped=True,
)
EVENT_ENDPOINTS = ResourceEndpoints(
    name="events",
    base_path="/api/events",
    list_key="events",
    item_key="event",
)
EXPERT_ENDPOINTS = ResourceEndpoints(
    name="experts",
    base_path="/api/users/experts",
    list_key="experts",
    item_key="expert",
)


class PostStore(ToggleableResourceStore[Post]):
    def __init__(self, api: ApiClient, optimistic: bool = False):
        super().__init__(api, POST_ENDPOINTS, Post, optimistic=optimistic)

    async def fetch_by_user(self, user_id: str, filters: Filters = None) -> None:
        await self._fetch_page(f"{self.endpoints.base_path}/user/{user_id}", filters)


class BlogStore(ToggleableResourceStore[Blog]):
    def __init__(self, api: ApiClient, optimistic: bool = False):
        super().__init__(api, BLOG_ENDPOINTS, Blog, optimistic=optimistic)

    async def fetch_by_user(self, user_id: str, filters: Filters = None) -> None:
        await self._fetch_page(f"{self.endpoints.base_path}/user/{user_id}", filters)

    async def fetch_by_slug(self, slug: str) -> Optional[Blog]:
        payload = await self._fetch_detail("fetch_by_slug", f"{self.endpoints.base_path}/slug/{slug}")
        if payload is _FAILED:
            return None
        blog = self._parse_entity(payload)
        if blog is not None:
            self.current = blog
            self._replace_everywhere(blog)
        return blog


class CommentStore(ToggleableResourceStore[Comment]):
    """
    Comments of one post or blog at a time. Replies are cached per parent
    comment in `replies` and never mixed into `items`.
    """

    def __init__(self, api: ApiClient, optimistic: bool = False):
        super().__init__(api, COMMENT_ENDPOINTS, Comment, optimistic=optimistic)
        self.post_id: Optional[str] = None
        self.replies: Dict[str, List[Comment]] = {}

    async def fetch(self, post_id: str, filters: Filters = None) -> None:  # type: ignore[override]
        if post_id != self.post_id:
            self.replies = {}
        self.post_id = post_id
        await self._fetch_page(self.endpoints.list_path(post_id), filters)

    async def create(self, post_id: str, payload: Dict[str, Any]) -> Optional[Comment]:  # type: ignore[override]
        return await super().create(payload, parent_id=post_id)

    async def reply(self, parent_comment_id: str, content: str) -> Optional[Comment]:
        response = await self._call(
            "reply",
            self.api.post(self.endpoints.action_path(parent_comment_id, "reply"), {"content": content}),
        )
        if response is _FAILED:
            return None
        comment = self._parse_entity(response)
        if comment is None:
            return None
        self.replies[parent_comment_id] = self.replies.get(parent_comment_id, []) + [comment]
        self._update_everywhere(
            parent_comment_id,
            lambda parent: parent.model_copy(update={"replies_count": parent.replies_count + 1}),
        )
        return comment

    async def fetch_replies(self, comment_id: str, filters: Filters = None) -> Optional[List[Comment]]:
        payload = await self._call(
            "fetch_replies",
            self.api.get(self.endpoints.action_path(comment_id, "replies"), params=filters_to_params(filters)),
        )
        if payload is _FAILED:
            return None
        try:
            replies, _, _ = self._parse_page(payload)
        except ApiError as e:
            self._record_failure("fetch_replies", e)
            return None
        self.replies[comment_id] = replies
        return replies


class EventStore(MutableResourceStore[Event]):
    """
    Public events in `items`, the signed-in user's registrations in `mine`.

    Registration state is per user and the register/unregister answers do not
    carry it, so the store sets `is_registered` itself and only takes the
    participant count from the server.
    """

    default_filters = {"page": 1, "limit": 10, "sortBy": "date", "sortOrder": "asc"}

    def __init__(self, api: ApiClient):
        super().__init__(api, EVENT_ENDPOINTS, Event)
        self.mine: List[Event] = []
        self.mine_pagination: Optional[Pagination] = None
        self.stats: Optional[EventStats] = None

    def reset(self) -> None:
        super().reset()
        self.mine = []
        self.mine_pagination = None
        self.stats = None

    async def search(self, query: str, filters: Filters = None) -> None:
        await self._fetch_page(f"{self.endpoints.base_path}/search", filters, extra={"q": query})

    async def fetch_mine(self, filters: Filters = None) -> Optional[List[Event]]:
        params = self.set_filters(filters)
        payload = await self._call(
            "fetch_mine", self.api.get(f"{self.endpoints.base_path}/my-events", params=dict(params))
        )
        if payload is _FAILED:
            return None
        try:
            self.mine, self.mine_pagination, _ = self._parse_page(payload)
        except ApiError as e:
            self._record_failure("fetch_mine", e)
            return None
        return self.mine

    async def fetch_stats(self) -> Optional[EventStats]:
        payload = await self._call("fetch_stats", self.api.get(f"{self.endpoints.base_path}/stats"))
        if payload is _FAILED:
            return None
        if isinstance(payload, dict) and isinstance(payload.get("stats"), dict):
            payload = payload["stats"]
        try:
            self.stats = self._validate(EventStats, payload)
        except ApiError as e:
            self._record_failure("fetch_stats", e)
            return None
        return self.stats

    async def register(self, event_id: str, notes: Optional[str] = None) -> Optional[Event]:
        body = {"notes": notes} if notes else {}
        response = await self._call("register", self.api.post(self.endpoints.action_path(event_id, "register"), body))
        return self._apply_registration(event_id, response, registered=True)

    async def unregister(self, event_id: str) -> Optional[Event]:
        response = await self._call("unregister", self.api.delete(self.endpoints.action_path(event_id, "unregister")))
        return self._apply_registration(event_id, response, registered=False)

    def _apply_registration(self, event_id: str, response: Any, registered: bool) -> Optional[Event]:
        if response is _FAILED:
            return None
        update: Dict[str, Any] = {"is_registered": registered}
        event = None
        if isinstance(response, dict) and isinstance(response.get("event"), dict):
            event = self._parse_entity(response)
            if event is not None:
                update["current_participants"] = event.current_participants

        def change(cached: Event) -> Event:
            return cached.model_copy(update=update)

        self._update_everywhere(event_id, change)
        self.mine = [change(e) if e.id == event_id else e for e in self.mine]

        updated = self.get(event_id)
        if updated is None and event is not None:
            updated = change(event)
        return updated


class ExpertStore(ResourceStore[Expert]):
    """Read-only directory of experts and its lookup lists."""

    default_filters = {"page": 1, "limit": 12}

    def __init__(self, api: ApiClient):
        super().__init__(api, EXPERT_ENDPOINTS, Expert)
        self.specializations: List[str] = []
        self.locations: List[str] = []
        self.hospitals: List[str] = []

    async def fetch_specializations(self) -> List[str]:
        self.specializations = await self._fetch_lookup("specializations")
        return self.specializations

    async def fetch_locations(self) -> List[str]:
        self.locations = await self._fetch_lookup("locations")
        return self.locations

    async def fetch_hospitals(self) -> List[str]:
        self.hospitals = await self._fetch_lookup("hospitals")
        return self.hospitals

    async def _fetch_lookup(self, name: str) -> List[str]:
        payload = await self._call(name, self.api.get(f"{self.endpoints.base_path}/{name}"))
        if payload is _FAILED:
            return getattr(self, name)
        if isinstance(payload, dict):
            payload = payload.get(name, payload.get("data", []))
        if not isinstance(payload, list):
            logger.warning("ExpertStore: %s - unexpected payload, keeping previous values", name)
            return getattr(self, name)
        return [str(value) for value in payload]


@dataclass
class Stores:
    posts: PostStore
    blogs: BlogStore
    comments: CommentStore
    events: EventStore
    experts: ExpertStore


def build_stores(api: ApiClient, optimistic: bool = False) -> Stores:
    return Stores(
        posts=PostStore(api, optimistic=optimistic),
        blogs=BlogStore(api, optimistic=optimistic),
        comments=CommentStore(api, optimistic=optimistic),
        events=EventStore(api),
        experts=ExpertStore(api),
    )

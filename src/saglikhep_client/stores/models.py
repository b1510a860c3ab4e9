# src/saglikhep_client/stores/models.py

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class Resource(BaseModel):
    """Server entity; fields the client does not model are kept as extras."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("_id", "id"))


class ToggleableResource(Resource):
    is_liked: bool = Field(default=False, validation_alias=AliasChoices("isLiked", "is_liked"))
    is_disliked: bool = Field(default=False, validation_alias=AliasChoices("isDisliked", "is_disliked"))
    likes_count: int = Field(default=0, ge=0, validation_alias=AliasChoices("likesCount", "likes_count"))
    dislikes_count: int = Field(default=0, ge=0, validation_alias=AliasChoices("dislikesCount", "dislikes_count"))


class Post(ToggleableResource):
    title: Optional[str] = None
    category: Optional[str] = None


class Blog(ToggleableResource):
    title: Optional[str] = None
    slug: Optional[str] = None
    category: Optional[str] = None


class Comment(ToggleableResource):
    content: Optional[str] = None
    replies_count: int = Field(default=0, validation_alias=AliasChoices("repliesCount", "replies_count"))


class Event(Resource):
    title: Optional[str] = None
    status: Optional[str] = None
    is_registered: bool = Field(default=False, validation_alias=AliasChoices("isRegistered", "is_registered"))
    current_participants: int = Field(
        default=0, validation_alias=AliasChoices("currentParticipants", "current_participants")
    )
    max_participants: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("maxParticipants", "max_participants")
    )


class EventStats(BaseModel):
    """Admin overview of events; the per-category and per-organizer breakdowns stay as raw dicts."""
    model_config = ConfigDict(extra="allow")

    total_events: int = Field(default=0, validation_alias="totalEvents")
    active_events: int = Field(default=0, validation_alias="activeEvents")
    pending_events: int = Field(default=0, validation_alias="pendingEvents")
    completed_events: int = Field(default=0, validation_alias="completedEvents")
    total_participants: int = Field(default=0, validation_alias="totalParticipants")
    average_participants: float = Field(default=0, validation_alias="averageParticipants")
    category_stats: List[Dict[str, Any]] = Field(default_factory=list, validation_alias="categoryStats")
    organizer_stats: List[Dict[str, Any]] = Field(default_factory=list, validation_alias="organizerStats")


class Expert(Resource):
    username: Optional[str] = None
    first_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("firstName", "first_name"))
    last_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("lastName", "last_name"))


class Pagination(BaseModel):
    model_config = ConfigDict(extra="allow")

    current_page: int = Field(default=1, validation_alias=AliasChoices("currentPage", "page", "current_page"))
    total_pages: int = Field(default=1, validation_alias=AliasChoices("totalPages", "total_pages"))
    total: int = Field(
        default=0,
        validation_alias=AliasChoices(
            "total", "totalPosts", "totalBlogs", "totalComments", "totalEvents", "totalExperts"
        ),
    )
    has_next: bool = Field(default=False, validation_alias=AliasChoices("hasNext", "has_next"))
    has_prev: bool = Field(default=False, validation_alias=AliasChoices("hasPrev", "has_prev"))


class ToggleResult(BaseModel):
    """
    Authoritative engagement state returned by a like/dislike call.

    Posts and blogs answer {likes, dislikes, isLiked, isDisliked}; comments
    answer only the toggled side ({isLiked, likesCount} or
    {isDisliked, dislikesCount}), so the other side may be None.
    """
    is_liked: Optional[bool] = Field(default=None, validation_alias="isLiked")
    is_disliked: Optional[bool] = Field(default=None, validation_alias="isDisliked")
    likes_count: Optional[int] = Field(default=None, validation_alias=AliasChoices("likesCount", "likes"))
    dislikes_count: Optional[int] = Field(default=None, validation_alias=AliasChoices("dislikesCount", "dislikes"))

    @model_validator(mode="before")
    @classmethod
    def count_arrays(cls, data: Any) -> Any:
        # Some endpoints return the raw user-id arrays instead of counters
        if isinstance(data, dict):
            data = dict(data)
            for key in ("likes", "dislikes"):
                if isinstance(data.get(key), list):
                    data[key] = len(data[key])
        return data


class ListFilters(BaseModel):
    """Common list query; endpoint-specific filters ride along as extras."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    page: Optional[int] = Field(default=None, ge=1)
    limit: Optional[int] = Field(default=None, ge=1)
    category: Optional[str] = None
    search: Optional[str] = None
    sort_by: Optional[str] = Field(default=None, alias="sortBy")
    sort_order: Optional[str] = Field(default=None, alias="sortOrder", pattern="^(asc|desc)$")

from .base import (
    MutableResourceStore,
    ResourceEndpoints,
    ResourceStore,
    ToggleableResourceStore,
    reconcile_toggle,
)
from .models import (
    Blog,
    Comment,
    Event,
    EventStats,
    Expert,
    ListFilters,
    Pagination,
    Post,
    Resource,
    ToggleableResource,
    ToggleResult,
)
from .resources import (
    BlogStore,
    CommentStore,
    EventStore,
    ExpertStore,
    PostStore,
    Stores,
    build_stores,
)

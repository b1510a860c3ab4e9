import asyncio
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from saglikhep_client.config import Settings
from saglikhep_client.credential_store import CredentialStore, MemoryStorage
from saglikhep_client.events import SessionEvents
from saglikhep_client.http_client import ApiClient, ClientMode
from saglikhep_client.token_refresh import TokenRefresher

BASE_URL = "http://testserver"


class FakeBackend:
    """
    In-memory stand-in for the SaglikHep API.

    Tokens are opaque strings; a request is authorized when its bearer is in
    access_tokens. Every request is recorded as (method, path, bearer).
    """

    def __init__(self):
        self.access_tokens = {"access-0"}
        self.refresh_tokens = {"refresh-0"}
        self.renewals = 0
        self.refresh_fails = False
        self.refresh_gate: Optional[asyncio.Event] = None
        self.always_unauthorized = False
        self.requests: List[Tuple[str, str, Optional[str]]] = []
        self.list_gates: Dict[str, asyncio.Event] = {}
        self.failures: Dict[str, Tuple[int, Dict[str, Any]]] = {}
        self.uploads: List[Tuple[str, str, int]] = []

        self.posts: Dict[str, Dict[str, Any]] = {
            "p1": self._post("p1", "Sleep and stress"),
            "p2": self._post("p2", "Running after 40"),
        }
        self.comments: Dict[str, Dict[str, Any]] = {
            "c1": {"_id": "c1", "content": "Same here", "post": "p1", "likesCount": 0, "dislikesCount": 3,
                   "isLiked": False, "isDisliked": True, "repliesCount": 0},
        }
        self.events: Dict[str, Dict[str, Any]] = {
            "e1": {"_id": "e1", "title": "Morning walk", "status": "approved",
                   "currentParticipants": 4, "maxParticipants": 20},
        }

    @staticmethod
    def _post(post_id: str, title: str) -> Dict[str, Any]:
        return {"_id": post_id, "title": title, "category": "health", "likes": [], "dislikes": [],
                "likesCount": 0, "dislikesCount": 0, "isLiked": False, "isDisliked": False}

    def bearer(self, request: Request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        return header[len("Bearer "):] if header.startswith("Bearer ") else None

    def rotate(self) -> Tuple[str, str]:
        self.renewals += 1
        access, refresh = f"access-{self.renewals}", f"refresh-{self.renewals}"
        self.access_tokens = {access}
        self.refresh_tokens = {refresh}
        return access, refresh

    def expire_access_token(self) -> None:
        self.access_tokens = set()

    def count(self, method: str, path: str) -> int:
        return sum(1 for m, p, _ in self.requests if m == method and p == path)


def build_app(backend: FakeBackend) -> FastAPI:
    app = FastAPI()

    @app.middleware("http")
    async def record(request: Request, call_next):
        backend.requests.append((request.method, request.url.path, backend.bearer(request)))
        failure = backend.failures.get(f"{request.method} {request.url.path}")
        if failure is not None:
            status_code, body = failure
            return JSONResponse(body, status_code=status_code)
        return await call_next(request)

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse({"message": exc.detail}, status_code=exc.status_code)

    def require_token(request: Request) -> str:
        token = backend.bearer(request)
        if backend.always_unauthorized or token not in backend.access_tokens:
            raise HTTPException(status_code=401, detail="Token expired")
        return token

    # --- Auth ---

    @app.post("/api/auth/login")
    async def login(body: Dict[str, Any]):
        if body.get("password") != "secret":
            raise HTTPException(status_code=401, detail="Invalid credentials")
        access, refresh = backend.rotate()
        role = "admin" if body["email"].startswith("admin") else "user"
        return {
            "accessToken": access,
            "refreshToken": refresh,
            "user": {"_id": "u1", "username": "ayse", "email": body["email"], "role": role},
        }

    @app.post("/api/auth/register")
    async def register(body: Dict[str, Any]):
        if not body.get("username"):
            return JSONResponse(
                {"message": "Validation failed", "errors": [{"field": "username", "message": "Username is required"}]},
                status_code=400,
            )
        return {"message": "Registered"}

    @app.post("/api/auth/refresh")
    async def refresh(body: Dict[str, Any]):
        if backend.refresh_gate is not None:
            await backend.refresh_gate.wait()
        if backend.refresh_fails or body.get("refreshToken") not in backend.refresh_tokens:
            raise HTTPException(status_code=401, detail="Refresh token expired")
        access, refresh_token = backend.rotate()
        return {"accessToken": access, "refreshToken": refresh_token}

    @app.post("/api/auth/logout")
    async def logout(token: str = Depends(require_token)):
        return {"message": "Logged out"}

    @app.get("/api/auth/profile")
    async def profile(token: str = Depends(require_token)):
        return {"user": {"_id": "u1", "username": "ayse", "role": "user"}}

    @app.put("/api/auth/profile")
    async def update_profile(body: Dict[str, Any], token: str = Depends(require_token)):
        return {"user": {"_id": "u1", "username": "ayse", "role": "user", **body}}

    @app.post("/api/auth/forgot-password")
    async def forgot_password(body: Dict[str, Any]):
        return {"message": "Mail sent"}

    @app.post("/api/auth/verify-email")
    async def verify_email(body: Dict[str, Any]):
        if body.get("token") != "good":
            return {"success": False, "message": "Invalid verification link"}
        return {"success": True, "data": {"verified": True}}

    @app.get("/api/public/stats")
    async def public_stats():
        return {"success": True, "data": {"members": 42}}

    # --- Posts ---

    @app.get("/api/posts")
    async def list_posts(request: Request, token: str = Depends(require_token)):
        category = request.query_params.get("category", "")
        gate = backend.list_gates.get(category)
        if gate is not None:
            await gate.wait()
        posts = [p for p in backend.posts.values() if not category or p["category"] == category]
        return {
            "posts": posts,
            "pagination": {"currentPage": 1, "totalPages": 1, "totalPosts": len(posts),
                           "hasNext": False, "hasPrev": False},
            "echo": dict(request.query_params),
        }

    @app.post("/api/posts")
    async def create_post(body: Dict[str, Any], token: str = Depends(require_token)):
        if not body.get("title"):
            return JSONResponse(
                {"message": "Validation failed", "errors": [{"field": "title", "message": "Title is required"}]},
                status_code=400,
            )
        post = backend._post(f"p{len(backend.posts) + 1}", body["title"])
        backend.posts[post["_id"]] = post
        return {"post": post}

    @app.get("/api/posts/user/{user_id}")
    async def posts_by_user(user_id: str, request: Request, token: str = Depends(require_token)):
        posts = [dict(p, author=user_id) for p in backend.posts.values() if p["_id"] == "p2"]
        return {"posts": posts, "pagination": {"currentPage": 1, "totalPages": 1, "totalPosts": len(posts)},
                "echo": dict(request.query_params)}

    @app.get("/api/posts/{post_id}")
    async def get_post(post_id: str, token: str = Depends(require_token)):
        if post_id not in backend.posts:
            raise HTTPException(status_code=404, detail="Post not found")
        others = [p for k, p in backend.posts.items() if k != post_id]
        return {"post": backend.posts[post_id], "newPosts": others, "similarPosts": []}

    @app.put("/api/posts/{post_id}")
    async def update_post(post_id: str, body: Dict[str, Any], token: str = Depends(require_token)):
        backend.posts[post_id].update(body)
        return backend.posts[post_id]

    @app.delete("/api/posts/{post_id}")
    async def delete_post(post_id: str, token: str = Depends(require_token)):
        backend.posts.pop(post_id, None)
        return {"message": "Deleted"}

    @app.post("/api/posts/{post_id}/like")
    async def like_post(post_id: str, token: str = Depends(require_token)):
        post = backend.posts[post_id]
        post["isLiked"] = not post["isLiked"]
        if post["isLiked"]:
            post["isDisliked"] = False
        post["likesCount"] = int(post["isLiked"])
        post["dislikesCount"] = int(post["isDisliked"])
        return {"likes": post["likesCount"], "dislikes": post["dislikesCount"],
                "isLiked": post["isLiked"], "isDisliked": post["isDisliked"]}

    @app.post("/api/posts/{post_id}/dislike")
    async def dislike_post(post_id: str, token: str = Depends(require_token)):
        post = backend.posts[post_id]
        post["isDisliked"] = not post["isDisliked"]
        if post["isDisliked"]:
            post["isLiked"] = False
        post["likesCount"] = int(post["isLiked"])
        post["dislikesCount"] = int(post["isDisliked"])
        return {"likes": post["likesCount"], "dislikes": post["dislikesCount"],
                "isLiked": post["isLiked"], "isDisliked": post["isDisliked"]}

    @app.post("/api/posts/{post_id}/report")
    async def report_post(post_id: str, body: Dict[str, Any], token: str = Depends(require_token)):
        return {"message": "Reported"}

    # --- Blogs ---

    @app.get("/api/blogs/slug/{slug}")
    async def blog_by_slug(slug: str, token: str = Depends(require_token)):
        return {"blog": {"_id": "b1", "title": "Hydration", "slug": slug}}

    @app.get("/api/blogs/user/{user_id}")
    async def blogs_by_user(user_id: str, token: str = Depends(require_token)):
        return {"blogs": [{"_id": "b1", "title": "Hydration", "slug": "hydration", "author": user_id}],
                "pagination": {"currentPage": 1, "totalPages": 1, "totalBlogs": 1}}

    # --- Comments ---

    @app.get("/api/comments/{post_id}")
    async def list_comments(post_id: str, token: str = Depends(require_token)):
        comments = [c for c in backend.comments.values() if c["post"] == post_id]
        return {"comments": comments, "pagination": {"currentPage": 1, "totalPages": 1,
                                                     "totalComments": len(comments)}}

    @app.post("/api/comments/{post_id}")
    async def create_comment(post_id: str, body: Dict[str, Any], token: str = Depends(require_token)):
        comment = {"_id": f"c{len(backend.comments) + 1}", "content": body["content"], "post": post_id}
        backend.comments[comment["_id"]] = comment
        return comment

    @app.post("/api/comments/{comment_id}/like")
    async def like_comment(comment_id: str, token: str = Depends(require_token)):
        # Comments only report the toggled side
        return {"message": "Liked", "isLiked": True, "likesCount": 1}

    @app.post("/api/comments/{comment_id}/reply")
    async def reply_comment(comment_id: str, body: Dict[str, Any], token: str = Depends(require_token)):
        return {"_id": "r1", "content": body["content"], "post": "p1"}

    @app.get("/api/comments/{comment_id}/replies")
    async def comment_replies(comment_id: str, token: str = Depends(require_token)):
        return {"comments": [{"_id": "r1", "content": "Thanks"}], "pagination": {}}

    # --- Events ---

    @app.get("/api/events/search")
    async def search_events(q: str, token: str = Depends(require_token)):
        events = [e for e in backend.events.values() if q.lower() in e["title"].lower()]
        return {"events": events}

    @app.get("/api/events/my-events")
    async def my_events(request: Request, token: str = Depends(require_token)):
        return {"events": [dict(backend.events["e1"], title="Yoga in the park")],
                "pagination": {"currentPage": 1, "totalPages": 1, "totalEvents": 1},
                "echo": dict(request.query_params)}

    @app.get("/api/events/stats")
    async def event_stats(token: str = Depends(require_token)):
        return {"stats": {"totalEvents": 3, "activeEvents": 2, "totalParticipants": 14,
                          "averageParticipants": 4.7,
                          "categoryStats": [{"category": "sport", "count": 2, "totalParticipants": 9}]}}

    @app.get("/api/events/{event_id}")
    async def get_event(event_id: str, token: str = Depends(require_token)):
        return {"event": backend.events[event_id]}

    @app.get("/api/events")
    async def list_events(token: str = Depends(require_token)):
        return {"events": list(backend.events.values())}

    @app.post("/api/events/{event_id}/register")
    async def register_event(event_id: str, body: Dict[str, Any], token: str = Depends(require_token)):
        event = backend.events[event_id]
        event["currentParticipants"] += 1
        return {"registration": {"_id": "reg1", "notes": body.get("notes")}, "event": event}

    @app.delete("/api/events/{event_id}/unregister")
    async def unregister_event(event_id: str, token: str = Depends(require_token)):
        event = backend.events[event_id]
        event["currentParticipants"] -= 1
        return {"event": event}

    # --- Experts ---

    @app.get("/api/users/experts/specializations")
    async def specializations(token: str = Depends(require_token)):
        return ["Cardiology", "Dermatology"]

    @app.get("/api/users/experts/locations")
    async def locations(token: str = Depends(require_token)):
        return {"data": ["Ankara", "Izmir"]}

    @app.get("/api/users/experts")
    async def list_experts(token: str = Depends(require_token)):
        return {"experts": [{"_id": "x1", "username": "drdemir", "firstName": "Ali"}],
                "pagination": {"currentPage": 1, "totalPages": 1, "totalExperts": 1}}

    # --- Uploads ---

    @app.post("/api/upload/single")
    async def upload_single(image: UploadFile = File(...), token: str = Depends(require_token)):
        data = await image.read()
        backend.uploads.append((image.filename, image.content_type, len(data)))
        return {"imageUrl": f"/uploads/{image.filename}", "fileName": image.filename,
                "fileSize": len(data), "mimeType": image.content_type}

    @app.post("/api/upload/multiple")
    async def upload_multiple(images: List[UploadFile] = File(...), token: str = Depends(require_token)):
        result = []
        for image in images:
            data = await image.read()
            backend.uploads.append((image.filename, image.content_type, len(data)))
            result.append({"imageUrl": f"/uploads/{image.filename}", "fileName": image.filename})
        return {"images": result}

    @app.delete("/api/upload/{file_name}")
    async def delete_upload(file_name: str, token: str = Depends(require_token)):
        return {"message": "Deleted"}

    return app


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def transport(backend: FakeBackend) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=build_app(backend))


@pytest.fixture
def events() -> SessionEvents:
    return SessionEvents("test")


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def credentials(storage: MemoryStorage, events: SessionEvents) -> CredentialStore:
    store = CredentialStore(storage, events)
    store.write("access-0", "refresh-0", {"_id": "u1", "username": "ayse"})
    return store


@pytest.fixture
def navigations() -> List[str]:
    return []


@pytest.fixture
async def auth_client(transport):
    client = ApiClient(BASE_URL, mode=ClientMode.ANONYMOUS_AUTH, transport=transport)
    yield client
    await client.aclose()


@pytest.fixture
def refresher(credentials, auth_client, navigations) -> TokenRefresher:
    return TokenRefresher(credentials, auth_client, navigator=navigations.append)


@pytest.fixture
async def api(transport, credentials, refresher):
    client = ApiClient(
        BASE_URL,
        mode=ClientMode.AUTHENTICATED,
        credentials=credentials,
        refresher=refresher,
        transport=transport,
        upload_chunk_size=16,
    )
    yield client
    await client.aclose()


@pytest.fixture
def settings() -> Settings:
    return Settings(API_BASE_URL=BASE_URL, UPLOAD_CHUNK_SIZE=32)

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from gatehouse.core.settings import get_settings
from gatehouse.models import EndpointIndex, Post
from gatehouse.security import User, get_current_user
from gatehouse.security.filters import filter_endpoints

router = APIRouter(tags=["site"])

# In-memory content (no persistence)
POSTS = [
    Post(id=1, title="Hello world", author="admin"),
    Post(id=2, title="Release notes", author="admin"),
]

API_ENDPOINTS = ["/api", "/api/posts", "/api/users", "/api/plugins"]


@router.get("/")
def home():
    return {"ok": True, "posts": len(POSTS)}


@router.get("/author/{name}")
def author_archive(name: str):
    return {"author": name, "posts": [p for p in POSTS if p.author == name]}


@router.api_route("/xmlrpc", methods=["GET", "POST"])
def xmlrpc():
    return PlainTextResponse("XML-RPC server accepts POST requests only.")


@router.get("/api", response_model=EndpointIndex)
def api_index():
    return EndpointIndex(endpoints=filter_endpoints(API_ENDPOINTS, get_settings().toggles))


@router.get("/api/posts")
def list_posts():
    return POSTS


@router.get("/api/users")
def list_users(user: User = Depends(get_current_user)):
    return [{"username": user.username}]


@router.get("/api/plugins")
def list_plugins():
    return [{"name": "gatehouse", "active": True}]

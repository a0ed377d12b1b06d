"""HTTP client for the MindCanvas persistence and auth services."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests

from mindcanvas import config
from mindcanvas.errors import (
    AuthenticationError, MindCanvasError, NetworkError, NotFoundError,
    PermissionDeniedError, ValidationError,
)
from mindcanvas.model import MindMap, sanitize_mind_map, sanitize_mind_maps

logger = logging.getLogger(__name__)

TOKEN_SETTING = "auth_token"


class TokenStore:
    """Holds the bearer token and expires it after a fixed lifetime.

    When a settings backend (anything with ``get_setting``/``set_setting``)
    is given, the token survives restarts.
    """

    def __init__(self, settings=None, lifetime: float = config.TOKEN_LIFETIME_SECONDS,
                 clock: Callable[[], float] = time.time):
        self._settings = settings
        self._lifetime = lifetime
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0

        if settings is not None:
            saved = settings.get_setting(TOKEN_SETTING)
            if isinstance(saved, dict) and saved.get("token"):
                self._token = saved["token"]
                self._expires_at = float(saved.get("expires_at", 0.0))

    @property
    def token(self) -> Optional[str]:
        if self._token and self._clock() >= self._expires_at:
            logger.info("Stored token expired")
            self.clear()
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def set_token(self, token: str):
        self._token = token
        self._expires_at = self._clock() + self._lifetime
        if self._settings is not None:
            self._settings.set_setting(TOKEN_SETTING, {
                "token": token, "expires_at": self._expires_at,
            })

    def clear(self):
        self._token = None
        self._expires_at = 0.0
        if self._settings is not None:
            self._settings.set_setting(TOKEN_SETTING, None)


class ApiClient:
    """JSON client that unwraps ``{success, data, message}`` envelopes."""

    def __init__(self, base_url: str, token_store: TokenStore,
                 session: Optional[requests.Session] = None,
                 timeout: float = config.DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.tokens = token_store
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        token = self.tokens.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def request(self, method: str, endpoint: str, payload: Any = None,
                params: Optional[dict] = None) -> requests.Response:
        """Send a request and return the response, raising a MindCanvasError on failure."""
        url = f"{self.base_url}{endpoint}"
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(
                method, url, headers=self._headers(), json=payload, params=params,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise NetworkError(f"Request timed out: {url}", url=url) from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Could not reach server: {exc}", url=url) from exc

        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise self._error_for(response, url) from exc
        return response

    def _error_for(self, response: requests.Response, url: str) -> MindCanvasError:
        status = response.status_code
        body: Dict[str, Any] = {}
        try:
            parsed = response.json()
            if isinstance(parsed, dict):
                body = parsed
        except ValueError:
            body = {}  # plain-text error body
        message = body.get("error") or body.get("message") or response.text \
            or f"HTTP error! status: {status}"
        logger.warning("API request failed (%s): %s", status, message)

        if status == 401:
            self.tokens.clear()
            return AuthenticationError(message)
        if status == 403:
            return PermissionDeniedError(message)
        if status == 404:
            return NotFoundError(message)
        if status in (400, 422):
            return ValidationError(message, field=body.get("field"))
        return NetworkError(message, status=status, url=url)

    def _data(self, response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError as exc:
            raise NetworkError("Server returned invalid JSON", status=response.status_code,
                               url=response.url) from exc
        if isinstance(body, dict) and "success" in body:
            if not body["success"]:
                raise NetworkError(body.get("error") or body.get("message") or "Request failed",
                                   status=response.status_code, url=response.url)
            return body.get("data")
        return body

    def get(self, endpoint: str, params: Optional[dict] = None) -> Any:
        return self._data(self.request("GET", endpoint, params=params))

    def post(self, endpoint: str, payload: Any = None) -> Any:
        return self._data(self.request("POST", endpoint, payload))

    def put(self, endpoint: str, payload: Any = None) -> Any:
        return self._data(self.request("PUT", endpoint, payload))

    def delete(self, endpoint: str) -> Any:
        return self._data(self.request("DELETE", endpoint))

    def get_raw(self, endpoint: str) -> bytes:
        return self.request("GET", endpoint).content

    def get_json(self, endpoint: str, params: Optional[dict] = None) -> Any:
        """GET without envelope unwrapping, for endpoints that answer plain JSON."""
        response = self.request("GET", endpoint, params=params)
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkError("Server returned invalid JSON", status=response.status_code,
                               url=response.url) from exc


# ==================== Mind Maps ====================

@dataclass
class SearchResult:
    """One page of search results."""
    mind_maps: List[MindMap] = field(default_factory=list)
    page: int = 1
    total_pages: int = 0
    total_results: int = 0
    limit: int = 20
    has_next_page: bool = False
    has_prev_page: bool = False


SORT_FIELDS = ("title", "createdAt", "updatedAt", "searchScore")


class MindMapService:
    """CRUD, search, sharing and export for mind maps."""

    def __init__(self, client: ApiClient):
        self.client = client

    @property
    def is_authenticated(self) -> bool:
        return self.client.tokens.is_authenticated

    def list_maps(self) -> List[MindMap]:
        data = self.client.get("/mindmaps")
        if isinstance(data, dict):
            data = data.get("mindMaps", [])
        return sanitize_mind_maps(data)

    def get_map(self, map_id: str) -> MindMap:
        return sanitize_mind_map(self.client.get(f"/mindmaps/{map_id}"))

    def create_map(self, title: str, description: str = "", is_public: bool = False,
                   tags=()) -> MindMap:
        data = self.client.post("/mindmaps", {
            "title": title,
            "description": description,
            "isPublic": is_public,
            "tags": list(tags),
        })
        return sanitize_mind_map(data)

    def update_map(self, mind_map: MindMap) -> MindMap:
        wire = mind_map.to_dict()
        payload = {key: wire[key] for key in (
            "title", "description", "isPublic", "nodes", "connections", "canvas", "tags",
        )}
        return sanitize_mind_map(self.client.put(f"/mindmaps/{mind_map.id}", payload))

    def delete_map(self, map_id: str):
        self.client.delete(f"/mindmaps/{map_id}")

    def duplicate_map(self, map_id: str) -> MindMap:
        return sanitize_mind_map(self.client.post(f"/mindmaps/{map_id}/duplicate"))

    def search(self, query: str = "", sort_by: str = "updatedAt", sort_order: str = "desc",
               page: int = 1, limit: int = 20) -> SearchResult:
        if sort_by not in SORT_FIELDS:
            raise ValidationError(f"Cannot sort by {sort_by!r}", field="sortBy")
        if sort_order not in ("asc", "desc"):
            raise ValidationError(f"Invalid sort order {sort_order!r}", field="sortOrder")

        body = self.client.get_json("/mindmaps/search", params={
            "q": query, "sortBy": sort_by, "sortOrder": sort_order,
            "page": page, "limit": limit,
        })
        if isinstance(body, dict) and "data" in body and "mindMaps" not in body:
            body = body["data"] or {}
        if not isinstance(body, dict):
            body = {}
        pagination = body.get("pagination") or {}
        return SearchResult(
            mind_maps=sanitize_mind_maps(body.get("mindMaps")),
            page=int(pagination.get("currentPage", page)),
            total_pages=int(pagination.get("totalPages", 0)),
            total_results=int(pagination.get("totalResults", 0)),
            limit=int(pagination.get("limit", limit)),
            has_next_page=bool(pagination.get("hasNextPage", False)),
            has_prev_page=bool(pagination.get("hasPrevPage", False)),
        )

    def list_collaborators(self, map_id: str) -> dict:
        """Return ``{"owner": {...}, "collaborators": [...]}`` for a map."""
        data = self.client.get(f"/collaboration/{map_id}/collaborators") or {}
        return {
            "owner": data.get("owner"),
            "collaborators": list(data.get("collaborators") or []),
        }

    def add_collaborator(self, map_id: str, email: str) -> Any:
        if not email or "@" not in email:
            raise ValidationError("A valid email is required", field="email")
        return self.client.post(f"/collaboration/{map_id}/collaborators", {"email": email})

    def remove_collaborator(self, map_id: str, user_id: str):
        self.client.delete(f"/collaboration/{map_id}/collaborators/{user_id}")

    def export_map(self, map_id: str, fmt: str) -> bytes:
        """Download a server-side export (json, svg, png or pdf)."""
        fmt = fmt.lower()
        if fmt not in ("json", "svg", "png", "pdf"):
            raise ValidationError(f"Unsupported export format {fmt!r}", field="format")
        return self.client.get_raw(f"/mindmaps/{map_id}/export/{fmt}")


# ==================== Auth ====================

class AuthService:
    """Login, registration and profile lookups."""

    def __init__(self, client: ApiClient):
        self.client = client

    @property
    def is_authenticated(self) -> bool:
        return self.client.tokens.is_authenticated

    def _store(self, data: Any) -> dict:
        if not isinstance(data, dict) or not data.get("token"):
            raise AuthenticationError("Server did not return a token")
        self.client.tokens.set_token(data["token"])
        return data.get("user") or {}

    def login(self, email: str, password: str) -> dict:
        if not email or "@" not in email:
            raise ValidationError("Invalid email format", field="email")
        if not password:
            raise ValidationError("Password is required", field="password")
        user = self._store(self.client.post("/auth/login", {"email": email, "password": password}))
        logger.info("Logged in as %s", email)
        return user

    def register(self, name: str, email: str, password: str) -> dict:
        if not name.strip():
            raise ValidationError("Name is required", field="name")
        if not email or "@" not in email:
            raise ValidationError("Invalid email format", field="email")
        if len(password) < 8:
            raise ValidationError("Password must be at least 8 characters", field="password")
        return self._store(self.client.post("/auth/register", {
            "name": name, "email": email, "password": password,
        }))

    def profile(self) -> dict:
        return self.client.get("/auth/me") or {}

    def logout(self):
        self.client.tokens.clear()

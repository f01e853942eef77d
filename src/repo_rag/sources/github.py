"""repo_rag.sources.github

GitHub source fetching and OAuth helpers.

This module provides the source collaborator used by the ingest flow: it lists
the files of a repository from its recursive git tree and downloads decoded
text for each path through the contents API. It also wraps the GitHub OAuth
web flow and holds the operator's access token for the process.

Classes
-------
SourceEntry
    A repository path and whether it looks like text.
SourceFetcher
    Protocol for source collaborators.
SessionCredentials
    Process-wide holder of the current access token.
GitHubSourceFetcher
    ``requests``-based implementation of :class:`SourceFetcher`.
GitHubOAuth
    Authorize-URL construction and code-for-token exchange.

Functions
---------
is_text_path
    Decide from a path's extension whether it is worth fetching.
resolve_public_url
    Work out the externally visible base URL of the HTTP service.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol
from urllib.parse import quote, urlencode
import base64
import binascii
import logging
import os
import threading

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from repo_rag.common.errors import AuthenticationMissing, UpstreamServiceError

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
DEFAULT_BRANCH = "main"
DEFAULT_TIMEOUT = 30.0
# 403 is what GitHub sends when the rate limit is exhausted.
RETRY_STATUSES = (403, 429, 500, 502, 503, 504)

BINARY_EXTENSIONS = frozenset({
    # images
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".icns", ".webp", ".tif", ".tiff", ".psd",
    # archives
    ".zip", ".gz", ".tgz", ".bz2", ".xz", ".7z", ".rar", ".tar", ".jar", ".war", ".whl", ".egg",
    # compiled / binaries
    ".exe", ".dll", ".so", ".dylib", ".a", ".o", ".obj", ".lib", ".class", ".pyc", ".pyo",
    ".wasm", ".bin", ".dat",
    # documents / media / fonts
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".mp3", ".mp4", ".wav", ".ogg", ".flac", ".avi", ".mov", ".mkv", ".webm",
    ".ttf", ".otf", ".woff", ".woff2", ".eot",
    # data stores
    ".sqlite", ".db", ".pkl", ".npy", ".npz", ".parquet", ".h5",
})


def is_text_path(path: str) -> bool:
    """Return ``False`` for paths whose extension denotes binary content."""
    _, ext = os.path.splitext(path.lower())
    return ext not in BINARY_EXTENSIONS


def resolve_public_url(configured: Optional[str], port: int) -> str:
    """Return the base URL the service is reachable at.

    The configured value wins; otherwise a GitHub Codespaces forwarding URL
    is derived from ``CODESPACE_NAME``; otherwise ``http://localhost:<port>``.
    """
    if configured:
        return configured.rstrip("/")
    codespace = os.environ.get("CODESPACE_NAME")
    if codespace:
        return f"https://{codespace}-{port}.app.github.dev"
    return f"http://localhost:{port}"


def _make_session(max_retries: int, backoff_factor: float) -> requests.Session:
    retry = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=frozenset({"GET", "POST"}),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


@dataclass(frozen=True)
class SourceEntry:
    path: str
    is_text: bool


class SourceFetcher(Protocol):
    """Protocol for the source collaborator consumed by the ingest flow."""

    def list_files(self, owner: str, repo: str, token: str) -> List[SourceEntry]:
        ...

    def fetch_text(self, owner: str, repo: str, path: str, token: str) -> Optional[str]:
        ...


class SessionCredentials:
    """Holds the access token of the current operator.

    A single token is kept for the whole process; the last write wins.
    """

    def __init__(self, token: Optional[str] = None):
        self._token = token
        self._lock = threading.Lock()

    def set(self, token: str) -> None:
        with self._lock:
            self._token = token

    def clear(self) -> None:
        with self._lock:
            self._token = None

    def get(self) -> Optional[str]:
        with self._lock:
            return self._token

    def require(self) -> str:
        """Return the token or raise :class:`AuthenticationMissing`."""
        token = self.get()
        if not token:
            raise AuthenticationMissing("Not authenticated with GitHub.")
        return token


class GitHubSourceFetcher:
    """List and download repository files through the GitHub REST API.

    Parameters
    ----------
    api_base : str, optional
        REST API root. Defaults to ``https://api.github.com``.
    branch : str, optional
        Branch (or any tree-ish) to read. Defaults to ``"main"``.
    timeout : float, optional
        Per-request timeout in seconds.
    max_retries : int, optional
        Retries for connection errors and 429/5xx responses, with exponential
        backoff.
    backoff_factor : float, optional
        Backoff factor passed to :class:`urllib3.util.retry.Retry`.
    session : requests.Session or None, optional
        Pre-built session, mainly for tests.
    """

    def __init__(
            self,
            *,
            api_base: str = GITHUB_API_BASE,
            branch: str = DEFAULT_BRANCH,
            timeout: float = DEFAULT_TIMEOUT,
            max_retries: int = 3,
            backoff_factor: float = 0.5,
            session: Optional[requests.Session] = None,
        ):
        self.api_base = api_base.rstrip("/")
        self.branch = branch
        self.timeout = timeout
        self.session = session or _make_session(max_retries, backoff_factor)

    @classmethod
    def from_config_dict(cls, config: dict) -> "GitHubSourceFetcher":
        return cls(
            api_base=config.get("api_base", GITHUB_API_BASE),
            branch=config.get("branch", DEFAULT_BRANCH),
            timeout=float(config.get("timeout", DEFAULT_TIMEOUT)),
            max_retries=int(config.get("max_retries", 3)),
            backoff_factor=float(config.get("backoff_factor", 0.5)),
        )

    def _get(self, url: str, token: str, params: Optional[dict] = None) -> Any:
        headers = {
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github+json",
        }
        try:
            response = self.session.get(url, headers=headers, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamServiceError("github", f"GET {url} failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationMissing("GitHub rejected the access token.")
        if response.status_code >= 400:
            raise UpstreamServiceError(
                "github",
                f"GET {url} returned {response.status_code}: {response.text[:200]}",
                response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamServiceError("github", f"GET {url} returned malformed JSON") from e

    def list_files(self, owner: str, repo: str, token: str) -> List[SourceEntry]:
        """Return every blob in the repository tree, in tree order.

        Raises
        ------
        AuthenticationMissing
            If GitHub rejects the token.
        UpstreamServiceError
            On network errors, error statuses or a malformed payload.
        """
        url = f"{self.api_base}/repos/{quote(owner)}/{quote(repo)}/git/trees/{quote(self.branch)}"
        data = self._get(url, token, params={"recursive": "1"})
        if not isinstance(data, dict) or not isinstance(data.get("tree"), list):
            raise UpstreamServiceError("github", f"Tree listing for {owner}/{repo} has no 'tree' list")
        if data.get("truncated"):
            logger.warning("Tree listing for %s/%s was truncated by GitHub", owner, repo)

        return [
            SourceEntry(path=item["path"], is_text=is_text_path(item["path"]))
            for item in data["tree"]
            if item.get("type") == "blob" and item.get("path")
        ]

    def fetch_text(self, owner: str, repo: str, path: str, token: str) -> Optional[str]:
        """Download ``path`` and return its UTF-8 text.

        Returns ``None`` when the response carries no inline content or the
        bytes are not UTF-8 text.
        """
        url = f"{self.api_base}/repos/{quote(owner)}/{quote(repo)}/contents/{quote(path)}"
        data = self._get(url, token, params={"ref": self.branch})
        if not isinstance(data, dict) or not data.get("content"):
            return None

        try:
            raw = base64.b64decode(data["content"])
        except (binascii.Error, ValueError) as e:
            raise UpstreamServiceError("github", f"Content of {path} is not valid base64") from e

        if b"\x00" in raw:
            return None
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return None


class GitHubOAuth:
    """GitHub OAuth web-flow helper.

    Parameters
    ----------
    client_id : str
        OAuth app client id.
    client_secret : str
        OAuth app client secret.
    scope : str, optional
        Requested scope. Defaults to ``"repo"``.
    timeout : float, optional
        Timeout for the token exchange.
    session : requests.Session or None, optional
        Pre-built session, mainly for tests.
    """

    def __init__(
            self,
            client_id: Optional[str],
            client_secret: Optional[str],
            *,
            scope: str = "repo",
            timeout: float = DEFAULT_TIMEOUT,
            session: Optional[requests.Session] = None,
        ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config_dict(cls, config: dict) -> "GitHubOAuth":
        return cls(
            client_id=config.get("client_id"),
            client_secret=config.get("client_secret"),
            scope=config.get("scope", "repo"),
            timeout=float(config.get("timeout", DEFAULT_TIMEOUT)),
        )

    def _require_client(self) -> None:
        if not self.client_id or not self.client_secret:
            raise ValueError("GitHub OAuth requires 'github.client_id' and 'github.client_secret'.")

    def authorize_url(self, redirect_uri: str, state: Optional[str] = None) -> str:
        self._require_client()
        params = {"client_id": self.client_id, "redirect_uri": redirect_uri, "scope": self.scope}
        if state:
            params["state"] = state
        return f"{GITHUB_AUTHORIZE_URL}?{urlencode(params)}"

    def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> str:
        """Exchange an authorization ``code`` for an access token.

        Raises
        ------
        UpstreamServiceError
            If the request fails or GitHub returns no token.
        """
        self._require_client()
        payload = {"client_id": self.client_id, "client_secret": self.client_secret, "code": code}
        if redirect_uri:
            payload["redirect_uri"] = redirect_uri

        try:
            response = self.session.post(
                GITHUB_TOKEN_URL,
                json=payload,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamServiceError("github-oauth", f"Token exchange failed: {e}") from e

        if response.status_code >= 400:
            raise UpstreamServiceError(
                "github-oauth", f"Token exchange returned {response.status_code}", response.status_code
            )
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamServiceError("github-oauth", "Token exchange returned malformed JSON") from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            reason = data.get("error_description") or data.get("error") if isinstance(data, dict) else None
            raise UpstreamServiceError("github-oauth", f"No access token returned ({reason or 'unknown error'})")
        return token


__all__ = [
    "SourceEntry",
    "SourceFetcher",
    "SessionCredentials",
    "GitHubSourceFetcher",
    "GitHubOAuth",
    "is_text_path",
    "resolve_public_url",
]

"""GitHub contents API client for pushing bot source to a repository.

Writes are compare-and-swap on the blob SHA: the current SHA is read first
and the PUT is conditioned on it, so a concurrent edit on GitHub surfaces as
``PushOutcome.CONFLICT`` instead of being overwritten.
"""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from botforge.errors import (
    AuthenticationError,
    ConflictError,
    MissingCredentialError,
    NotFoundError,
    UpstreamUnavailableError,
    ValidationError,
)

from .models import (
    PushErrorKind,
    PushOutcome,
    PushResult,
    parse_timestamp,
    split_repository_identity,
)

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.github.com"
DEFAULT_COMMIT_MESSAGE = "Update Discord bot code"


class _FileConflict(Exception):
    """Remote file changed between read and write."""


@dataclass
class GitHubContentsClient:
    """Create or update single files through the GitHub REST contents API.

    Also serves plain REST calls (webhook configuration) through
    ``rest_request``. Tokens are passed per call and never stored on the
    client.
    """

    api_base_url: str = DEFAULT_API_BASE_URL
    read_timeout: float = 10.0
    write_timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    committer_name: str = "BotForge Studio"
    committer_email: str = "bot@botforge.dev"

    def __post_init__(self) -> None:
        """Initialize HTTP session."""
        self.api_base_url = self.api_base_url.rstrip("/")
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "BotForge-Studio",
            }
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_file_sha(
        self,
        repository_identity: str,
        path: str,
        auth_token: str,
        *,
        branch: Optional[str] = None,
    ) -> Optional[str]:
        """Return the blob SHA of ``path``, or None if the file does not exist.

        Raises:
            AuthenticationError: Token rejected
            UpstreamUnavailableError: Timeout, connection error or 5xx after retries
            ValidationError: Path points at a directory
        """
        url = self._contents_url(repository_identity, path)
        params = {"ref": branch} if branch else None
        response = self._request("GET", url, auth_token, params=params, timeout=self.read_timeout)

        if response.status_code == 404:
            return None

        data = response.json()
        if isinstance(data, list) or data.get("type") not in (None, "file"):
            raise ValidationError(f"{path} in {repository_identity} is not a file")
        return data.get("sha")

    def push_file(
        self,
        repository_identity: str,
        path: str,
        content: str,
        message: Optional[str],
        auth_token: Optional[str],
        *,
        expected_sha: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> PushResult:
        """Create or update ``path`` conditioned on its current SHA.

        Args:
            repository_identity: Repository full name (owner/name)
            path: File path inside the repository
            content: New file content (text)
            message: Commit message (default: "Update Discord bot code")
            auth_token: GitHub token with contents write access
            expected_sha: SHA the caller last saw; a different remote SHA
                yields CONFLICT without writing
            branch: Target branch (default: repository default branch)

        Returns:
            PushResult with outcome created, updated, conflict or error

        Raises:
            ValidationError: Malformed repository identity or empty path
        """
        split_repository_identity(repository_identity)
        path = self._normalize_path(path)

        def _error(kind: PushErrorKind, retryable: bool, detail: str) -> PushResult:
            logger.warning(
                f"Push to {repository_identity}:{path} failed ({kind.value})",
                extra={"repository": repository_identity, "path": path, "error_kind": kind.value},
            )
            return PushResult(
                outcome=PushOutcome.ERROR,
                repository_identity=repository_identity,
                path=path,
                error_kind=kind,
                retryable=retryable,
                message=detail,
            )

        if not auth_token:
            return _error(PushErrorKind.UNAUTHORIZED, False, "Missing authentication")

        try:
            current_sha = self.get_file_sha(repository_identity, path, auth_token, branch=branch)
        except AuthenticationError as exc:
            return _error(PushErrorKind.UNAUTHORIZED, False, exc.message)
        except UpstreamUnavailableError as exc:
            return _error(PushErrorKind.TRANSIENT, True, exc.message)
        except NotFoundError as exc:
            return _error(PushErrorKind.NOT_FOUND, False, exc.message)
        except ValidationError as exc:
            return _error(PushErrorKind.REJECTED, False, exc.message)

        if expected_sha is not None and expected_sha != current_sha:
            logger.info(
                f"Remote {repository_identity}:{path} moved past the expected version",
                extra={"repository": repository_identity, "path": path},
            )
            return PushResult(
                outcome=PushOutcome.CONFLICT,
                repository_identity=repository_identity,
                path=path,
                previous_sha=current_sha,
                message="Remote file changed since it was read",
            )

        body: Dict[str, Any] = {
            "message": message or DEFAULT_COMMIT_MESSAGE,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "committer": {"name": self.committer_name, "email": self.committer_email},
        }
        if current_sha:
            body["sha"] = current_sha
        if branch:
            body["branch"] = branch

        try:
            response = self._request(
                "PUT",
                self._contents_url(repository_identity, path),
                auth_token,
                json_body=body,
                timeout=self.write_timeout,
                retry=False,
            )
        except _FileConflict:
            return PushResult(
                outcome=PushOutcome.CONFLICT,
                repository_identity=repository_identity,
                path=path,
                previous_sha=current_sha,
                message="Remote file changed between read and write",
            )
        except AuthenticationError as exc:
            return _error(PushErrorKind.UNAUTHORIZED, False, exc.message)
        except UpstreamUnavailableError as exc:
            return _error(PushErrorKind.TRANSIENT, True, exc.message)
        except NotFoundError as exc:
            return _error(PushErrorKind.NOT_FOUND, False, exc.message)
        except ValidationError as exc:
            return _error(PushErrorKind.REJECTED, False, exc.message)

        data = response.json()
        commit = data.get("commit") or {}
        outcome = PushOutcome.CREATED if response.status_code == 201 else PushOutcome.UPDATED
        logger.info(
            f"Pushed {path} to {repository_identity} ({outcome.value})",
            extra={"repository": repository_identity, "path": path, "outcome": outcome.value},
        )
        return PushResult(
            outcome=outcome,
            repository_identity=repository_identity,
            path=path,
            commit_sha=commit.get("sha"),
            content_sha=(data.get("content") or {}).get("sha"),
            previous_sha=current_sha,
            committed_at=parse_timestamp((commit.get("committer") or {}).get("date")),
        )

    def rest_request(
        self,
        method: str,
        endpoint: str,
        auth_token: Optional[str],
        *,
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make an authenticated REST call and return the decoded JSON body.

        Only GET is retried. An empty body (204) decodes to None.

        Raises:
            MissingCredentialError: No token supplied
            AuthenticationError: Token rejected or lacking permission
            NotFoundError: Resource missing or not visible to the token
            ConflictError: 409 from GitHub
            UpstreamUnavailableError: Timeout, connection error, rate limit or 5xx
            ValidationError: Other 4xx
        """
        method = method.upper()
        url = f"{self.api_base_url}/{endpoint.lstrip('/')}"
        timeout = self.read_timeout if method == "GET" else self.write_timeout
        try:
            response = self._request(
                method,
                url,
                auth_token or "",
                json_body=data,
                timeout=timeout,
                retry=method == "GET",
            )
        except _FileConflict as exc:
            raise ConflictError(f"GitHub reported a conflict for {endpoint}") from exc

        if response.status_code == 404:
            raise NotFoundError("Repository not found or access denied.")
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_path(path: str) -> str:
        cleaned = (path or "").strip().lstrip("/")
        if not cleaned or any(part in ("", ".", "..") for part in cleaned.split("/")):
            raise ValidationError(f"Invalid file path: {path!r}")
        return cleaned

    def _contents_url(self, repository_identity: str, path: str) -> str:
        owner, repo = split_repository_identity(repository_identity)
        return f"{self.api_base_url}/repos/{owner}/{repo}/contents/{quote(path, safe='/')}"

    def _request(
        self,
        method: str,
        url: str,
        auth_token: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        timeout: float,
        retry: bool = True,
    ) -> requests.Response:
        """Make an authenticated request, retrying reads on transient failures.

        A 404 is returned to the caller for GET (file absent) and raised as
        NotFoundError for writes.

        Raises:
            MissingCredentialError: No token supplied
            AuthenticationError: 401, or 403 that is not rate limiting
            UpstreamUnavailableError: Timeout, connection error, rate limit or 5xx
            NotFoundError: 404 on a write
            ValidationError: Other 4xx
            _FileConflict: 409, or 422 about the SHA
        """
        if not auth_token:
            raise MissingCredentialError()

        attempts = self.max_retries if retry else 1
        headers = {"Authorization": f"Bearer {auth_token}"}
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                response = self.session.request(
                    method=method,
                    url=url,
                    params=params,
                    json=json_body,
                    headers=headers,
                    timeout=timeout,
                )
            except (requests.Timeout, requests.ConnectionError) as e:
                last_error = e
                if attempt < attempts - 1:
                    time.sleep(self.retry_delay * (2**attempt))
                    continue
                raise UpstreamUnavailableError(f"GitHub request failed: {e}") from e

            status = response.status_code

            if status == 401:
                raise AuthenticationError("GitHub rejected the token. It may be invalid or expired.")
            if status == 403:
                if response.headers.get("X-RateLimit-Remaining") == "0":
                    reset_time = int(response.headers.get("X-RateLimit-Reset", "0") or 0)
                    wait_time = max(0, reset_time - time.time())
                    raise UpstreamUnavailableError(
                        f"Rate limit exceeded. Reset in {wait_time:.0f} seconds."
                    )
                raise AuthenticationError("Token lacks permission for this repository.")
            if status == 404:
                if method == "GET":
                    return response
                raise NotFoundError("Repository not found or access denied.")
            if status == 409:
                raise _FileConflict()
            if status == 422:
                if "sha" in response.text.lower():
                    raise _FileConflict()
                raise ValidationError(f"GitHub rejected the request: {response.text[:200]}")
            if status >= 500:
                last_error = RuntimeError(f"GitHub API error: {status}")
                if attempt < attempts - 1:
                    time.sleep(self.retry_delay * (2**attempt))
                    continue
                raise UpstreamUnavailableError(f"GitHub API error: {status}")
            if status >= 400:
                raise ValidationError(f"GitHub rejected the request: {status}")
            return response

        raise UpstreamUnavailableError(f"Request failed after {attempts} attempts: {last_error}")


__all__ = ["DEFAULT_API_BASE_URL", "DEFAULT_COMMIT_MESSAGE", "GitHubContentsClient"]

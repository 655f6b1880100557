"""
TrueNAS REST client — issues the dataset unlock call and classifies the result.

    POST /api/v2.0/pool/dataset/unlock     start the unlock (returns a job id)
    GET  /api/v2.0/core/get_jobs?id=<job>  poll the job until it finishes

Every outcome is returned as an UnlockOutcome; the client never raises for
HTTP or network failures and never retries. Retrying is the caller's call.

Usage:
    with TrueNASClient("truenas.local", credential) as client:
        outcome = client.unlock(UnlockRequest("tank/media", secret))
"""

from __future__ import annotations

import logging
import re
import string
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel, ValidationError

from naslock import __version__
from naslock.credentials import (
    ApiKey,
    KeyMaterial,
    NasCredential,
    Passphrase,
    UnlockSecret,
    UsernamePassword,
)
from naslock.errors import ConfigError

logger = logging.getLogger(__name__)

UNLOCK_PATH = "/api/v2.0/pool/dataset/unlock"
JOBS_PATH = "/api/v2.0/core/get_jobs"

EXCERPT_CHARS = 200

_NOT_LOCKED = re.compile(r"not locked|already unlocked", re.IGNORECASE)
_BAD_SECRET = re.compile(
    r"invalid (?:key|passphrase)|(?:incorrect|wrong|bad) (?:key|passphrase)", re.IGNORECASE
)


# ─── Outcome ─────────────────────────────────────────────────────────────


class OutcomeKind(StrEnum):
    UNLOCKED = "unlocked"
    ALREADY_UNLOCKED = "already_unlocked"
    FAILED = "failed"


class FailureReason(StrEnum):
    AUTHENTICATION_REJECTED = "authentication_rejected"
    SECRET_REJECTED = "secret_rejected"
    UNREACHABLE = "unreachable"
    UNEXPECTED_RESPONSE = "unexpected_response"


@dataclass(frozen=True)
class UnlockOutcome:
    """What happened to one unlock attempt."""

    kind: OutcomeKind
    reason: FailureReason | None = None
    detail: str = ""
    status: int | None = None
    excerpt: str = ""
    unlocked: tuple[str, ...] = ()
    job_id: int | None = None

    @property
    def ok(self) -> bool:
        return self.kind is not OutcomeKind.FAILED

    @property
    def retryable(self) -> bool:
        return self.reason is FailureReason.UNREACHABLE

    @classmethod
    def failed(
        cls, reason: FailureReason, detail: str, status: int | None = None, excerpt: str = ""
    ) -> UnlockOutcome:
        return cls(OutcomeKind.FAILED, reason=reason, detail=detail, status=status, excerpt=excerpt)


# ─── Request ─────────────────────────────────────────────────────────────


class UnlockDatasetBody(BaseModel):
    name: str
    passphrase: str | None = None
    key: str | None = None


class UnlockOptionsBody(BaseModel):
    recursive: bool
    force: bool
    toggle_attachments: bool
    key_file: bool = False
    datasets: list[UnlockDatasetBody]


class UnlockBody(BaseModel):
    id: str
    unlock_options: UnlockOptionsBody


@dataclass(frozen=True)
class UnlockOptions:
    recursive: bool = True
    force: bool = False
    toggle_attachments: bool = True


@dataclass(frozen=True)
class UnlockRequest:
    """A dataset unlock, ready to be rendered into the request body."""

    dataset: str
    secret: UnlockSecret = field(repr=False)
    options: UnlockOptions = UnlockOptions()

    def body(self) -> bytes:
        """Render the JSON body. Same request, same bytes."""
        if self.secret.value.wiped:
            raise ValueError("Unlock secret has already been wiped")
        if isinstance(self.secret, Passphrase):
            target = UnlockDatasetBody(name=self.dataset, passphrase=self.secret.value.text())
        elif isinstance(self.secret, KeyMaterial):
            target = UnlockDatasetBody(name=self.dataset, key=encode_key(self.secret.value.reveal()))
        else:
            raise TypeError(f"Unsupported unlock secret: {type(self.secret).__name__}")
        payload = UnlockBody(
            id=self.dataset,
            unlock_options=UnlockOptionsBody(
                recursive=self.options.recursive,
                force=self.options.force,
                toggle_attachments=self.options.toggle_attachments,
                datasets=[target],
            ),
        )
        return payload.model_dump_json(exclude_none=True).encode("utf-8")


def encode_key(material: bytes) -> str:
    """TrueNAS takes dataset keys as hex. Hex text passes through unchanged."""
    stripped = material.strip()
    try:
        text = stripped.decode("ascii")
    except UnicodeDecodeError:
        return material.hex()
    if text and all(c in string.hexdigits for c in text):
        return text
    return material.hex()


# ─── Response ────────────────────────────────────────────────────────────


class UnlockResult(BaseModel):
    unlocked: list[str] = []
    failed: dict[str, Any] = {}


class Job(BaseModel):
    id: int
    state: str
    result: Any = None
    error: str | None = None


def parse_base_url(host: str) -> str:
    """Normalise a configured host into ``scheme://host[:port]``."""
    trimmed = host.strip()
    if not trimmed.startswith(("http://", "https://")):
        trimmed = f"https://{trimmed}"
    parts = urlsplit(trimmed)
    if not parts.hostname:
        raise ConfigError(f"Invalid NAS host URL: {host!r}")
    base = f"{parts.scheme}://{parts.netloc}"
    try:
        parts.port  # non-numeric or out-of-range ports raise here
        httpx.URL(base)
    except (ValueError, httpx.InvalidURL) as e:
        raise ConfigError(f"Invalid NAS host URL: {host!r}", str(e)) from None
    return base


def _excerpt(text: str) -> str:
    text = text.strip()
    if len(text) > EXCERPT_CHARS:
        return text[:EXCERPT_CHARS] + "…"
    return text


def _as_result(data: Any) -> UnlockResult | None:
    if not isinstance(data, dict):
        return None
    try:
        return UnlockResult.model_validate(data)
    except ValidationError:
        return None


def _failure_text(reason: Any) -> str:
    if isinstance(reason, dict):
        return str(reason.get("error") or reason)
    return str(reason)


def classify_result(result: UnlockResult, job_id: int | None = None) -> UnlockOutcome:
    """Turn the unlocked/failed lists TrueNAS reports into an outcome."""
    if not result.failed:
        return UnlockOutcome(
            OutcomeKind.UNLOCKED,
            detail="unlocked datasets: " + ", ".join(result.unlocked)
            if result.unlocked
            else "unlock request accepted",
            unlocked=tuple(result.unlocked),
            job_id=job_id,
        )

    errors = {name: _failure_text(reason) for name, reason in result.failed.items()}
    summary = "; ".join(f"{name}: {err}" for name, err in errors.items())

    if all(_NOT_LOCKED.search(err) for err in errors.values()):
        return UnlockOutcome(
            OutcomeKind.ALREADY_UNLOCKED, detail=summary, unlocked=tuple(result.unlocked), job_id=job_id
        )
    if any(_BAD_SECRET.search(err) for err in errors.values()):
        return UnlockOutcome.failed(FailureReason.SECRET_REJECTED, f"Secret rejected: {summary}")
    return UnlockOutcome.failed(
        FailureReason.UNEXPECTED_RESPONSE, f"Unlock failed: {summary}", excerpt=_excerpt(summary)
    )


def classify_error_response(response: httpx.Response) -> UnlockOutcome:
    """Classify a non-2xx response."""
    status = response.status_code
    text = response.text
    if status in (401, 403):
        return UnlockOutcome.failed(
            FailureReason.AUTHENTICATION_REJECTED,
            f"TrueNAS rejected the credentials (HTTP {status})",
            status=status,
        )
    if 400 <= status < 500 and _NOT_LOCKED.search(text):
        return UnlockOutcome(OutcomeKind.ALREADY_UNLOCKED, detail=_excerpt(text), status=status)
    if 400 <= status < 500 and _BAD_SECRET.search(text):
        return UnlockOutcome.failed(
            FailureReason.SECRET_REJECTED,
            f"TrueNAS rejected the passphrase or key (HTTP {status})",
            status=status,
        )
    return UnlockOutcome.failed(
        FailureReason.UNEXPECTED_RESPONSE,
        f"TrueNAS API error (HTTP {status})",
        status=status,
        excerpt=_excerpt(text),
    )


# ─── Client ──────────────────────────────────────────────────────────────


class TrueNASClient:
    """Synchronous client for the TrueNAS v2.0 REST API."""

    def __init__(
        self,
        host: str,
        credential: NasCredential,
        *,
        timeout: float = 10.0,
        verify: bool = True,
        job_timeout: float = 120.0,
        poll_interval: float = 1.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = parse_base_url(host)
        self.job_timeout = job_timeout
        self.poll_interval = poll_interval
        self._sleep = sleep

        headers = {"Accept": "application/json", "User-Agent": f"naslock/{__version__}"}
        auth: httpx.Auth | None = None
        if isinstance(credential, UsernamePassword):
            auth = httpx.BasicAuth(credential.username.text(), credential.password.text())
        elif isinstance(credential, ApiKey):
            headers["Authorization"] = f"Bearer {credential.key.text()}"
        else:
            raise TypeError(f"Unsupported credential type: {type(credential).__name__}")

        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            auth=auth,
            timeout=timeout,
            verify=verify,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> TrueNASClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def prepare(self, request: UnlockRequest) -> httpx.Request:
        """Build the unlock request once; it can be sent repeatedly."""
        return self._client.build_request(
            "POST",
            UNLOCK_PATH,
            content=request.body(),
            headers={"Content-Type": "application/json"},
        )

    def send(self, prepared: httpx.Request) -> UnlockOutcome:
        """Send a prepared unlock request and classify the answer."""
        try:
            response = self._client.send(prepared)
            if not response.is_success:
                return classify_error_response(response)
            return self._classify_success(response)
        except httpx.TransportError as e:
            logger.warning("TrueNAS at %s unreachable: %s", self.base_url, e)
            return UnlockOutcome.failed(
                FailureReason.UNREACHABLE,
                f"TrueNAS at {self.base_url} is unreachable: {type(e).__name__}: {e}",
            )

    def unlock(self, request: UnlockRequest) -> UnlockOutcome:
        return self.send(self.prepare(request))

    def _classify_success(self, response: httpx.Response) -> UnlockOutcome:
        text = response.text.strip()
        if not text:
            return UnlockOutcome(OutcomeKind.UNLOCKED, detail="unlock request accepted")
        try:
            data = response.json()
        except ValueError:
            return UnlockOutcome(OutcomeKind.UNLOCKED, detail=_excerpt(text))

        if isinstance(data, int) and not isinstance(data, bool):
            return self.wait_for_job(data)
        result = _as_result(data)
        if result is not None:
            return classify_result(result)
        return UnlockOutcome(OutcomeKind.UNLOCKED, detail=_excerpt(text))

    def wait_for_job(self, job_id: int) -> UnlockOutcome:
        """Poll a TrueNAS job until it leaves the running states."""
        logger.info("Waiting for unlock job %d", job_id)
        deadline = time.monotonic() + self.job_timeout
        while True:
            try:
                response = self._client.get(JOBS_PATH, params={"id": job_id})
            except httpx.TransportError as e:
                # Unlock already accepted, so this must not be retryable
                logger.warning("Lost contact with TrueNAS while polling job %d: %s", job_id, e)
                return UnlockOutcome.failed(
                    FailureReason.UNEXPECTED_RESPONSE,
                    f"Lost contact with TrueNAS while waiting for unlock job {job_id}: "
                    f"{type(e).__name__}: {e}",
                )
            if not response.is_success:
                return classify_error_response(response)

            job = self._parse_job(response, job_id)
            if job is None:
                return UnlockOutcome.failed(
                    FailureReason.UNEXPECTED_RESPONSE,
                    f"TrueNAS did not report job {job_id}",
                    status=response.status_code,
                    excerpt=_excerpt(response.text),
                )

            if job.state == "SUCCESS":
                result = _as_result(job.result)
                if result is not None:
                    return classify_result(result, job_id)
                return UnlockOutcome(
                    OutcomeKind.UNLOCKED, detail=f"unlock complete (job id: {job_id})", job_id=job_id
                )

            if job.state in ("FAILED", "ABORTED"):
                error = job.error or job.state.lower()
                if _NOT_LOCKED.search(error):
                    return UnlockOutcome(OutcomeKind.ALREADY_UNLOCKED, detail=error, job_id=job_id)
                if _BAD_SECRET.search(error):
                    return UnlockOutcome.failed(
                        FailureReason.SECRET_REJECTED, f"Secret rejected: {error}"
                    )
                return UnlockOutcome.failed(
                    FailureReason.UNEXPECTED_RESPONSE,
                    f"Unlock job {job_id} {job.state.lower()}",
                    excerpt=_excerpt(error),
                )

            if time.monotonic() >= deadline:
                return UnlockOutcome.failed(
                    FailureReason.UNEXPECTED_RESPONSE,
                    f"Unlock job {job_id} did not finish within {self.job_timeout:g}s",
                )
            self._sleep(self.poll_interval)

    @staticmethod
    def _parse_job(response: httpx.Response, job_id: int) -> Job | None:
        try:
            data = response.json()
        except ValueError:
            return None
        jobs = data if isinstance(data, list) else [data]
        for raw in jobs:
            try:
                job = Job.model_validate(raw)
            except ValidationError:
                continue
            if job.id == job_id:
                return job
        return None

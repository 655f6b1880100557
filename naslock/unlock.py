"""
Unlock orchestration — one resolve → extract → unlock run per invocation.

    START → VAULT_OPENED → CREDENTIALS_RESOLVED → SECRET_RESOLVED → CALLING → DONE
                                                                           ↘ ABORTED

The master password is wiped as soon as the vault is open. Extracted secrets
are wiped as soon as the HTTP request is built, and again on every exit path
through the ExitStack. Only network failures are retried.
"""

from __future__ import annotations

import getpass
import logging
import time
from collections.abc import Callable
from contextlib import ExitStack
from enum import StrEnum
from pathlib import Path

from naslock.config import Config, NasConfig, VolumeConfig
from naslock.credentials import (
    NasCredential,
    UnlockSecret,
    extract_nas_credential,
    extract_unlock_secret,
)
from naslock.errors import (
    AuthenticationRejected,
    ConfigError,
    NaslockError,
    SecretRejected,
    UnexpectedResponse,
    Unreachable,
)
from naslock.truenas import (
    FailureReason,
    TrueNASClient,
    UnlockOptions,
    UnlockOutcome,
    UnlockRequest,
)
from naslock.vault import SecretBytes, VaultEntry, open_vault, parse_selector, resolve_entry

logger = logging.getLogger(__name__)

PasswordPrompt = Callable[[], SecretBytes]
VaultOpener = Callable[[Path, SecretBytes, Path | None], list[VaultEntry]]
ClientFactory = Callable[[NasConfig, NasCredential], TrueNASClient]


class Stage(StrEnum):
    START = "start"
    VAULT_OPENED = "vault_opened"
    CREDENTIALS_RESOLVED = "credentials_resolved"
    SECRET_RESOLVED = "secret_resolved"
    CALLING = "calling"
    DONE = "done"
    ABORTED = "aborted"


def prompt_master_password() -> SecretBytes:
    return SecretBytes.from_text(getpass.getpass("KeePass password: "))


def make_client(nas: NasConfig, credential: NasCredential) -> TrueNASClient:
    return TrueNASClient(
        nas.host,
        credential,
        timeout=nas.timeout,
        verify=not nas.skip_tls_verify,
        job_timeout=nas.job_timeout,
    )


class UnlockOrchestrator:
    """Runs a single unlock for one configured volume."""

    def __init__(
        self,
        config: Config,
        volume: VolumeConfig,
        *,
        prompt: PasswordPrompt = prompt_master_password,
        vault_opener: VaultOpener = open_vault,
        client_factory: ClientFactory = make_client,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.volume = volume
        self.nas = config.nas_for(volume)
        self.stage = Stage.START
        self.attempts = 0
        self._prompt = prompt
        self._vault_opener = vault_opener
        self._client_factory = client_factory
        self._sleep = sleep

    def run(self) -> UnlockOutcome:
        """Unlock the volume's dataset.

        Returns the successful outcome (Unlocked or AlreadyUnlocked).

        Raises:
            NaslockError: any failure; ``stage`` is left at ABORTED.
        """
        try:
            outcome = self._run()
        except BaseException:
            self.stage = Stage.ABORTED
            raise
        self.stage = Stage.DONE
        return outcome

    def _run(self) -> UnlockOutcome:
        with ExitStack() as cleanup:
            entries = self._open_vault()
            self.stage = Stage.VAULT_OPENED

            credential = self._resolve_credential(entries)
            cleanup.callback(credential.wipe)
            self.stage = Stage.CREDENTIALS_RESOLVED

            secret = self._resolve_secret(entries)
            cleanup.callback(secret.wipe)
            self.stage = Stage.SECRET_RESOLVED

            request = UnlockRequest(
                dataset=self.volume.dataset,
                secret=secret,
                options=UnlockOptions(
                    recursive=self.volume.recursive,
                    force=self.volume.force,
                    toggle_attachments=self.volume.toggle_attachments,
                ),
            )
            client = cleanup.enter_context(self._client_factory(self.nas, credential))
            prepared = client.prepare(request)
            credential.wipe()
            secret.wipe()

            self.stage = Stage.CALLING
            outcome = self._call(client, prepared)

        if not outcome.ok:
            raise self._failure(outcome)
        logger.info("Volume %s: %s", self.volume.name, outcome.kind)
        return outcome

    def _open_vault(self) -> list[VaultEntry]:
        kp = self.config.keepass
        with self._prompt() as password:
            return self._vault_opener(kp.path, password, kp.key_file)

    def _resolve_credential(self, entries: list[VaultEntry]) -> NasCredential:
        selector = self.nas.auth_entry
        entry = resolve_entry(entries, parse_selector(selector))
        return extract_nas_credential(entry, self.nas.fields, self.nas.auth_method, label=selector)

    def _resolve_secret(self, entries: list[VaultEntry]) -> UnlockSecret:
        selector = self.volume.unlock_entry
        entry = resolve_entry(entries, parse_selector(selector))
        return extract_unlock_secret(
            entry, self.volume.fields, self.volume.unlock_mode, label=selector
        )

    def _call(self, client: TrueNASClient, prepared) -> UnlockOutcome:
        limit = self.nas.attempts
        for attempt in range(1, limit + 1):
            self.attempts = attempt
            outcome = client.send(prepared)
            if not outcome.retryable or attempt == limit:
                return outcome
            delay = self.nas.backoff * 2 ** (attempt - 1)
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.1fs", attempt, limit, outcome.detail, delay
            )
            self._sleep(delay)
        raise ConfigError(f"[nas.{self.nas.name}] attempts must be at least 1")

    def _failure(self, outcome: UnlockOutcome) -> NaslockError:
        if outcome.reason is FailureReason.AUTHENTICATION_REJECTED:
            return AuthenticationRejected(
                outcome.detail, f"Check the login stored in {self.nas.auth_entry!r}"
            )
        if outcome.reason is FailureReason.SECRET_REJECTED:
            return SecretRejected(
                outcome.detail, f"Check the secret stored in {self.volume.unlock_entry!r}"
            )
        if outcome.reason is FailureReason.UNREACHABLE:
            return Unreachable(outcome.detail, f"Gave up after {self.attempts} attempt(s)")
        return UnexpectedResponse(outcome.detail, outcome.status, outcome.excerpt)


def unlock_volume(config: Config, name: str, **kwargs) -> UnlockOutcome:
    """Unlock the volume configured as ``name`` (or pointing at dataset ``name``)."""
    volume = config.find_volume(name)
    return UnlockOrchestrator(config, volume, **kwargs).run()

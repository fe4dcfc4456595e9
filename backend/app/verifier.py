"""Verification backends.

A verifier returns either a verdict or a VerificationUnavailable marker. A
transport failure is never turned into a verdict, so callers can tell
"could not reach the verification service" apart from "the service said no".
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union

import requests

from .schemas import SessionTrace, VerificationVerdict
from .scoring import verify_trace
from .settings import VERIFICATION_SERVICE_URL, VERIFICATION_TIMEOUT_S, VERIFICATION_RETRIES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerdictReceived:
    verdict: VerificationVerdict


@dataclass(frozen=True)
class VerificationUnavailable:
    reason: str


VerificationOutcome = Union[VerdictReceived, VerificationUnavailable]


class LocalVerifier:
    """Scores traces in-process with the analyzer/detector/scorer pipeline."""

    def verify(self, trace: SessionTrace) -> VerificationOutcome:
        return VerdictReceived(verify_trace(trace))


class RemoteVerifier:
    """Delegates scoring to a verification service over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout: float = VERIFICATION_TIMEOUT_S,
        retries: int = VERIFICATION_RETRIES,
        http: Optional[requests.Session] = None,
    ):
        self.url = f"{base_url.rstrip('/')}/sessions/verify"
        self.timeout = timeout
        self.retries = max(0, retries)
        self.http = http or requests.Session()

    def verify(self, trace: SessionTrace) -> VerificationOutcome:
        body = trace.model_dump(mode="json")
        reason = "verification service unreachable"

        for attempt in range(1, self.retries + 2):
            try:
                response = self.http.post(self.url, json=body, timeout=self.timeout)
                if response.status_code >= 500:
                    reason = f"verification service returned HTTP {response.status_code}"
                    logger.warning("Attempt %d for %s: %s", attempt, trace.session_id, reason)
                    continue
                if response.status_code != 200:
                    return VerificationUnavailable(
                        f"verification service returned HTTP {response.status_code}"
                    )
                payload = response.json()
                # Accept both a bare verdict and an {"data": verdict} envelope
                if isinstance(payload, dict) and "data" in payload:
                    payload = payload["data"]
                return VerdictReceived(VerificationVerdict.model_validate(payload))
            except ValueError as exc:
                # Covers undecodable JSON and pydantic validation errors
                logger.warning("Invalid verdict payload for %s: %s", trace.session_id, exc)
                return VerificationUnavailable(f"invalid verification payload: {exc}")
            except requests.exceptions.RequestException as exc:
                reason = f"verification service unreachable: {exc}"
                logger.warning("Attempt %d for %s failed: %s", attempt, trace.session_id, exc)

        return VerificationUnavailable(reason)


def get_verifier():
    """Remote verifier when a service URL is configured, local otherwise."""
    if VERIFICATION_SERVICE_URL:
        return RemoteVerifier(VERIFICATION_SERVICE_URL)
    return LocalVerifier()

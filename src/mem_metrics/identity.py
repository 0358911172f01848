"""Host identity discovery: hostname and EC2 instance identity document."""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)

DEFAULT_METADATA_ENDPOINT = "http://169.254.169.254"
TOKEN_PATH = "/latest/api/token"
IDENTITY_PATH = "/latest/dynamic/instance-identity/document"
TOKEN_TTL_SECONDS = 60


@dataclass(frozen=True)
class InstanceIdentity:
    """The subset of the instance identity document the agent uses."""

    region: str
    instance_id: str
    instance_type: str


class IdentityError(Exception):
    """The instance identity could not be determined."""


class Ec2IdentityResolver:
    """Fetches the instance identity document from the EC2 metadata service.

    Uses an IMDSv2 session token. The HTTP session is injectable so tests
    can substitute a fake.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_METADATA_ENDPOINT,
        timeout: float = 2.0,
        session: requests.Session | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._session = session if session is not None else requests.Session()

    def _token(self) -> str:
        resp = self._session.put(
            self._endpoint + TOKEN_PATH,
            headers={"X-aws-ec2-metadata-token-ttl-seconds": str(TOKEN_TTL_SECONDS)},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        return resp.text

    def resolve(self) -> InstanceIdentity:
        try:
            token = self._token()
            resp = self._session.get(
                self._endpoint + IDENTITY_PATH,
                headers={"X-aws-ec2-metadata-token": token},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            doc = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise IdentityError(str(exc)) from exc

        try:
            identity = InstanceIdentity(
                region=doc["region"],
                instance_id=doc["instanceId"],
                instance_type=doc["instanceType"],
            )
        except (KeyError, TypeError) as exc:
            raise IdentityError(f"identity document missing field {exc}") from exc

        logger.info(
            "Resolved instance %s (%s) in %s",
            identity.instance_id,
            identity.instance_type,
            identity.region,
        )
        return identity


def get_hostname() -> str:
    """Return the local hostname; raises :class:`OSError` if it is empty."""
    hostname = socket.gethostname()
    if not hostname:
        raise OSError("empty hostname")
    return hostname

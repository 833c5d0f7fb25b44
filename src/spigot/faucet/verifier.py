"""Human verification for faucet claims."""

import asyncio
import logging
from abc import ABC, abstractmethod

import aiohttp
from pydantic import SecretStr

from spigot.errors import TransientError

logger = logging.getLogger(__name__)

RECAPTCHA_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


class HumanVerifier(ABC):
    """Abstract verifier for a client's challenge response."""

    @abstractmethod
    async def verify(self, response: str, remote_ip: str | None = None) -> bool:
        """Check a challenge response.

        Parameters
        ----------
        response : str
            Token produced by the client-side challenge.
        remote_ip : str | None
            Client IP address, if known.

        Returns
        -------
        bool
            True if the response proves a human solved the challenge.
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""


class RecaptchaVerifier(HumanVerifier):
    """Verifies reCAPTCHA responses against Google's siteverify API.

    Parameters
    ----------
    secret : SecretStr
        reCAPTCHA private key.
    timeout_seconds : float
        Total timeout of the verification request.
    verify_url : str
        Verification endpoint.
    """

    def __init__(
        self,
        secret: SecretStr,
        timeout_seconds: float = 10.0,
        verify_url: str = RECAPTCHA_VERIFY_URL,
    ):
        self._secret = secret
        self._verify_url = verify_url
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def verify(self, response: str, remote_ip: str | None = None) -> bool:
        if not response:
            return False

        form = {"secret": self._secret.get_secret_value(), "response": response}
        if remote_ip:
            form["remoteip"] = remote_ip

        try:
            async with self._get_session().post(self._verify_url, data=form) as resp:
                resp.raise_for_status()
                result = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TransientError(f"Verification service unavailable: {e!r}") from e

        if not result.get("success", False):
            logger.info(
                "Verification rejected",
                extra={"error_codes": result.get("error-codes", [])},
            )
            return False
        return True

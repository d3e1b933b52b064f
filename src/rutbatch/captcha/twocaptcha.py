"""2Captcha adapter for the two-endpoint solving protocol.

``in.php`` accepts a challenge and answers with a job id, ``res.php`` answers
polls for that job. Both reply with ``{"status": 0|1, "request": "..."}``
when called with ``json=1``.
"""

import asyncio
import base64
from typing import Any, Dict, Optional

import aiohttp

from ..config.logger import logger
from ..config.settings import SolverSettings
from ..errors import CaptchaTransportError
from .interfaces import Challenge, ChallengeMethod, ICaptchaService, ServiceReply


class TwoCaptchaService(ICaptchaService):
    """Solving service backed by the 2Captcha HTTP API."""

    def __init__(self, settings: SolverSettings, session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self.logger = logger.bind(solver="2captcha")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout)
            )
            self._owns_session = True
        return self._session

    def build_submit_form(self, challenge: Challenge) -> Dict[str, Any]:
        """Form fields for ``in.php``."""
        form: Dict[str, Any] = {"key": self.settings.api_key, "json": 1}
        if challenge.method is ChallengeMethod.IMAGE_BODY:
            payload = challenge.payload
            if isinstance(payload, str):
                payload = payload.encode()
            form["method"] = "base64"
            form["body"] = base64.b64encode(payload).decode("ascii")
        elif challenge.method is ChallengeMethod.SITE_KEY:
            form["method"] = "turnstile"
            form["sitekey"] = challenge.payload
            form["pageurl"] = challenge.page_url
        else:
            raise ValueError(f"Unsupported challenge method: {challenge.method}")
        return form

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> ServiceReply:
        url = f"{self.base_url}/{endpoint}"
        try:
            async with self._get_session().request(method, url, **kwargs) as resp:
                if resp.status != 200:
                    raise CaptchaTransportError(f"{endpoint} returned HTTP {resp.status}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise CaptchaTransportError(f"{endpoint} request failed: {e!r}") from e

        if not isinstance(data, dict) or "status" not in data:
            raise CaptchaTransportError(f"{endpoint} returned an unexpected body: {data!r}")
        return ServiceReply(status=int(data["status"]), request=str(data.get("request", "")))

    async def submit(self, challenge: Challenge) -> ServiceReply:
        self.logger.debug("submitting_challenge", method=challenge.method.value)
        return await self._request("POST", "in.php", data=self.build_submit_form(challenge))

    async def poll(self, job_id: str) -> ServiceReply:
        params = {"key": self.settings.api_key, "action": "get", "id": job_id, "json": 1}
        return await self._request("GET", "res.php", params=params)

    async def get_balance(self) -> float:
        """Account balance in USD.

        Raises:
            CaptchaTransportError: If the balance cannot be read.
        """
        params = {"key": self.settings.api_key, "action": "getbalance", "json": 1}
        reply = await self._request("GET", "res.php", params=params)
        if not reply.ok:
            raise CaptchaTransportError(f"balance query rejected: {reply.request}")
        try:
            balance = float(reply.request)
        except ValueError as e:
            raise CaptchaTransportError(f"balance is not a number: {reply.request!r}") from e
        self.logger.info("solver_balance", balance=balance)
        return balance

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

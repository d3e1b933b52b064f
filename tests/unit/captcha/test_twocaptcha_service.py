"""Tests for the 2Captcha service adapter."""

import asyncio
import base64
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from rutbatch.captcha import Challenge, ChallengeMethod, TwoCaptchaService
from rutbatch.config.settings import SolverSettings
from rutbatch.errors import CaptchaTransportError


def mock_response(payload=None, status=200, json_error=None):
    """aiohttp-style response usable as ``async with session.request(...)``."""
    response = MagicMock()
    response.status = status
    if json_error is not None:
        response.json = AsyncMock(side_effect=json_error)
    else:
        response.json = AsyncMock(return_value=payload)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    return context


@pytest.fixture
def http_session():
    session = MagicMock(spec=aiohttp.ClientSession)
    session.closed = False
    session.close = AsyncMock()
    return session


@pytest.fixture
def service(http_session):
    return TwoCaptchaService(SolverSettings(api_key="secret"), session=http_session)


class TestTwoCaptchaService:
    """Test suite for TwoCaptchaService."""

    def test_site_key_form(self, service):
        challenge = Challenge(ChallengeMethod.SITE_KEY, "0x4AAA", "https://muisca.example/consulta")

        form = service.build_submit_form(challenge)

        assert form == {
            "key": "secret",
            "json": 1,
            "method": "turnstile",
            "sitekey": "0x4AAA",
            "pageurl": "https://muisca.example/consulta",
        }

    def test_image_form_is_base64(self, service):
        challenge = Challenge(ChallengeMethod.IMAGE_BODY, b"\x89PNG-bytes")

        form = service.build_submit_form(challenge)

        assert form["method"] == "base64"
        assert base64.b64decode(form["body"]) == b"\x89PNG-bytes"
        assert form["json"] == 1

    @pytest.mark.asyncio
    async def test_submit_posts_to_in_php(self, service, http_session):
        http_session.request.return_value = mock_response({"status": 1, "request": "12345"})
        challenge = Challenge(ChallengeMethod.SITE_KEY, "0x4AAA", "https://page")

        reply = await service.submit(challenge)

        assert reply.ok
        assert reply.request == "12345"
        method, url = http_session.request.call_args.args
        assert method == "POST"
        assert url == "https://2captcha.com/in.php"
        assert http_session.request.call_args.kwargs["data"]["sitekey"] == "0x4AAA"

    @pytest.mark.asyncio
    async def test_poll_gets_res_php(self, service, http_session):
        http_session.request.return_value = mock_response({"status": 0, "request": "CAPCHA_NOT_READY"})

        reply = await service.poll("12345")

        assert not reply.ok
        assert reply.request == service.NOT_READY
        method, url = http_session.request.call_args.args
        assert method == "GET"
        assert url == "https://2captcha.com/res.php"
        assert http_session.request.call_args.kwargs["params"] == {
            "key": "secret",
            "action": "get",
            "id": "12345",
            "json": 1,
        }

    @pytest.mark.asyncio
    async def test_http_error_status_is_transport_error(self, service, http_session):
        http_session.request.return_value = mock_response(status=502)

        with pytest.raises(CaptchaTransportError):
            await service.poll("12345")

    @pytest.mark.asyncio
    async def test_client_error_is_transport_error(self, service, http_session):
        http_session.request.side_effect = aiohttp.ClientConnectionError("refused")

        with pytest.raises(CaptchaTransportError):
            await service.poll("12345")

    @pytest.mark.asyncio
    async def test_timeout_is_transport_error(self, service, http_session):
        http_session.request.return_value = mock_response(json_error=asyncio.TimeoutError())

        with pytest.raises(CaptchaTransportError):
            await service.poll("12345")

    @pytest.mark.asyncio
    async def test_unexpected_body_is_transport_error(self, service, http_session):
        http_session.request.return_value = mock_response(["not", "a", "dict"])

        with pytest.raises(CaptchaTransportError):
            await service.poll("12345")

    @pytest.mark.asyncio
    async def test_get_balance(self, service, http_session):
        http_session.request.return_value = mock_response({"status": 1, "request": "3.7521"})

        balance = await service.get_balance()

        assert balance == pytest.approx(3.7521)
        assert http_session.request.call_args.kwargs["params"]["action"] == "getbalance"

    @pytest.mark.asyncio
    async def test_get_balance_rejected(self, service, http_session):
        http_session.request.return_value = mock_response({"status": 0, "request": "ERROR_WRONG_USER_KEY"})

        with pytest.raises(CaptchaTransportError):
            await service.get_balance()

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self, service, http_session):
        await service.close()

        http_session.close.assert_not_called()

    def test_missing_api_key_is_rejected(self):
        from rutbatch.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            SolverSettings(api_key="")

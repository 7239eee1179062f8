"""
Tests for src.tools.linkedin_client.

HTTP is served by ``httpx.MockTransport``; no request leaves the process.
"""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.exceptions import (
    ConfigurationError,
    LinkedInAPIError,
    LinkedInRateLimitError,
    PlatformAuthError,
)
from src.tools.linkedin_client import LinkedInClient, post_url, required_scopes

UPLOAD_URL = "https://api.linkedin.com/mediaUpload/abc"
ASSET = "urn:li:digitalmediaAsset:C4E"


class FakeLinkedIn:
    """Minimal LinkedIn API double recording every request.

    *failures* maps a step (``register``, ``upload`` or ``ugc``) to HTTP
    statuses or exceptions served, in order, before the normal response.
    """

    def __init__(self, ugc_status=201, upload_status=201, register_status=200, failures=None):
        self.requests = []
        self.ugc_status = ugc_status
        self.upload_status = upload_status
        self.register_status = register_status
        self.failures = {step: list(items) for step, items in (failures or {}).items()}

    @staticmethod
    def _step(request):
        if request.url.path.endswith("/assets"):
            return "register"
        if str(request.url) == UPLOAD_URL:
            return "upload"
        if request.url.path.endswith("/ugcPosts"):
            return "ugc"
        return None

    def count(self, step):
        return sum(1 for r in self.requests if self._step(r) == step)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        pending = self.failures.get(self._step(request))
        if pending:
            failure = pending.pop(0)
            if isinstance(failure, Exception):
                raise failure
            return httpx.Response(failure, text="try later")
        if request.url.path.endswith("/assets"):
            return httpx.Response(
                self.register_status,
                json={
                    "value": {
                        "asset": ASSET,
                        "uploadMechanism": {
                            "com.linkedin.digitalmedia.uploading.MediaUploadHttpRequest": {
                                "uploadUrl": UPLOAD_URL
                            }
                        },
                    }
                },
            )
        if str(request.url) == UPLOAD_URL:
            return httpx.Response(self.upload_status)
        if request.url.path.endswith("/ugcPosts"):
            return httpx.Response(
                self.ugc_status,
                headers={"x-restli-id": "urn:li:share:123"},
                json={},
            )
        return httpx.Response(404)

    def patch(self):
        real_client = httpx.AsyncClient
        transport = httpx.MockTransport(self)
        return patch(
            "src.tools.linkedin_client.httpx.AsyncClient",
            lambda **kwargs: real_client(transport=transport, **kwargs),
        )


# =========================================================================
# Construction
# =========================================================================


class TestConstruction:
    def test_missing_ids_fails_before_any_http(self):
        api = FakeLinkedIn()
        with api.patch():
            with pytest.raises(
                ConfigurationError, match="Must provide at least one of personUrn or organizationId"
            ):
                LinkedInClient(access_token="token")
        assert api.requests == []

    def test_missing_token_raises(self):
        with pytest.raises(ConfigurationError, match="Missing LinkedIn access token"):
            LinkedInClient(person_urn="abc")

    def test_explicit_arguments_win_over_env(self, monkeypatch):
        monkeypatch.setenv("LINKEDIN_ACCESS_TOKEN", "env-token")
        monkeypatch.setenv("LINKEDIN_PERSON_URN", "env-person")
        client = LinkedInClient(access_token="arg-token", person_urn="urn:li:person:arg")
        assert client.access_token == "arg-token"
        assert client.person_urn == "arg"

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("LINKEDIN_ACCESS_TOKEN", "env-token")
        monkeypatch.setenv("LINKEDIN_ORGANIZATION_ID", "999")
        client = LinkedInClient()
        assert client.author_urn() == "urn:li:organization:999"

    def test_from_credentials(self):
        client = LinkedInClient.from_credentials(
            {"accessToken": "t", "personUrn": "p1", "organizationId": "o1"}
        )
        assert client.author_urn() == "urn:li:person:p1"
        assert client.author_urn(post_to_organization=True) == "urn:li:organization:o1"

    def test_organization_mode_requires_org_id(self):
        client = LinkedInClient(access_token="t", person_urn="p1")
        with pytest.raises(ConfigurationError, match="organization ID"):
            client.author_urn(post_to_organization=True)

    def test_scopes(self):
        assert "w_member_social" in required_scopes()
        assert "w_organization_social" in required_scopes(post_to_organization=True)
        assert "w_organization_social" not in required_scopes()

    def test_post_url(self):
        assert post_url("urn:li:share:1") == "https://www.linkedin.com/feed/update/urn:li:share:1/"


# =========================================================================
# Posting
# =========================================================================


class TestPosting:
    @pytest.mark.asyncio
    async def test_text_post(self):
        api = FakeLinkedIn()
        client = LinkedInClient(access_token="token", person_urn="p1")

        with api.patch():
            result = await client.create_text_post("Hello LinkedIn")

        assert result == {
            "urn": "urn:li:share:123",
            "url": "https://www.linkedin.com/feed/update/urn:li:share:123/",
        }
        request = api.requests[0]
        assert request.headers["Authorization"] == "Bearer token"
        body = json.loads(request.content)
        assert body["author"] == "urn:li:person:p1"
        share = body["specificContent"]["com.linkedin.ugc.ShareContent"]
        assert share["shareCommentary"]["text"] == "Hello LinkedIn"
        assert share["shareMediaCategory"] == "NONE"

    @pytest.mark.asyncio
    async def test_image_post_runs_three_steps(self, image_bytes):
        api = FakeLinkedIn()
        client = LinkedInClient(access_token="token", organization_id="42")

        with api.patch():
            result = await client.create_image_post("With image", image_bytes)

        assert [str(r.url) for r in api.requests][1] == UPLOAD_URL
        assert len(api.requests) == 3
        assert result["asset"] == ASSET
        assert result["urn"] == "urn:li:share:123"

        register = json.loads(api.requests[0].content)
        assert register["registerUploadRequest"]["owner"] == "urn:li:organization:42"
        assert api.requests[1].headers["Content-Type"] == "application/octet-stream"
        post = json.loads(api.requests[2].content)
        share = post["specificContent"]["com.linkedin.ugc.ShareContent"]
        assert share["shareMediaCategory"] == "IMAGE"
        assert share["media"][0]["media"] == ASSET

    @pytest.mark.asyncio
    async def test_failed_upload_aborts_before_post(self, image_bytes):
        api = FakeLinkedIn(upload_status=500)
        client = LinkedInClient(access_token="token", person_urn="p1")

        with api.patch():
            with pytest.raises(LinkedInAPIError):
                await client.create_image_post("With image", image_bytes)

        assert len(api.requests) == 2

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        api = FakeLinkedIn(ugc_status=429)
        client = LinkedInClient(access_token="token", person_urn="p1")

        with api.patch(), patch("src.utils.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(LinkedInRateLimitError):
                await client.create_text_post("Hello")

        assert api.count("ugc") == client.max_attempts

    @pytest.mark.asyncio
    async def test_unauthorized(self):
        api = FakeLinkedIn(ugc_status=401)
        client = LinkedInClient(access_token="token", person_urn="p1")

        with api.patch():
            with pytest.raises(PlatformAuthError):
                await client.create_text_post("Hello")


# =========================================================================
# Bounded retry
# =========================================================================


class TestRetry:
    @pytest.mark.asyncio
    async def test_transient_upload_failures_then_success(self, image_bytes):
        api = FakeLinkedIn(
            failures={"register": [429], "upload": [httpx.WriteTimeout("stalled")]}
        )
        client = LinkedInClient(access_token="token", person_urn="p1", retry_delay=0.5)

        with api.patch(), patch("src.utils.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await client.create_image_post("With image", image_bytes)

        assert result["urn"] == "urn:li:share:123"
        assert (api.count("register"), api.count("upload"), api.count("ugc")) == (2, 2, 1)
        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.5)

    @pytest.mark.asyncio
    async def test_create_is_not_resent_after_delivery(self, image_bytes):
        api = FakeLinkedIn(failures={"ugc": [httpx.ReadTimeout("no answer")]})
        client = LinkedInClient(access_token="token", person_urn="p1")

        with api.patch(), patch("src.utils.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(LinkedInAPIError):
                await client.create_image_post("With image", image_bytes)

        assert api.count("ugc") == 1

    @pytest.mark.asyncio
    async def test_create_resent_when_connection_failed(self):
        api = FakeLinkedIn(failures={"ugc": [httpx.ConnectError("refused"), 429]})
        client = LinkedInClient(access_token="token", person_urn="p1")

        with api.patch(), patch("src.utils.asyncio.sleep", new_callable=AsyncMock):
            result = await client.create_text_post("Hello")

        assert result["urn"] == "urn:li:share:123"
        assert api.count("ugc") == 3

    @pytest.mark.asyncio
    async def test_auth_error_is_not_retried(self, image_bytes):
        api = FakeLinkedIn(register_status=401)
        client = LinkedInClient(access_token="token", person_urn="p1")

        with api.patch(), patch("src.utils.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(PlatformAuthError):
                await client.create_image_post("With image", image_bytes)

        assert len(api.requests) == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_server_error_is_not_retried(self, image_bytes):
        api = FakeLinkedIn(upload_status=500)
        client = LinkedInClient(access_token="token", person_urn="p1")

        with api.patch(), patch("src.utils.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(LinkedInAPIError):
                await client.create_image_post("With image", image_bytes)

        assert api.count("upload") == 1
        sleep.assert_not_awaited()

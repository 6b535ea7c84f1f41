"""Tests for the TTS vendor client."""

from __future__ import annotations

import json
from typing import Callable
from urllib.parse import parse_qs

import httpx
import pytest

from radiance.config import Settings
from radiance.services.tts.converter import TTSVibesClient, extract_audio_payload


def make_client(
    handler: Callable[[httpx.Request], httpx.Response],
) -> TTSVibesClient:
    client = TTSVibesClient(Settings(tts_endpoint="https://tts.example.com/?/generate"))
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    async def _get_http_client() -> httpx.AsyncClient:
        return http_client

    client._get_http_client = _get_http_client  # type: ignore[method-assign]
    return client


@pytest.mark.asyncio
async def test_convert_posts_form_and_returns_audio():
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(
            200, json={"type": "success", "data": json.dumps([1, "meta", "QUJD"])}
        )

    audio = await make_client(handler).convert("Rest well.", "tt-en_us_002")

    assert audio == "QUJD"
    request = captured[0]
    assert request.method == "POST"
    assert str(request.url) == "https://tts.example.com/?/generate"
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    assert request.headers["origin"] == "https://ttsvibes.com"
    assert request.headers["referer"] == "https://ttsvibes.com/"
    assert "Mozilla" in request.headers["user-agent"]
    assert parse_qs(request.content.decode()) == {
        "selectedVoiceValue": ["tt-en_us_002"],
        "text": ["Rest well."],
    }


@pytest.mark.asyncio
async def test_convert_returns_none_on_error_status():
    client = make_client(lambda request: httpx.Response(503, text="busy"))
    assert await client.convert("Hello.", "voice") is None


@pytest.mark.asyncio
async def test_convert_returns_none_on_invalid_json():
    client = make_client(lambda request: httpx.Response(200, text="<html>"))
    assert await client.convert("Hello.", "voice") is None


@pytest.mark.asyncio
async def test_convert_returns_none_on_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    assert await make_client(handler).convert("Hello.", "voice") is None


class TestExtractAudioPayload:
    def test_accepts_direct_array(self):
        assert extract_audio_payload({"type": "success", "data": [0, 1, "AAA"]}) == "AAA"

    def test_accepts_json_encoded_array(self):
        envelope = {"type": "success", "data": '["a", "b", "BBB", "d"]'}
        assert extract_audio_payload(envelope) == "BBB"

    def test_rejects_non_success_type(self):
        assert extract_audio_payload({"type": "failure", "data": [0, 1, "AAA"]}) is None

    def test_rejects_short_array(self):
        assert extract_audio_payload({"type": "success", "data": [0, 1]}) is None

    def test_rejects_empty_or_non_string_audio(self):
        assert extract_audio_payload({"type": "success", "data": [0, 1, ""]}) is None
        assert extract_audio_payload({"type": "success", "data": [0, 1, 42]}) is None

    def test_rejects_unparseable_string_data(self):
        assert extract_audio_payload({"type": "success", "data": "not json"}) is None

    def test_rejects_missing_data_and_non_dict(self):
        assert extract_audio_payload({"type": "success"}) is None
        assert extract_audio_payload(["success"]) is None

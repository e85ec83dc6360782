"""
Tests for the Deepgram client, using httpx.MockTransport.
"""
import httpx
import pytest

from vidscribe.exceptions import RecognitionServiceError
from vidscribe.recognition import RecognitionClient, primary_transcript

URL = "https://api.deepgram.test/v1/listen"


def _client(handler, api_key="secret"):
    return RecognitionClient(api_key=api_key, url=URL, model="nova-2", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_posts_audio_with_formatting_options(two_speaker_result):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["request"] = request
        return httpx.Response(200, json=two_speaker_result)

    result = await _client(handler).transcribe(b"RIFFdata")

    request = seen["request"]
    assert request.method == "POST"
    assert request.headers["Authorization"] == "Token secret"
    assert request.headers["Content-Type"] == "audio/wav"
    assert request.content == b"RIFFdata"
    assert request.url.params["punctuate"] == "true"
    assert request.url.params["smart_format"] == "true"
    assert request.url.params["model"] == "nova-2"
    assert result == two_speaker_result


@pytest.mark.asyncio
async def test_missing_api_key():
    def handler(request):
        raise AssertionError("should not be called")

    with pytest.raises(RecognitionServiceError):
        await _client(handler, api_key=None).transcribe(b"x")


@pytest.mark.asyncio
async def test_http_error_status():
    def handler(request):
        return httpx.Response(401, json={"err_msg": "Invalid credentials."})

    with pytest.raises(RecognitionServiceError) as excinfo:
        await _client(handler).transcribe(b"x")
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RecognitionServiceError):
        await _client(handler).transcribe(b"x")


@pytest.mark.asyncio
async def test_invalid_json():
    def handler(request):
        return httpx.Response(200, content=b"<html>oops</html>")

    with pytest.raises(RecognitionServiceError):
        await _client(handler).transcribe(b"x")


def test_primary_transcript(two_speaker_result):
    assert primary_transcript(two_speaker_result) == "Hi there, how are you? I'm doing well."
    assert primary_transcript({}) == ""
    assert primary_transcript(None) == ""
    assert primary_transcript({"results": {"channels": [{"alternatives": []}]}}) == ""
    assert primary_transcript({"results": {"channels": [{"alternatives": [{"transcript": None}]}]}}) == ""

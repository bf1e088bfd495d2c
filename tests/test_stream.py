"""Tests for SSE re-framing of upstream events into chat completion chunks"""
import asyncio
import json

import httpx
import pytest

from conftest import parse_frames, sse_body
from stream import DONE_FRAME, StreamReframer, reframe_response

FINGERPRINT = "cf-openai-sensechat-proxy-123"
NOW = 1_700_000_000

HELLO_EVENTS = sse_body(
    'data: {"data":{"id":"cmpl-1","choices":[{"index":0,"role":"assistant","delta":"He","finish_reason":""}]},"status":{"code":0,"message":"ok"}}',
    'data: {"data":{"id":"cmpl-1","choices":[{"index":0,"role":"assistant","delta":"llo","finish_reason":"stop"}]},"status":{"code":0,"message":"ok"}}',
    "data: [DONE]",
)

def make_reframer(model="SenseChat-5"):
    return StreamReframer(model, FINGERPRINT, clock=lambda: NOW)

def run(reframer, chunks):
    frames = []
    for chunk in chunks:
        frames.extend(reframer.feed(chunk))
    reframer.finish()
    return frames

def test_translates_events_into_chunks():
    frames = run(make_reframer(), [HELLO_EVENTS])

    assert frames[-1] == DONE_FRAME
    first, second = [json.loads(frame.decode()[len("data: "):]) for frame in frames[:2]]
    assert first == {
        "id": "cmpl-1",
        "object": "chat.completion.chunk",
        "created": NOW,
        "model": "SenseChat-5",
        "system_fingerprint": FINGERPRINT,
        "choices": [{"index": 0, "delta": {"content": "He"}, "logprobs": None, "finish_reason": None}],
    }
    assert second["choices"] == [
        {"index": 0, "delta": {"content": "llo"}, "logprobs": None, "finish_reason": "stop"}
    ]

def test_output_independent_of_chunk_boundaries():
    whole = run(make_reframer(), [HELLO_EVENTS])
    byte_by_byte = run(make_reframer(), [HELLO_EVENTS[i:i + 1] for i in range(len(HELLO_EVENTS))])
    by_line = run(make_reframer(), [line + b"\n" for line in HELLO_EVENTS.split(b"\n")[:-1]])

    assert byte_by_byte == whole
    assert by_line == whole
    assert len(whole) == 3

def test_each_completed_event_is_one_frame():
    reframer = make_reframer()
    first_half = HELLO_EVENTS[:HELLO_EVENTS.index(b"\n\n") + 1]

    assert reframer.feed(first_half) == []
    frames = reframer.feed(b"\n")
    assert len(frames) == 1
    assert frames[0].startswith(b"data: {") and frames[0].endswith(b"\n\n")

def test_crlf_line_endings():
    crlf = HELLO_EVENTS.replace(b"\n", b"\r\n")
    assert run(make_reframer(), [crlf]) == run(make_reframer(), [HELLO_EVENTS])

def test_multibyte_text_split_across_chunks():
    body = sse_body('data: {"data":{"id":"x","choices":[{"index":0,"delta":"你好"}]}}')
    split_at = body.index("你".encode()) + 1
    frames = run(make_reframer(), [body[:split_at], body[split_at:]])

    payload = json.loads(frames[0].decode()[len("data: "):])
    assert payload["choices"][0]["delta"] == {"content": "你好"}

def test_empty_delta_is_empty_object():
    body = sse_body('data: {"data":{"id":"x","choices":[{"index":0,"delta":"","reasoning_content":"","finish_reason":"stop"}]}}')
    frames = run(make_reframer(), [body])

    assert b'"delta":{}' in frames[0]
    payload = json.loads(frames[0].decode()[len("data: "):])
    assert payload["choices"][0]["delta"] == {}

def test_reasoning_content_is_forwarded():
    body = sse_body('data: {"data":{"id":"x","choices":[{"index":1,"delta":"","reasoning_content":"thinking"}]}}')
    payload = json.loads(run(make_reframer(), [body])[0].decode()[len("data: "):])

    assert payload["choices"] == [
        {"index": 1, "delta": {"reasoning_content": "thinking"}, "logprobs": None, "finish_reason": None}
    ]

def test_missing_fields_use_defaults():
    body = sse_body('data: {"data":{"choices":[{}]}}', "data: {}")
    frames = run(make_reframer(model=""), [body])

    first = json.loads(frames[0].decode()[len("data: "):])
    assert first["id"] == ""
    assert first["model"] == ""
    assert first["choices"] == [{"index": 0, "delta": {}, "logprobs": None, "finish_reason": None}]
    assert json.loads(frames[1].decode()[len("data: "):])["choices"] == []

def test_done_is_verbatim_and_terminal():
    reframer = make_reframer()
    frames = reframer.feed(b"data:   [DONE]  \ndata: {\"data\":{\"id\":\"late\"}}\n\n")

    assert frames == [DONE_FRAME]
    assert reframer.done
    assert reframer.feed(sse_body('data: {"data":{"id":"after"}}')) == []

@pytest.mark.parametrize("payload", [
    "{not json",
    '{"data":{"choices":[{"delta":{"content":"object delta"}}]}}',
    '{"data":{"choices":[{"index":"first"}]}}',
    '{"data":{"id":"x","choices":[{"index":"1","delta":"a"}]}}',
    '{"data":{"id":"x","choices":[{"index":1.0,"delta":"a"}]}}',
    '{"data":{"id":7,"choices":[]}}',
    '{"data":{"choices":[]},"status":{"code":"0"}}',
    '"just a string"',
])
def test_undecodable_event_is_dropped(payload):
    body = sse_body(
        f"data: {payload}",
        'data: {"data":{"id":"ok","choices":[{"index":0,"delta":"fine"}]}}',
    )
    frames = run(make_reframer(), [body])

    assert len(frames) == 1
    assert json.loads(frames[0].decode()[len("data: "):])["id"] == "ok"

def test_non_data_lines_pass_through():
    body = sse_body(": keep-alive", "event: message\nretry: 3000")
    frames = run(make_reframer(), [body])
    assert frames == [b": keep-alive\n\n", b"event: message\n\nretry: 3000\n\n"]

def test_blank_events_produce_nothing():
    assert run(make_reframer(), [b"\n\n\n"]) == []

def test_incomplete_trailing_event_discarded():
    body = HELLO_EVENTS[:HELLO_EVENTS.index(b"\n\n")]
    assert run(make_reframer(), [body]) == []

def test_reframers_do_not_share_state():
    first, second = make_reframer("model-a"), make_reframer("model-b")
    event = sse_body('data: {"data":{"id":"x","choices":[]}}')

    first.feed(event[:10])
    frames_b = second.feed(event)
    frames_a = first.feed(event[10:])

    assert json.loads(frames_a[0].decode()[len("data: "):])["model"] == "model-a"
    assert json.loads(frames_b[0].decode()[len("data: "):])["model"] == "model-b"

def upstream_response(chunks, fail_with=None):
    async def body():
        for chunk in chunks:
            yield chunk
        if fail_with is not None:
            raise fail_with

    return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())

def collect(response, reframer, disconnect_check=None):
    async def drain():
        return [frame async for frame in reframe_response(response, reframer, disconnect_check)]
    return asyncio.run(drain())

def test_reframe_response_yields_frames_and_closes_upstream():
    response = upstream_response([HELLO_EVENTS[:7], HELLO_EVENTS[7:]])
    frames = collect(response, make_reframer())

    assert len(frames) == 3
    assert frames[-1] == DONE_FRAME
    assert response.is_closed

def test_reframe_response_stops_reading_after_done():
    trailing = sse_body('data: {"data":{"id":"after"}}')
    response = upstream_response([HELLO_EVENTS, trailing])
    frames = collect(response, make_reframer())

    assert frames[-1] == DONE_FRAME
    assert all(b"after" not in frame for frame in frames)

def test_reframe_response_stops_on_client_disconnect():
    async def disconnected():
        return True

    response = upstream_response([HELLO_EVENTS])
    assert collect(response, make_reframer(), disconnected) == []
    assert response.is_closed

def test_reframe_response_emits_error_frame_on_transport_failure():
    first_event = HELLO_EVENTS[:HELLO_EVENTS.index(b"\n\n") + 2]
    response = upstream_response([first_event], fail_with=httpx.ReadError("connection reset"))
    frames = collect(response, make_reframer())

    assert len(frames) == 2
    error = json.loads(parse_frames(frames[1].decode())[0])
    assert error["error"]["code"] == "UPSTREAM_STREAM_ERROR"
    assert "connection reset" in error["error"]["message"]
    assert response.is_closed

import json
import logging
import threading

import pytest
import requests

from fakes import BlockingResponse, FakeResponse, FakeSession, ndjson
from sapphire.ai.client import OllamaClient
from sapphire.ai.relay import StreamRelay
from sapphire.datamodel import ChatMessage, CompletionRequest, StreamState
from sapphire.errors import BackendError, BackendUnavailable, TransportInterrupted


def _relay(chunks=(), mode="generate", response=None, session=None):
    session = session or FakeSession([response or FakeResponse(chunks)])
    client = OllamaClient(base_url="http://ollama.test", session=session)
    if mode == "chat":
        request = CompletionRequest(model="gemma3", messages=[ChatMessage(role="user", content="hi")])
    else:
        request = CompletionRequest(model="gemma3", prompt="hi", system="be brief")
    return StreamRelay(client, request), session


def _collect(relay):
    calls = []
    outcome = relay.run(lambda delta, accumulated: calls.append((delta, accumulated)))
    return calls, outcome


def test_generate_stream_accumulates_in_order():
    relay, session = _relay(
        [ndjson({"response": "The "}, {"response": "quick "}), ndjson({"response": "fox"}, {"done": True})]
    )
    calls, outcome = _collect(relay)

    assert calls == [("The ", "The "), ("quick ", "The quick "), ("fox", "The quick fox")]
    assert outcome.status == StreamState.COMPLETED
    assert outcome.text == "The quick fox"
    assert outcome.fragments == 3
    assert relay.state == StreamState.COMPLETED

    call = session.calls[0]
    assert call["url"] == "http://ollama.test/api/generate"
    assert call["json"] == {"model": "gemma3", "prompt": "hi", "system": "be brief", "stream": True}
    assert call["stream"] is True


def test_chat_stream_example():
    body = b'{"message":{"content":"Hel"}}\n{"message":{"content":"lo"}}\n{"done":true}\n'
    relay, session = _relay([body], mode="chat")

    fragments = list(relay)

    assert [f.delta for f in fragments] == ["Hel", "lo"]
    assert [f.index for f in fragments] == [0, 1]
    assert relay.outcome.text == "Hello"
    assert session.calls[0]["url"].endswith("/api/chat")
    assert session.calls[0]["json"]["messages"] == [{"role": "user", "content": "hi"}]


BODY = (
    ndjson({"response": "héllo "}, {"response": "世界 "})
    + b"garbage that is not json\n"
    + ndjson({"model": "gemma3", "created_at": "2024-01-01"})
    + ndjson({"response": "\U0001f389"}, {"done": True, "eval_count": 3})
)


def _fragments_for(chunks):
    relay, _ = _relay(chunks)
    return [f.delta for f in relay], relay.outcome.text


@pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 64])
def test_chunk_boundaries_do_not_change_fragments(size):
    expected = _fragments_for([BODY])
    chunks = [BODY[i : i + size] for i in range(0, len(BODY), size)]
    assert _fragments_for(chunks) == expected
    assert expected == (["héllo ", "世界 ", "\U0001f389"], "héllo 世界 \U0001f389")


def test_every_two_way_split_matches_single_chunk():
    expected = _fragments_for([BODY])
    for cut in range(1, len(BODY)):
        assert _fragments_for([BODY[:cut], BODY[cut:]]) == expected


def test_accumulated_equals_concatenation_of_fragments():
    relay, _ = _relay([BODY])
    deltas = [f.delta for f in relay]
    assert relay.text == "".join(deltas)
    assert relay.outcome.text == "".join(deltas)


def test_malformed_and_contentless_lines_do_not_end_stream():
    relay, _ = _relay([b"{broken\n", ndjson({"done": False}), b"\n", ndjson({"response": "ok"})])
    calls, outcome = _collect(relay)
    assert calls == [("ok", "ok")]
    assert outcome.ok


def test_only_malformed_line_completes_empty():
    relay, _ = _relay([b"nope\n"])
    calls, outcome = _collect(relay)
    assert calls == []
    assert outcome.status == StreamState.COMPLETED
    assert outcome.text == ""


def test_error_line_is_logged_and_skipped(caplog):
    relay, _ = _relay([ndjson({"response": "a"}, {"error": "model crashed"}, {"response": "b"})])
    with caplog.at_level(logging.WARNING, logger="sapphire.ai.relay"):
        calls, outcome = _collect(relay)
    assert [d for d, _ in calls] == ["a", "b"]
    assert "model crashed" in caplog.text


def test_unterminated_final_line_is_discarded():
    relay, _ = _relay([ndjson({"response": "kept"}) + json.dumps({"response": "lost"}).encode()])
    calls, outcome = _collect(relay)
    assert calls == [("kept", "kept")]
    assert outcome.text == "kept"


def test_cancel_before_start_opens_nothing():
    relay, session = _relay([ndjson({"response": "never"})])

    assert relay.cancel() is True
    calls, outcome = _collect(relay)

    assert calls == []
    assert outcome.status == StreamState.CANCELLED
    assert outcome.text == ""
    assert outcome.fragments == 0
    assert session.calls == []


def test_cancel_twice_is_a_noop():
    relay, _ = _relay([ndjson({"response": "x"})])
    assert relay.cancel() is True
    first = relay.outcome
    assert relay.cancel() is False
    assert relay.outcome is first
    assert relay.token.cancel() is False


def test_cancel_after_completion_is_a_noop():
    relay, _ = _relay([ndjson({"response": "done"})])
    _collect(relay)
    assert relay.cancel() is False
    assert relay.outcome.status == StreamState.COMPLETED


def test_cancel_mid_stream_suppresses_further_fragments():
    response = FakeResponse([ndjson({"response": "one"}), ndjson({"response": "two"}), ndjson({"response": "three"})])
    relay, _ = _relay(response=response)
    seen = []

    def on_fragment(delta, accumulated):
        seen.append(delta)
        relay.cancel()

    outcome = relay.run(on_fragment)

    assert seen == ["one"]
    assert outcome.status == StreamState.CANCELLED
    assert outcome.text == ""
    assert outcome.fragments == 1
    assert response.closed


def test_cancel_from_another_thread_unblocks_read():
    response = BlockingResponse([ndjson({"response": "partial"})])
    relay, _ = _relay(response=response)
    seen = []

    for fragment in relay:
        seen.append(fragment.delta)
        threading.Timer(0.05, relay.cancel).start()

    assert seen == ["partial"]
    assert relay.state == StreamState.CANCELLED
    assert response.closed


def test_abandoned_iterator_counts_as_cancelled():
    response = FakeResponse([ndjson({"response": "a"}, {"response": "b"})])
    relay, _ = _relay(response=response)

    stream = iter(relay)
    assert next(stream).delta == "a"
    stream.close()

    assert relay.state == StreamState.CANCELLED
    assert response.closed


def test_backend_error_status_fails_without_fragments():
    relay, _ = _relay(response=FakeResponse(status_code=500, reason="Internal Server Error"))
    calls, outcome = _collect(relay)

    assert calls == []
    assert outcome.status == StreamState.FAILED
    assert "500" in outcome.error
    assert "Internal Server Error" in outcome.error


def test_backend_error_raises_when_iterating():
    relay, _ = _relay(response=FakeResponse(status_code=404, reason="Not Found"))
    with pytest.raises(BackendError) as exc_info:
        list(relay)
    assert exc_info.value.status_code == 404
    assert relay.state == StreamState.FAILED


def test_unreachable_backend():
    session = FakeSession(error=requests.exceptions.ConnectionError("refused"))
    relay, _ = _relay(session=session)
    with pytest.raises(BackendUnavailable):
        list(relay)
    assert relay.outcome.status == StreamState.FAILED


def test_transport_failure_keeps_emitted_fragments():
    response = FakeResponse(
        [ndjson({"response": "half"}), requests.exceptions.ChunkedEncodingError("connection reset")]
    )
    relay, _ = _relay(response=response)
    seen = []

    with pytest.raises(TransportInterrupted):
        for fragment in relay:
            seen.append(fragment.delta)

    assert seen == ["half"]
    assert relay.outcome.status == StreamState.FAILED
    assert relay.outcome.text == "half"
    assert response.closed


def test_relay_is_not_restartable():
    relay, _ = _relay([ndjson({"response": "x"})])
    list(relay)
    with pytest.raises(RuntimeError):
        list(relay)


def test_non_streaming_request_is_streamed_by_relay():
    session = FakeSession([FakeResponse([ndjson({"response": "x"})])])
    client = OllamaClient(base_url="http://ollama.test", session=session)
    relay = StreamRelay(client, CompletionRequest(model="m", prompt="p", stream=False))
    list(relay)
    assert session.calls[0]["json"]["stream"] is True


def test_cancel_while_waiting_for_first_chunk():
    response = BlockingResponse([])
    relay, _ = _relay(response=response)
    timer = threading.Timer(0.05, relay.cancel)
    timer.start()

    calls, outcome = _collect(relay)
    timer.join()

    assert calls == []
    assert outcome.status == StreamState.CANCELLED
    assert outcome.fragments == 0
    assert response.closed

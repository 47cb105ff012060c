import json

import pytest

from sapphire.ai.framing import LineFramer, extract_fragment, parse_line
from sapphire.errors import MalformedLine


def test_feed_holds_partial_line_until_newline():
    framer = LineFramer()
    assert framer.feed(b'{"response": "a"}\n{"resp') == ['{"response": "a"}']
    assert framer.pending == '{"resp'
    assert framer.feed(b'onse": "b"}\n') == ['{"response": "b"}']
    assert framer.pending == ""


def test_multibyte_character_split_across_chunks():
    data = json.dumps({"response": "café \U0001f600"}, ensure_ascii=False).encode("utf-8") + b"\n"
    framer = LineFramer()
    lines = []
    for i in range(len(data)):
        lines.extend(framer.feed(data[i : i + 1]))
    assert [json.loads(line)["response"] for line in lines] == ["café \U0001f600"]


def test_finish_discards_unterminated_tail():
    framer = LineFramer()
    assert framer.feed(b'{"response": "kept"}\n{"response": "lost"}') == ['{"response": "kept"}']
    assert framer.finish() == '{"response": "lost"}'
    assert framer.pending == ""


def test_parse_line_rejects_non_objects():
    assert parse_line("   ") is None
    assert parse_line('{"done": true}') == {"done": True}
    with pytest.raises(MalformedLine):
        parse_line("not json")
    with pytest.raises(MalformedLine):
        parse_line("[1, 2]")


def test_extract_fragment_is_mode_aware():
    assert extract_fragment({"response": "hi"}, "generate") == "hi"
    assert extract_fragment({"message": {"content": "hi"}}, "chat") == "hi"
    assert extract_fragment({"message": {"content": "hi"}}, "generate") is None
    assert extract_fragment({"response": "hi"}, "chat") is None
    assert extract_fragment({"done": True, "eval_count": 12}, "generate") is None
    assert extract_fragment({"response": ""}, "generate") is None
    assert extract_fragment({"message": "oops"}, "chat") is None
    assert extract_fragment({"response": 42}, "generate") is None

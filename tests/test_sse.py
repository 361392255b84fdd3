from y_chat.ai.sse import SSEEventReader, event_data


def test_events_split_across_chunks():
    reader = SSEEventReader()
    assert reader.feed(b'data: {"a"') == []
    assert reader.pending == 'data: {"a"'
    assert reader.feed(b': 1}\n\ndata: second') == ['data: {"a": 1}']
    assert reader.feed(b"\n\n") == ["data: second"]
    assert reader.pending == ""


def test_crlf_delimiters_are_normalized():
    reader = SSEEventReader()
    assert reader.feed(b"data: one\r\n\r\ndata: two\r") == ["data: one"]
    assert reader.feed(b"\n\r\n") == ["data: two"]


def test_multibyte_character_cut_by_chunk_boundary():
    encoded = "data: héllo\n\n".encode()
    cut = encoded.index(b"\xc3") + 1
    reader = SSEEventReader()
    assert reader.feed(encoded[:cut]) == []
    assert reader.feed(encoded[cut:]) == ["data: héllo"]


def test_flush_returns_trailing_event():
    reader = SSEEventReader()
    reader.feed(b"data: tail")
    assert reader.flush() == ["data: tail"]
    assert reader.flush() == []


def test_event_data_joins_data_lines_and_ignores_others():
    assert event_data(": keep-alive") is None
    assert event_data("event: message\ndata: first\ndata: second") == "first\nsecond"
    assert event_data("data: [DONE]") == "[DONE]"

from y_chat.ai.tool_parser import ToolCall, contains_tool_use, extract_tool_call, split_content

TOOL_BLOCK = """<use_mcp_tool>
<server_name>tavily</server_name>
<tool_name>search</tool_name>
<arguments>
{"q": "weather"}
</arguments>
</use_mcp_tool>"""


def test_plain_text_has_no_tool_use():
    text = "  Just a normal answer.\n"
    assert contains_tool_use(text) is False
    assert split_content(text) == ("Just a normal answer.", None)


def test_open_tag_without_close_is_not_a_tool_call():
    text = "Let me try <use_mcp_tool><server_name>x</server_name>"
    assert contains_tool_use(text) is False
    assert split_content(text) == (text.strip(), None)


def test_split_keeps_prose_around_block():
    text = f"Let me check. {TOOL_BLOCK} Back soon."
    assert contains_tool_use(text)
    prose, block = split_content(text)
    assert prose == "Let me check.  Back soon."
    assert block == TOOL_BLOCK


def test_split_uses_earliest_tag():
    resource = "<access_mcp_resource><server_name>docs</server_name></access_mcp_resource>"
    text = f"{resource}\n{TOOL_BLOCK}"
    prose, block = split_content(text)
    assert block == resource
    assert prose == TOOL_BLOCK


def test_resource_tag_is_recognized():
    assert contains_tool_use("<access_mcp_resource>uri</access_mcp_resource>")


def test_extract_well_formed_call():
    call = extract_tool_call(TOOL_BLOCK)
    assert call == ToolCall(server="tavily", tool="search", arguments={"q": "weather"})


def test_extract_nested_arguments():
    block = (
        "<use_mcp_tool><server_name> cal </server_name><tool_name>create</tool_name>"
        '<arguments>{"event": {"title": "Standup", "days": [1, 2]}}</arguments></use_mcp_tool>'
    )
    call = extract_tool_call(block)
    assert call is not None
    assert call.server == "cal"
    assert call.arguments == {"event": {"title": "Standup", "days": [1, 2]}}


def test_extract_replaces_raw_newlines_in_strings():
    block = '<server_name>s</server_name><tool_name>t</tool_name><arguments>{"text": "line one\nline two"}</arguments>'
    call = extract_tool_call(block)
    assert call is not None
    assert call.arguments == {"text": "line one line two"}


def test_extract_invalid_json_returns_none():
    block = TOOL_BLOCK.replace('{"q": "weather"}', '{"q": "weather",')
    assert extract_tool_call(block) is None


def test_extract_non_object_arguments_returns_none():
    block = TOOL_BLOCK.replace('{"q": "weather"}', '["weather"]')
    assert extract_tool_call(block) is None


def test_extract_missing_sub_tag_returns_none():
    block = TOOL_BLOCK.replace("<tool_name>search</tool_name>", "")
    assert extract_tool_call(block) is None


def test_prose_and_block_rejoin_to_original():
    samples = [
        f"Let me check.\n{TOOL_BLOCK}",
        f"{TOOL_BLOCK}\n\nDone.",
        f"Before:  {TOOL_BLOCK}  after it.",
        f"  {TOOL_BLOCK}  ",
    ]
    for text in samples:
        prose, block = split_content(text)
        start = text.index(block)
        before, after = text[:start], text[start + len(block):]
        assert before + block + after == text
        assert prose == (before + after).strip()
        rejoined = f"{before.strip()} {block} {after.strip()}"
        assert rejoined.split() == text.split()

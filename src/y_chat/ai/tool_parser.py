"""Detect and extract tool invocations written as tagged markup in model replies.

A tool call looks like::

    <use_mcp_tool>
    <server_name>weather</server_name>
    <tool_name>get_forecast</tool_name>
    <arguments>{"city": "Paris"}</arguments>
    </use_mcp_tool>

Parsing never raises: malformed markup yields ``None`` and the caller keeps the
reply as ordinary prose.
"""

from __future__ import annotations

import json
import re
from enum import StrEnum
from typing import Any, NamedTuple

from y_chat.log import get_logger

logger = get_logger(__name__)


class ToolTag(StrEnum):
    USE_MCP_TOOL = "use_mcp_tool"
    ACCESS_MCP_RESOURCE = "access_mcp_resource"

    @property
    def open(self) -> str:
        return f"<{self.value}>"

    @property
    def close(self) -> str:
        return f"</{self.value}>"


class ToolCall(NamedTuple):
    server: str
    tool: str
    arguments: dict[str, Any]


_OPEN_TAG = re.compile("<(" + "|".join(re.escape(t.value) for t in ToolTag) + ")>")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def _sub_tag(name: str) -> re.Pattern[str]:
    return re.compile(rf"<{name}>(.*?)</{name}>", re.DOTALL)


_SERVER_NAME = _sub_tag("server_name")
_TOOL_NAME = _sub_tag("tool_name")
_ARGUMENTS = _sub_tag("arguments")


def contains_tool_use(text: str) -> bool:
    """True when some recognized tag has both its open and close marker in ``text``."""
    for match in _OPEN_TAG.finditer(text):
        if ToolTag(match.group(1)).close in text:
            return True
    return False


def split_content(text: str) -> tuple[str, str | None]:
    """Split ``text`` into (prose, tool block) around the earliest recognized tag.

    The prose is the text before and after the block joined and trimmed; the
    block includes its own tags. Without a complete block the trimmed text is
    returned with ``None``.
    """
    match = _OPEN_TAG.search(text)
    if match is None:
        return text.strip(), None

    start = match.start()
    end_tag = ToolTag(match.group(1)).close
    end_index = text.find(end_tag, start)
    if end_index == -1:
        return text.strip(), None

    end = end_index + len(end_tag)
    block = text[start:end].strip()
    prose = (text[:start] + text[end:]).strip()
    return prose, block


def _clean_json(raw: str) -> str:
    # newlines become spaces, every other control character is dropped
    return _CONTROL_CHARS.sub(lambda m: " " if m.group(0) == "\n" else "", raw)


def extract_tool_call(block: str) -> ToolCall | None:
    """Extract server, tool and JSON-object arguments from a tool block."""
    server = _SERVER_NAME.search(block)
    tool = _TOOL_NAME.search(block)
    args = _ARGUMENTS.search(block)
    if server is None or tool is None or args is None:
        return None

    raw_args = args.group(1).strip()
    try:
        parsed = json.loads(_clean_json(raw_args))
    except json.JSONDecodeError as e:
        logger.warning("tool_arguments_invalid_json", error=str(e), arguments=raw_args[:200])
        return None

    if not isinstance(parsed, dict):
        logger.warning("tool_arguments_not_object", arguments=raw_args[:200])
        return None

    return ToolCall(server=server.group(1).strip(), tool=tool.group(1).strip(), arguments=parsed)

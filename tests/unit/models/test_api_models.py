from __future__ import annotations

import pytest

from pydantic import ValidationError

from models.agent_models import TurnOptions
from models.api_models import StreamOptions, StreamRequest
from models.tool_models import MCPServerConfig


class TestStreamOptions:
    def test_camel_case_fields(self) -> None:
        options = StreamOptions.model_validate({"autoToolCall": True, "mcpUrl": "http://mcp.test"})

        assert options.auto_tool_call is True
        assert options.mcp_url == "http://mcp.test"

    def test_enabled_tools_from_csv(self) -> None:
        options = StreamOptions.model_validate({"enabledTools": "internal:calculator, internal:get_weather,"})

        assert options.enabled_tools == ["internal:calculator", "internal:get_weather"]

    def test_enabled_tools_from_json_array(self) -> None:
        options = StreamOptions.model_validate({"enabledTools": '["internal:get_weather", "internal:calculator"]'})

        assert options.enabled_tools == ["internal:get_weather", "internal:calculator"]

    def test_enabled_tools_malformed_json_array(self) -> None:
        with pytest.raises(ValidationError):
            StreamOptions.model_validate({"enabledTools": '["internal:get_weather"'})

    def test_mcp_configs_from_json_string(self) -> None:
        options = StreamOptions.model_validate({"mcpConfigs": '[{"url": "http://a.test", "headers": {"X-Key": "1"}}]'})

        assert options.mcp_configs == [MCPServerConfig(url="http://a.test", headers={"X-Key": "1"})]

    def test_invalid_allow_tool(self) -> None:
        with pytest.raises(ValidationError):
            StreamOptions.model_validate({"allowTool": "maybe"})

    def test_to_turn_options(self) -> None:
        options = StreamOptions(provider="openai", model="gpt-4o-mini", auto_tool_call=True, enabled_tools=["a"])

        turn = options.to_turn_options()

        assert turn == TurnOptions(provider="openai", model="gpt-4o-mini", auto_tool_call=True, enabled_tools=["a"])


class TestStreamRequest:
    def test_content_is_not_a_resume(self) -> None:
        request = StreamRequest.model_validate({"threadId": "t", "content": "hi"})

        assert request.is_resume is False
        assert request.thread_id == "t"

    def test_explicit_null_value_is_a_resume(self) -> None:
        request = StreamRequest.model_validate({"threadId": "t", "value": None})

        assert request.is_resume is True


class TestTurnOptions:
    def test_mcp_url_is_prepended(self) -> None:
        options = TurnOptions(mcp_url="http://a.test", mcp_configs=[MCPServerConfig(url="http://b.test")])

        assert [server.url for server in options.mcp_servers()] == ["http://a.test", "http://b.test"]

    def test_mcp_url_already_configured(self) -> None:
        configured = MCPServerConfig(url="http://a.test", headers={"Authorization": "Bearer x"})
        options = TurnOptions(mcp_url="http://a.test", mcp_configs=[configured])

        assert options.mcp_servers() == [configured]

import pytest

from y_chat.app import YChatApp
from y_chat.config import AppConfig, StorageConfig, is_unset, load_config, with_defaults
from y_chat.core.models import BotConfig


def test_load_config_interpolates_env_and_data_dir(tmp_path, monkeypatch):
    monkeypatch.delenv("Y_CHAT_TEST_KEY", raising=False)
    (tmp_path / ".env").write_text("Y_CHAT_TEST_KEY=sk-free\n", encoding="utf-8")
    (tmp_path / "config.yaml").write_text(
        """
data_dir: /var/y
storage:
  db_path: ${data_dir}/chat.db
provider:
  free_api_key: ${Y_CHAT_TEST_KEY}
  request_timeout: 3
default_bots:
  - name: free
    model: some/model
default_mcp_servers:
  - name: tavily
    url: https://tavily.test/sse
    token: ${Y_CHAT_UNSET_VAR}
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path / "config.yaml", tmp_path / ".env")

    assert config.storage.db_path == "/var/y/chat.db"
    assert config.provider.free_api_key == "sk-free"
    assert config.provider.request_timeout == 3
    assert config.mcp.connect_timeout == 5
    assert config.default_bots[0].name == "free"
    assert config.default_mcp_servers[0].token == "${Y_CHAT_UNSET_VAR}"


def test_load_config_empty_file_uses_defaults(tmp_path):
    (tmp_path / "config.yaml").write_text("", encoding="utf-8")
    config = load_config(tmp_path / "config.yaml", tmp_path / "missing.env")
    assert config.provider.request_timeout == 10
    assert config.default_bots == []


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_with_defaults_stored_entries_win():
    stored = [BotConfig(name="a", model="stored")]
    defaults = [BotConfig(name="b", model="default-b"), BotConfig(name="a", model="default-a")]
    merged = with_defaults(stored, defaults)
    assert [(b.name, b.model) for b in merged] == [("a", "stored"), ("b", "default-b")]


@pytest.fixture
async def app(tmp_path):
    config = AppConfig(
        storage=StorageConfig(db_path=str(tmp_path / "app.db")),
        default_bot="free",
        default_bots=[BotConfig(name="free", model="free/model")],
    )
    config.provider.free_api_key = "sk-free"
    application = YChatApp(config)
    await application.start()
    yield application
    await application.stop()


@pytest.mark.asyncio
async def test_resolve_bot_applies_free_tier_fallback(app):
    bot = await app.resolve_bot()
    assert bot.name == "free"
    assert bot.api_key == "sk-free"
    assert bot.base_url == "https://openrouter.ai/api/v1"
    assert app.config.default_bots[0].api_key == ""


@pytest.mark.asyncio
async def test_resolve_bot_prefers_stored_config(app):
    await app.bot_repo.add(
        BotConfig(name="free", model="stored/model", base_url="https://own.test", api_key="sk-own")
    )
    bot = await app.resolve_bot("free")
    assert (bot.model, bot.api_key, bot.base_url) == ("stored/model", "sk-own", "https://own.test")
    assert await app.resolve_bot("unknown") is None


def test_is_unset():
    assert is_unset(None)
    assert is_unset("")
    assert is_unset("${Y_CHAT_MISSING_KEY}")
    assert not is_unset("sk-1")
    assert not is_unset("prefix-${X}")


@pytest.mark.asyncio
async def test_unresolved_key_placeholder_falls_back_to_free_tier(app):
    app.config.default_bots.append(
        BotConfig(
            name="claude",
            model="anthropic/claude-sonnet-4",
            base_url="https://openrouter.ai/api/v1",
            api_key="${Y_CHAT_MISSING_KEY}",
        )
    )
    bot = await app.resolve_bot("claude")
    assert bot.model == "anthropic/claude-sonnet-4"
    assert bot.api_key == "sk-free"

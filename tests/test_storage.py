import pytest

from y_chat.core.models import BotConfig, Chat, create_message
from y_chat.core.types import Role
from y_chat.storage.config_repo import AlreadyExistsError, NotFoundError


@pytest.mark.asyncio
async def test_get_or_create_does_not_persist(chat_repo):
    chat = await chat_repo.get_or_create_chat("new001")
    assert chat.id == "new001"
    assert chat.messages == []
    assert await chat_repo.get_chat("new001") is None


@pytest.mark.asyncio
async def test_save_assigns_id_and_round_trips_messages(chat_repo):
    chat = Chat(messages=[create_message(Role.USER, "hello")])
    before = chat.update_time

    saved = await chat_repo.save_chat(chat)

    assert len(saved.id) == 6
    assert saved.update_time >= before
    loaded = await chat_repo.get_chat(saved.id)
    assert loaded.messages[0].text == "hello"
    assert loaded.messages[0].id == chat.messages[0].id


@pytest.mark.asyncio
async def test_save_overwrites_whole_document(chat_repo):
    chat = await chat_repo.save_chat(Chat(id="c1", messages=[create_message(Role.USER, "one")]))
    chat.messages = [create_message(Role.USER, "two")]
    await chat_repo.save_chat(chat)

    loaded = await chat_repo.get_chat("c1")
    assert [m.text for m in loaded.messages] == ["two"]


@pytest.mark.asyncio
async def test_list_chats_search_and_paging(chat_repo):
    await chat_repo.save_chat(Chat(id="a", messages=[create_message(Role.USER, "paris weather today")]))
    await chat_repo.save_chat(Chat(id="b", messages=[create_message(Role.USER, "paris museums")]))
    await chat_repo.save_chat(Chat(id="c", messages=[create_message(Role.USER, "berlin weather")]))

    everything = await chat_repo.list_chats()
    assert everything.total == 3
    assert [c.id for c in everything.chats] == ["c", "b", "a"]

    both_terms = await chat_repo.list_chats("paris weather")
    assert [c.id for c in both_terms.chats] == ["a"]

    second_page = await chat_repo.list_chats(page=2, limit=2)
    assert second_page.total == 3
    assert [c.id for c in second_page.chats] == ["a"]


@pytest.mark.asyncio
async def test_delete_chat(chat_repo):
    await chat_repo.save_chat(Chat(id="gone"))
    assert await chat_repo.delete_chat("gone") is True
    assert await chat_repo.delete_chat("gone") is False


@pytest.mark.asyncio
async def test_named_repository_crud(bot_repo):
    await bot_repo.add(BotConfig(name="fast", model="openai/gpt-4o-mini"))
    with pytest.raises(AlreadyExistsError):
        await bot_repo.add(BotConfig(name="fast", model="other"))

    await bot_repo.update("fast", BotConfig(name="quick", model="openai/gpt-4o-mini", max_tokens=256))
    assert await bot_repo.get("fast") is None
    assert (await bot_repo.get("quick")).max_tokens == 256

    await bot_repo.upsert(BotConfig(name="quick", model="openai/gpt-4o"))
    await bot_repo.upsert(BotConfig(name="deep", model="deepseek/deepseek-r1"))
    assert [b.name for b in await bot_repo.list_all()] == ["quick", "deep"]
    assert (await bot_repo.get("quick")).model == "openai/gpt-4o"

    await bot_repo.delete("deep")
    with pytest.raises(NotFoundError):
        await bot_repo.delete("deep")
    with pytest.raises(NotFoundError):
        await bot_repo.update("deep", BotConfig(name="deep", model="x"))

"""
Tests for the inbound message pipeline.
"""

import pytest

from chathub.models import Message
from chathub.services.avito import AvitoAdapter
from chathub.services.channel import WebhookEvent
from chathub.services.pipeline import handle_inbound_message

VK = {"token": "t", "group_id": "1"}


def vk_event(message_id="m1", dialog_id="2000000001", text="Привет"):
    return WebhookEvent(kind="message", dialog_id=dialog_id, user_id="42", message_id=message_id, text=text)


class TestPipeline:
    """Test the dedup, routing and delivery path end to end."""

    @pytest.mark.asyncio
    async def test_message_is_answered(self, seed, test_session, make_provider, make_adapter, make_services):
        channel = seed(test_session, "vk", VK).channel
        provider = make_provider(reply="Здравствуйте!")
        adapter = make_adapter()

        result = await handle_inbound_message(vk_event(), channel, adapter, make_services(provider), test_session)

        assert result.status == "replied"
        assert result.reply.content == "Здравствуйте!"
        assert result.user_message.external_message_id == "m1"
        adapter.send.assert_awaited_once_with("2000000001", "Здравствуйте!")
        adapter.mark_read.assert_awaited_once_with("2000000001")

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_absorbed(self, seed, test_session, make_provider, make_adapter, make_services):
        channel = seed(test_session, "vk", VK).channel
        provider = make_provider()
        adapter = make_adapter()
        services = make_services(provider)

        first = await handle_inbound_message(vk_event(), channel, adapter, services, test_session)
        second = await handle_inbound_message(vk_event(), channel, adapter, services, test_session)

        assert first.status == "replied"
        assert second.status == "duplicate"
        provider.start_run.assert_awaited_once()
        adapter.send.assert_awaited_once()
        assert test_session.query(Message).filter(Message.sender_type == "user").count() == 1

    @pytest.mark.asyncio
    async def test_redelivery_after_cache_loss_is_not_answered_twice(self, seed, test_session, make_provider, make_adapter, make_services):
        channel = seed(test_session, "vk", VK).channel
        provider = make_provider()
        adapter = make_adapter()

        await handle_inbound_message(vk_event(), channel, adapter, make_services(provider), test_session)
        # a fresh services object has an empty dedup cache, as after a restart
        result = await handle_inbound_message(vk_event(), channel, adapter, make_services(provider), test_session)

        assert result.status == "already_answered"
        provider.start_run.assert_awaited_once()
        assert test_session.query(Message).filter(Message.sender_type == "user").count() == 1
        assert test_session.query(Message).filter(Message.sender_type == "assistant").count() == 1

    @pytest.mark.asyncio
    async def test_override_without_auto_reply_stores_message_only(self, seed, storage, test_session, make_provider, make_adapter, make_services):
        seeded = seed(test_session, "vk", VK)
        storage.upsert_dialog_override(seeded.channel.id, "2000000001", seeded.assistant.id, enabled=True, auto_reply=False)
        provider = make_provider()
        adapter = make_adapter()

        result = await handle_inbound_message(vk_event(), seeded.channel, adapter, make_services(provider), test_session)

        assert result.status == "suppressed"
        assert result.decision.assistant_id == seeded.assistant.id
        assert result.user_message.content == "Привет"
        provider.create_thread.assert_not_awaited()
        provider.start_run.assert_not_awaited()
        adapter.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disabled_override_routes_to_nobody(self, seed, storage, test_session, make_provider, make_adapter, make_services):
        seeded = seed(test_session, "vk", VK)
        storage.upsert_dialog_override(seeded.channel.id, "2000000001", seeded.assistant.id, enabled=False)
        provider = make_provider()

        result = await handle_inbound_message(vk_event(), seeded.channel, make_adapter(), make_services(provider), test_session)

        assert result.status == "suppressed"
        assert result.decision.assistant_id is None
        assert result.reason == "dialog_disabled"
        provider.start_run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_curated_response_is_delivered_without_provider(self, seed, storage, test_session, make_provider, make_adapter, make_services):
        seeded = seed(test_session, "avito", {"client_id": "c", "client_secret": "s", "profile_id": "1"})
        storage.create_curated_response(seeded.assistant.id, "цена?", "150 000 ₽")
        provider = make_provider()
        adapter = make_adapter()

        result = await handle_inbound_message(vk_event(text="Цена?"), seeded.channel, adapter, make_services(provider), test_session)

        assert result.status == "replied"
        assert result.reply.content == "150 000 ₽"
        adapter.send.assert_awaited_once_with("2000000001", "150 000 ₽")
        provider.create_thread.assert_not_awaited()
        provider.start_run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_inactive_channel_drops_event(self, seed, test_session, make_provider, make_adapter, make_services):
        channel = seed(test_session, "vk", VK, status="inactive").channel
        provider = make_provider()

        result = await handle_inbound_message(vk_event(), channel, make_adapter(), make_services(provider), test_session)

        assert result.status == "ignored"
        assert result.reason == "channel_inactive"
        assert test_session.query(Message).count() == 0

    @pytest.mark.asyncio
    async def test_ignored_event_does_nothing(self, seed, test_session, make_provider, make_adapter, make_services):
        channel = seed(test_session, "vk", VK).channel

        result = await handle_inbound_message(WebhookEvent.ignored("own_message"), channel, make_adapter(), make_services(make_provider()), test_session)

        assert result.status == "ignored"
        assert result.reason == "own_message"

    @pytest.mark.asyncio
    async def test_generation_failure_stores_no_reply(self, seed, test_session, make_provider, make_adapter, make_services):
        channel = seed(test_session, "vk", VK).channel
        provider = make_provider(statuses=["failed"])
        adapter = make_adapter()

        result = await handle_inbound_message(vk_event(), channel, adapter, make_services(provider), test_session)

        assert result.status == "failed"
        assert result.reason == "run_failed"
        adapter.send.assert_not_awaited()
        assert test_session.query(Message).filter(Message.sender_type == "assistant").count() == 0


class TestChannelAdapters:
    """Test the per-channel adapter kept on the services container."""

    AVITO = {"client_id": "avito-client", "client_secret": "avito-secret", "profile_id": "987654"}

    def test_adapter_is_reused_between_events(self, seed, test_session, make_provider, make_services):
        channel = seed(test_session, "avito", self.AVITO).channel
        services = make_services(make_provider())

        first = services.adapter_for(channel)

        assert isinstance(first, AvitoAdapter)
        assert services.adapter_for(channel) is first

    def test_adapter_rebuilt_when_settings_change(self, seed, test_session, make_provider, make_services):
        channel = seed(test_session, "avito", self.AVITO).channel
        services = make_services(make_provider())
        first = services.adapter_for(channel)

        channel.settings = {**self.AVITO, "client_secret": "rotated"}
        test_session.commit()
        second = services.adapter_for(channel)

        assert second is not first
        assert second.settings.client_secret == "rotated"
        assert services.adapter_for(channel) is second

    def test_adapters_are_per_channel(self, seed, test_session, make_provider, make_services):
        services = make_services(make_provider())
        one = seed(test_session, "avito", self.AVITO).channel
        two = seed(test_session, "avito", self.AVITO).channel

        assert services.adapter_for(one) is not services.adapter_for(two)

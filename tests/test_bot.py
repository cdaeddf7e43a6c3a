import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

from telegram.error import TelegramError

from helpers import ADDR_A, FakeFetcher, FakeSender, make_snapshot

from hyperwatch import bot
from hyperwatch.config import Config
from hyperwatch.models import Subscription
from hyperwatch.monitor import PositionMonitor

SUPER_ADMIN = "999"


def make_context(registry, args=(), config=None):
    sender = FakeSender()
    fetcher = FakeFetcher({ADDR_A: make_snapshot(ADDR_A, {"BTC": "1"})})
    monitor = PositionMonitor(registry, fetcher, sender.send_text)
    return SimpleNamespace(
        args=list(args),
        bot_data={"monitor": monitor, "sender": sender, "config": config or Config(telegram_token="tok")},
    )


def make_update(chat_id):
    return SimpleNamespace(
        effective_chat=SimpleNamespace(id=int(chat_id)),
        message=SimpleNamespace(reply_text=AsyncMock()),
    )


def reply_of(update) -> str:
    return update.message.reply_text.await_args.args[0]


def run_command(handler, update, context):
    async def go():
        await handler(update, context)
        monitor = context.bot_data["monitor"]
        await asyncio.gather(*monitor._background)

    asyncio.run(go())


class TestTelegramSender:
    def test_delivered(self):
        app = SimpleNamespace(bot=SimpleNamespace(send_message=AsyncMock()))
        assert asyncio.run(bot.TelegramSender(app).send_text("5", "hi"))
        app.bot.send_message.assert_awaited_once_with(chat_id="5", text="hi")

    def test_telegram_error_reported_as_false(self):
        app = SimpleNamespace(bot=SimpleNamespace(send_message=AsyncMock(side_effect=TelegramError("blocked"))))
        assert not asyncio.run(bot.TelegramSender(app).send_text("5", "hi"))

    def test_unexpected_error_reported_as_false(self):
        app = SimpleNamespace(bot=SimpleNamespace(send_message=AsyncMock(side_effect=RuntimeError("boom"))))
        assert not asyncio.run(bot.TelegramSender(app).send_text("5", "hi"))


def test_myid(registry):
    update = make_update("123")
    run_command(bot.cmd_myid, update, make_context(registry))
    assert reply_of(update) == "Your chat ID is: 123"


def test_help_in_single_tenant_mode(registry):
    config = Config(telegram_token="tok", monitor_address=ADDR_A, monitor_chat_id="1")
    update = make_update("1")
    run_command(bot.cmd_help, update, make_context(registry, config=config))
    assert "single account mode" in reply_of(update)


class TestAuthorization:
    def test_only_super_admin_authorizes(self, registry):
        update = make_update("5")
        run_command(bot.cmd_authorize, update, make_context(registry, ["6"]))
        assert "Only the super admin" in reply_of(update)
        assert not registry.is_authorized("6")

    def test_authorize_notifies_target(self, registry):
        update = make_update(SUPER_ADMIN)
        context = make_context(registry, ["6"])
        run_command(bot.cmd_authorize, update, context)

        assert registry.is_authorized("6")
        assert reply_of(update) == "Authorized chat: 6"
        assert len(context.bot_data["sender"].to("6")) == 1

    def test_authorize_usage(self, registry):
        update = make_update(SUPER_ADMIN)
        run_command(bot.cmd_authorize, update, make_context(registry))
        assert reply_of(update).startswith("Usage")

    def test_super_admin_cannot_be_deauthorized(self, registry):
        update = make_update(SUPER_ADMIN)
        run_command(bot.cmd_deauthorize, update, make_context(registry, [SUPER_ADMIN]))
        assert "cannot be deauthorized" in reply_of(update)
        assert registry.is_authorized(SUPER_ADMIN)

    def test_deauthorize(self, registry):
        registry.authorize("6")
        update = make_update(SUPER_ADMIN)
        run_command(bot.cmd_deauthorize, update, make_context(registry, ["6"]))
        assert not registry.is_authorized("6")


class TestSubscribe:
    def test_requires_authorization(self, registry):
        update = make_update("5")
        run_command(bot.cmd_subscribe, update, make_context(registry, [ADDR_A]))
        assert "not authorized" in reply_of(update)
        assert registry.snapshot() == []

    def test_rejects_bad_address(self, registry):
        update = make_update(SUPER_ADMIN)
        run_command(bot.cmd_subscribe, update, make_context(registry, ["0xnothex"]))
        assert reply_of(update) == "Invalid address format."
        assert registry.snapshot() == []

    def test_subscribe_with_name(self, registry):
        update = make_update(SUPER_ADMIN)
        context = make_context(registry, [ADDR_A.upper().replace("0X", "0x"), "Big", "Whale"])
        run_command(bot.cmd_subscribe, update, context)

        assert registry.subscriptions_for(SUPER_ADMIN) == [Subscription(SUPER_ADMIN, ADDR_A, "Big Whale")]
        assert reply_of(update) == "Subscribed to 0xabab...abab (Big Whale)"
        (initial,) = context.bot_data["sender"].to(SUPER_ADMIN)
        assert "initial positions - Big Whale" in initial

    def test_default_name(self, registry):
        update = make_update(SUPER_ADMIN)
        run_command(bot.cmd_subscribe, update, make_context(registry, [ADDR_A]))
        assert registry.subscriptions_for(SUPER_ADMIN)[0].name == "Unnamed account"

    def test_already_subscribed(self, registry):
        registry.add_subscription(Subscription(SUPER_ADMIN, ADDR_A, "Whale"))
        update = make_update(SUPER_ADMIN)
        run_command(bot.cmd_subscribe, update, make_context(registry, [ADDR_A]))
        assert "already subscribed" in reply_of(update)


class TestUnsubscribeAndList:
    def test_unsubscribe(self, registry):
        registry.add_subscription(Subscription("5", ADDR_A, "Whale"))
        update = make_update("5")
        run_command(bot.cmd_unsubscribe, update, make_context(registry, [ADDR_A]))
        assert reply_of(update) == "Unsubscribed from 0xabab...abab"
        assert registry.get_state(ADDR_A) is None

    def test_unsubscribe_not_subscribed(self, registry):
        update = make_update("5")
        run_command(bot.cmd_unsubscribe, update, make_context(registry, [ADDR_A]))
        assert "is not subscribed" in reply_of(update)

    def test_unsubscribe_usage(self, registry):
        update = make_update("5")
        run_command(bot.cmd_unsubscribe, update, make_context(registry))
        assert reply_of(update).startswith("Usage")

    def test_list(self, registry):
        registry.add_subscription(Subscription("5", ADDR_A, "Whale"))
        update = make_update("5")
        run_command(bot.cmd_list, update, make_context(registry))
        assert "0xabab...abab - Whale" in reply_of(update)

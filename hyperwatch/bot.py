import logging

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import Application, CommandHandler, ContextTypes

from hyperwatch.config import DEFAULT_MONITOR_NAME, Config
from hyperwatch.models import is_valid_address
from hyperwatch.monitor import PositionMonitor
from hyperwatch.render import (
    HELP_TEXT,
    SINGLE_TENANT_HELP_TEXT,
    render_subscription_list,
    shorten_address,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Outgoing messages
# ============================================================================

class TelegramSender:
    """Best-effort delivery: failures are logged and reported as False, never raised."""

    def __init__(self, app: Application):
        self.app = app

    async def send_text(self, recipient: str, text: str) -> bool:
        try:
            await self.app.bot.send_message(chat_id=recipient, text=text)
            return True
        except TelegramError as e:
            logger.error(f"Failed to send message to {recipient}: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error sending message to {recipient}: {e}", exc_info=True)
            return False


# ============================================================================
# Command handlers
# ============================================================================

def _chat_id(update: Update) -> str:
    return str(update.effective_chat.id)


def _monitor(context: ContextTypes.DEFAULT_TYPE) -> PositionMonitor:
    return context.bot_data["monitor"]


async def _notify(context: ContextTypes.DEFAULT_TYPE, recipient: str, text: str):
    sender: TelegramSender = context.bot_data["sender"]
    await sender.send_text(recipient, text)


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /start and /help."""
    config: Config = context.bot_data["config"]
    await update.message.reply_text(SINGLE_TENANT_HELP_TEXT if config.single_tenant else HELP_TEXT)


async def cmd_myid(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text(f"Your chat ID is: {_chat_id(update)}")


async def cmd_authorize(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /authorize <chat_id>. Super admin only."""
    registry = _monitor(context).registry
    chat_id = _chat_id(update)

    if not registry.is_super_admin(chat_id):
        await update.message.reply_text("Only the super admin can authorize chats.")
        return
    if not context.args:
        await update.message.reply_text("Usage: /authorize <chat_id>")
        return

    target = context.args[0]
    registry.authorize(target)
    logger.info(f"Authorized chat {target}")
    await _notify(context, target, "✅ You have been authorized by the super admin to subscribe to addresses.")
    await update.message.reply_text(f"Authorized chat: {target}")


async def cmd_deauthorize(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /deauthorize <chat_id>. Super admin only, and never the super admin itself."""
    registry = _monitor(context).registry
    chat_id = _chat_id(update)

    if not registry.is_super_admin(chat_id):
        await update.message.reply_text("Only the super admin can revoke authorization.")
        return
    if not context.args:
        await update.message.reply_text("Usage: /deauthorize <chat_id>")
        return

    target = context.args[0]
    if not registry.deauthorize(target):
        await update.message.reply_text("The super admin cannot be deauthorized!")
        return

    logger.info(f"Deauthorized chat {target}")
    await _notify(context, target, "Your authorization has been revoked by the super admin.")
    await update.message.reply_text(f"Revoked authorization for chat: {target}")


async def cmd_subscribe(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /subscribe <address> [name]."""
    monitor = _monitor(context)
    chat_id = _chat_id(update)

    if not monitor.registry.is_authorized(chat_id):
        await update.message.reply_text(
            "You are not authorized to subscribe. Ask the super admin to authorize your chat ID (see /myid)."
        )
        return
    if not context.args:
        await update.message.reply_text("Usage: /subscribe <address> [name]")
        return

    address = context.args[0]
    if not is_valid_address(address):
        await update.message.reply_text("Invalid address format.")
        return
    address = address.lower()
    name = " ".join(context.args[1:]).strip() or DEFAULT_MONITOR_NAME

    if not monitor.subscribe(chat_id, address, name):
        await update.message.reply_text(f"Address {shorten_address(address)} is already subscribed")
        return

    logger.info(f"Chat {chat_id} subscribed to {address} ({name})")
    await update.message.reply_text(f"Subscribed to {shorten_address(address)} ({name})")


async def cmd_unsubscribe(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /unsubscribe <address>."""
    monitor = _monitor(context)
    chat_id = _chat_id(update)

    if not context.args:
        await update.message.reply_text("Usage: /unsubscribe <address>")
        return

    address = context.args[0]
    if not is_valid_address(address):
        await update.message.reply_text("Invalid address format.")
        return
    address = address.lower()

    if not monitor.unsubscribe(chat_id, address):
        await update.message.reply_text(f"Address {shorten_address(address)} is not subscribed")
        return

    logger.info(f"Chat {chat_id} unsubscribed from {address}")
    await update.message.reply_text(f"Unsubscribed from {shorten_address(address)}")


async def cmd_list(update: Update, context: ContextTypes.DEFAULT_TYPE):
    subscriptions = _monitor(context).registry.subscriptions_for(_chat_id(update))
    await update.message.reply_text(render_subscription_list(subscriptions))


# ============================================================================
# Application
# ============================================================================

def build_application(config: Config) -> Application:
    """
    Create the Telegram application and register command handlers.

    The monitor is attached later with attach_monitor, once the sender exists.
    """
    app = Application.builder().token(config.telegram_token).build()
    app.bot_data["config"] = config
    app.bot_data["sender"] = TelegramSender(app)

    app.add_handler(CommandHandler("start", cmd_help))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("myid", cmd_myid))
    app.add_handler(CommandHandler("list", cmd_list))

    if not config.single_tenant:
        app.add_handler(CommandHandler("authorize", cmd_authorize))
        app.add_handler(CommandHandler("deauthorize", cmd_deauthorize))
        app.add_handler(CommandHandler("subscribe", cmd_subscribe))
        app.add_handler(CommandHandler("unsubscribe", cmd_unsubscribe))

    return app


def attach_monitor(app: Application, monitor: PositionMonitor):
    app.bot_data["monitor"] = monitor

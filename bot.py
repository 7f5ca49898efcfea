"""
Telegram command bot: /start, /help, /track, /list, /untrack, /stats.

Commands only parse arguments and render replies; every state change goes
through TrackingService. /track and /untrack consult a RateLimiter first.
"""

import html
import logging
from typing import Iterable, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes

from chains.registry import CHAINS, get_chain
from config import load_settings
from core.errors import WalletTrackerError
from core.registrar import StreamRegistrar
from core.store import SubscriptionStore
from core.tracking import ALREADY_TRACKING, NOT_TRACKING, STARTED, TrackingService
from formatters import format_help, format_stats, format_wallet_list
from links import short_address
from providers.moralis_streams import MoralisStreamsClient
from rate_limit import NoRateLimit, RateLimiter, SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

TRACK_USAGE = (
    "❌ <b>Invalid format!</b>\n\n"
    "Usage: <code>/track &lt;CHAIN&gt; &lt;ADDRESS&gt; [ALIAS]</code>\n\n"
    "Example:\n"
    "<code>/track ETH 0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb MyWallet</code>"
)
UNTRACK_USAGE = (
    "❌ <b>Invalid format!</b>\n\n"
    "Usage: <code>/untrack &lt;CHAIN&gt; &lt;ADDRESS&gt;</code>\n\n"
    "Example:\n"
    "<code>/untrack ETH 0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb</code>"
)
SLOW_DOWN = "⚠️ You're sending commands too quickly. Please wait a moment."


class WalletTrackerBot:
    def __init__(
        self,
        token: str,
        tracking: TrackingService,
        rate_limiter: Optional[RateLimiter] = None,
        supported_chains: Optional[Iterable[str]] = None,
    ):
        self.token = token
        self.tracking = tracking
        self.rate_limiter = rate_limiter or NoRateLimit()
        self.supported = list(supported_chains or CHAINS)
        self._application: Optional[Application] = None

    @property
    def application(self) -> Application:
        if self._application is None:
            self._application = self._create_application()
        return self._application

    def _create_application(self) -> Application:
        app = Application.builder().token(self.token).post_init(self._post_init).build()
        app.add_handler(CommandHandler("start", self._handle_start))
        app.add_handler(CommandHandler("help", self._handle_help))
        app.add_handler(CommandHandler("track", self._handle_track))
        app.add_handler(CommandHandler("list", self._handle_list))
        app.add_handler(CommandHandler("untrack", self._handle_untrack))
        app.add_handler(CommandHandler("stats", self._handle_stats))
        app.add_handler(CallbackQueryHandler(self._handle_callback, pattern="^(help|list)$"))
        return app

    async def _post_init(self, app: Application) -> None:
        await self.tracking.store.init()

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def _handle_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        await self.tracking.register_user(user.id, user.username)

        chains = "\n".join(f"{CHAINS[t].icon} {t} - {CHAINS[t].name}" for t in self.supported)
        text = (
            "👋 <b>Welcome to Wallet Tracker Bot!</b>\n\n"
            "Track crypto wallets across multiple blockchains and get instant "
            "notifications for every transaction.\n\n"
            f"<b>🔗 Supported Chains:</b>\n{chains}\n\n"
            "<b>Quick Start:</b>\n"
            "1️⃣ Use /track to start monitoring a wallet\n"
            "2️⃣ Receive real-time alerts for all transactions\n"
            "3️⃣ Use /list to see your tracked wallets\n\n"
            "Type /help for all commands."
        )
        keyboard = InlineKeyboardMarkup([
            [InlineKeyboardButton("📖 Help", callback_data="help")],
            [InlineKeyboardButton("📊 My Wallets", callback_data="list")],
        ])
        await update.message.reply_text(text, parse_mode=ParseMode.HTML, reply_markup=keyboard)

    async def _handle_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await update.message.reply_text(format_help(self.supported), parse_mode=ParseMode.HTML)

    async def _handle_track(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if not self.rate_limiter.allow(user.id):
            await update.message.reply_text(SLOW_DOWN)
            return

        args = context.args or []
        if len(args) < 2:
            await update.message.reply_text(TRACK_USAGE, parse_mode=ParseMode.HTML)
            return
        chain, address, alias = args[0], args[1], " ".join(args[2:]) or None

        progress = await update.message.reply_text("⏳ Setting up tracking...")
        try:
            outcome = await self.tracking.track(user.id, user.username, chain, address, alias)
        except WalletTrackerError as e:
            await progress.edit_text(f"❌ {e.user_message}")
            return
        except Exception:
            logger.exception("Error in /track")
            await progress.edit_text("❌ An error occurred while setting up tracking. Please try again later.")
            return

        if outcome.status == ALREADY_TRACKING:
            await progress.edit_text("ℹ️ You're already tracking this wallet!")
            return

        wallet = outcome.wallet
        info = get_chain(wallet.chain_ticker)
        headline = "✅ <b>Tracking started!</b>" if outcome.status == STARTED else "✅ <b>Now tracking wallet!</b>"
        await progress.edit_text(
            f"{headline}\n\n"
            f"{info.icon} Chain: <b>{info.name}</b>\n"
            f"💼 Address: <code>{wallet.address}</code>\n"
            f"🏷️ Alias: <b>{html.escape(wallet.alias or 'None')}</b>\n\n"
            "🔔 You'll now receive real-time alerts for this wallet!",
            parse_mode=ParseMode.HTML,
        )

    async def _handle_list(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        args = context.args or []
        chain = args[0].upper() if args else None
        try:
            wallets = await self.tracking.list_wallets(user.id, chain)
        except WalletTrackerError as e:
            await update.message.reply_text(f"❌ {e.user_message}")
            return
        await update.message.reply_text(
            format_wallet_list(wallets, chain),
            parse_mode=ParseMode.HTML,
            disable_web_page_preview=True,
        )

    async def _handle_untrack(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if not self.rate_limiter.allow(user.id):
            await update.message.reply_text(SLOW_DOWN)
            return

        args = context.args or []
        if len(args) < 2:
            await update.message.reply_text(UNTRACK_USAGE, parse_mode=ParseMode.HTML)
            return

        progress = await update.message.reply_text("⏳ Removing tracking...")
        try:
            outcome = await self.tracking.untrack(user.id, args[0], args[1])
        except WalletTrackerError as e:
            await progress.edit_text(f"❌ {e.user_message}")
            return
        except Exception:
            logger.exception("Error in /untrack")
            await progress.edit_text("❌ An error occurred. Please try again later.")
            return

        if outcome.status == NOT_TRACKING:
            await progress.edit_text("ℹ️ You're not tracking this wallet.")
            return

        info = get_chain(outcome.chain_ticker)
        await progress.edit_text(
            "✅ <b>Stopped tracking wallet</b>\n\n"
            f"{info.icon} Chain: <b>{info.name}</b>\n"
            f"💼 Address: <code>{short_address(outcome.address, short=False)}</code>\n\n"
            "You'll no longer receive alerts for this wallet.",
            parse_mode=ParseMode.HTML,
        )

    async def _handle_stats(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        found = await self.tracking.stats(update.effective_user.id)
        if found is None:
            await update.message.reply_text("❌ User not found. Use /start first.")
            return
        user, wallets = found
        await update.message.reply_text(format_stats(user, wallets), parse_mode=ParseMode.HTML)

    async def _handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        await query.answer()
        if query.data == "help":
            text = format_help(self.supported)
        else:
            text = format_wallet_list(await self.tracking.list_wallets(update.effective_user.id))
        await query.message.reply_text(text, parse_mode=ParseMode.HTML, disable_web_page_preview=True)

    def run(self) -> None:
        """Run the bot (blocking)."""
        logger.info("Running Telegram bot...")
        self.application.run_polling()


def create_bot() -> WalletTrackerBot:
    settings = load_settings()
    settings.validate()
    store = SubscriptionStore(settings.database_path)
    registrar = StreamRegistrar(store, MoralisStreamsClient(settings.moralis_api_key, timeout=settings.provider_timeout))
    tracking = TrackingService(store, registrar, settings.webhook_url, settings.supported_chains)
    limiter = SlidingWindowRateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_seconds)
    return WalletTrackerBot(settings.telegram_bot_token, tracking, limiter, settings.supported_chains)


if __name__ == "__main__":
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    create_bot().run()

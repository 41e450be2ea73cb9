import asyncio
import logging
from typing import Any, Optional

from telegram import Bot, Update
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from beta.notifications import MemberDirectory, NotificationDispatcher

log = logging.getLogger(__name__)

PLATFORM = "telegram"


class TelegramDispatcher(NotificationDispatcher):
    def __init__(self, bot: Bot):
        self.bot = bot

    async def deliver(self, conversation_id: str, owner_name: str, owner_id: str, text: str) -> bool:
        try:
            await self.bot.send_message(chat_id=int(conversation_id), text=text)
        except Exception as exc:
            log.warning("Failed to deliver notification to %s: %s", conversation_id, exc)
            return False
        return True


class TelegramDirectory(MemberDirectory):
    """Telegram only exposes administrators as a member list; regular members come from events."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def get_user_info(self, user_id: str, conversation_id: Optional[str] = None) -> Any:
        if conversation_id:
            member = await self.bot.get_chat_member(chat_id=int(conversation_id), user_id=int(user_id))
            user = member.user
            return {"id": str(user.id), "name": user.full_name or user.username}
        chat = await self.bot.get_chat(int(user_id))
        return {"id": str(chat.id), "name": chat.full_name or chat.username}

    async def get_thread_info(self, conversation_id: str) -> Any:
        admins = await self.bot.get_chat_administrators(int(conversation_id))
        return {
            "participants": [
                {"id": str(member.user.id), "name": member.user.full_name}
                for member in admins
            ]
        }


class TelegramTransport:
    def __init__(self, assistant, token: str):
        self.assistant = assistant
        self.application = Application.builder().token(token).build()
        self.dispatcher = TelegramDispatcher(self.application.bot)
        self.directory = TelegramDirectory(self.application.bot)
        self._register_handlers()
        self._stop_event = asyncio.Event()

    def _register_handlers(self):
        self.application.add_handler(CommandHandler("remind", self.remind))
        self.application.add_handler(CommandHandler("reminders", self.list_reminders))
        self.application.add_handler(CommandHandler("clearreminders", self.clear_reminders))
        self.application.add_handler(
            MessageHandler(filters.TEXT & (~filters.COMMAND), self.handle_message)
        )

    @staticmethod
    def _conversation_id(chat_id: int) -> str:
        return f"{PLATFORM}:{chat_id}"

    @staticmethod
    def _message_key(chat_id: int, message_id: int) -> str:
        return f"{PLATFORM}:{chat_id}:{message_id}"

    async def handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        user = update.effective_user
        chat = update.effective_chat
        if not message or not message.text or not user or user.is_bot or not chat:
            return
        intent = None
        replied = message.reply_to_message
        if replied and self.assistant.is_bot_message(self._message_key(chat.id, replied.message_id)):
            intent = "reply"
        try:
            await self.assistant.observe_message(
                self._conversation_id(chat.id),
                str(user.id),
                message.text,
                username=user.full_name or user.username,
                intent=intent,
            )
        except Exception as exc:
            log.exception("Failed to record message: %s", exc)

    async def remind(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        chat = update.effective_chat
        user = update.effective_user
        if not chat or not user:
            return
        text = " ".join(context.args).strip()
        name = await self.assistant.resolve_name(
            str(user.id),
            user.full_name or user.username,
            conversation_id=self._conversation_id(chat.id),
        )
        reply = self.assistant.remind(str(user.id), name, self._conversation_id(chat.id), text)
        await self._reply(update, reply)

    async def list_reminders(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        if not user:
            return
        await self._reply(update, self.assistant.describe_reminders(str(user.id)))

    async def clear_reminders(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        if not user:
            return
        await self._reply(update, self.assistant.clear_reminders_reply(str(user.id)))

    async def _reply(self, update: Update, text: str) -> None:
        message = update.effective_message
        chat = update.effective_chat
        if not message or not chat:
            return
        sent = await message.reply_text(text)
        self.assistant.track_bot_message(self._message_key(chat.id, sent.message_id))

    async def start(self):
        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling()
        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()

    async def stop(self):
        self._stop_event.set()

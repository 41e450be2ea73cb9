import logging
from typing import Any, Optional

import discord
from discord import app_commands
from discord.ext import commands

from beta.notifications import MemberDirectory, NotificationDispatcher

log = logging.getLogger(__name__)

PLATFORM = "discord"


async def _resolve_channel(client: discord.Client, channel_id: str):
    channel = client.get_channel(int(channel_id))
    if channel is None:
        channel = await client.fetch_channel(int(channel_id))
    return channel


class DiscordDispatcher(NotificationDispatcher):
    def __init__(self, client: discord.Client):
        self.client = client

    async def deliver(self, conversation_id: str, owner_name: str, owner_id: str, text: str) -> bool:
        content = text
        if str(owner_id).isdigit():
            content = content.replace(f"@{owner_name}", f"<@{owner_id}>", 1)
        try:
            channel = await _resolve_channel(self.client, conversation_id)
            await channel.send(content)
        except Exception as exc:
            log.warning("Failed to deliver notification to %s: %s", conversation_id, exc)
            return False
        return True


class DiscordDirectory(MemberDirectory):
    def __init__(self, client: discord.Client):
        self.client = client

    async def get_user_info(self, user_id: str, conversation_id: Optional[str] = None) -> Any:
        if conversation_id:
            channel = await _resolve_channel(self.client, conversation_id)
            guild = getattr(channel, "guild", None)
            if guild is not None:
                member = guild.get_member(int(user_id)) or await guild.fetch_member(int(user_id))
                return {"id": str(member.id), "name": member.display_name}
        user = await self.client.fetch_user(int(user_id))
        return {"id": str(user.id), "name": user.display_name}

    async def get_thread_info(self, conversation_id: str) -> Any:
        channel = await _resolve_channel(self.client, conversation_id)
        members = list(getattr(channel, "members", None) or [])
        recipient = getattr(channel, "recipient", None)
        if recipient is not None:
            members.append(recipient)
        return {
            "userInfo": [
                {"id": str(member.id), "name": member.display_name}
                for member in members
                if not getattr(member, "bot", False)
            ]
        }


class DiscordTransport(commands.Bot):
    def __init__(self, assistant, *, guild_id: Optional[int] = None):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.members = True
        super().__init__(command_prefix="!", intents=intents)
        self.assistant = assistant
        self.guild_id = guild_id
        self.dispatcher = DiscordDispatcher(self)
        self.directory = DiscordDirectory(self)

    async def setup_hook(self) -> None:
        self.tree.add_command(self._remind())
        self.tree.add_command(self._list_reminders())
        self.tree.add_command(self._clear_reminders())
        if self.guild_id:
            guild = discord.Object(id=self.guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
        else:
            await self.tree.sync()

    @staticmethod
    def _conversation_id(channel_id: int) -> str:
        return f"{PLATFORM}:{channel_id}"

    def _remind(self) -> app_commands.Command:
        @app_commands.command(name="remind", description="Set a reminder")
        @app_commands.describe(request="What and when, e.g. 'submit report in 30 minutes'")
        async def remind(interaction: discord.Interaction, request: str):
            await interaction.response.defer()
            conversation_id = self._conversation_id(interaction.channel_id)
            name = await self.assistant.resolve_name(
                str(interaction.user.id),
                interaction.user.display_name,
                conversation_id=conversation_id,
            )
            reply = self.assistant.remind(str(interaction.user.id), name, conversation_id, request)
            sent = await interaction.followup.send(reply, wait=True)
            self.assistant.track_bot_message(f"{PLATFORM}:{sent.id}")

        return remind

    def _list_reminders(self) -> app_commands.Command:
        @app_commands.command(name="reminders", description="List your pending reminders")
        async def reminders(interaction: discord.Interaction):
            reply = self.assistant.describe_reminders(str(interaction.user.id))
            await interaction.response.send_message(reply, ephemeral=True)

        return reminders

    def _clear_reminders(self) -> app_commands.Command:
        @app_commands.command(name="clearreminders", description="Delete all of your reminders")
        async def clearreminders(interaction: discord.Interaction):
            reply = self.assistant.clear_reminders_reply(str(interaction.user.id))
            await interaction.response.send_message(reply, ephemeral=True)

        return clearreminders

    async def on_ready(self):
        log.info("Discord bot ready as %s", self.user)

    async def on_message(self, message: discord.Message):
        if not message or not message.content:
            return
        if message.author.bot:
            return
        intent = None
        reference = message.reference
        if reference and reference.message_id and self.assistant.is_bot_message(
            f"{PLATFORM}:{reference.message_id}"
        ):
            intent = "reply"
        try:
            await self.assistant.observe_message(
                self._conversation_id(message.channel.id),
                str(message.author.id),
                message.content,
                username=message.author.display_name,
                intent=intent,
            )
        except Exception as exc:
            log.exception("Failed to record message: %s", exc)


async def run_discord_bot(transport: DiscordTransport, token: str):
    try:
        await transport.start(token)
    finally:
        await transport.close()

import asyncio
import logging
from typing import Any, Optional, Sequence
import os
import re

import discord
from discord import app_commands
from discord.app_commands import Choice
from discord.ext import commands
import httpx

from reqbot.config.loader import get_config as load_config_with_validation
from reqbot.discord.access import is_queue_admin, projects_for_member, technologies_for_member
from reqbot.discord.errors import notify_admin_error as core_notify_admin_error, handle_app_command_error
from reqbot.discord.surface import DiscordNotifier, WebhookSurface, send_in_chunks
from reqbot.discord.views import FINAL_MESSAGES, ItemNumberCheck, QueueInteractionHandler, SelectionView
from reqbot.documents import DOCUMENT_TYPES, DocumentStore
from reqbot.flows.selection import FlowKind, Phase, SelectionState, start
from reqbot.llm.errors import error_messages
from reqbot.llm.qa import QuestionAnswerer
from reqbot.queue.errors import DuplicateRequestError
from reqbot.queue.listing import build_listing, unique_values
from reqbot.queue.models import CASE_POLICIES, REQUESTS, QueueMonitorConfig, Request
from reqbot.queue.samples import seed_sample_requests
from reqbot.queue.service import RequestService
from reqbot.queue.sync import QueueSync
from reqbot.storage.memory import MemoryDatabase

if os.environ.get("DEBUG"):
    logging.basicConfig(level=logging.DEBUG)
    logging.getLogger("httpx").setLevel(logging.DEBUG)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s: %(message)s")

EMBED_COLOR = discord.Color.from_str("#0099ff")
MAX_EMBED_FIELDS = 5  # keeps a listing embed under Discord's 6000 character total
MONITOR_PERMISSIONS = ("view_channel", "send_messages", "manage_webhooks")


def get_config(filename: Optional[str] = None) -> dict[str, Any]:
    return load_config_with_validation(filename)


config = get_config()

logging.info(
    f"🚀 Bot starting | projects: {len(config['projects'])} | technologies: {len(config['technologies'])} "
    f"| models: {list(config['models'].keys())}"
)

intents = discord.Intents.default()
intents.message_content = True
intents.dm_messages = True
activity = discord.CustomActivity(name=(config.get("status_message") or "Managing item requests")[:128])
discord_bot = commands.Bot(intents=intents, activity=activity, command_prefix=None)
httpx_client = httpx.AsyncClient()

db = MemoryDatabase(CASE_POLICIES)
documents = DocumentStore(config["documents_dir"])
answerer = QuestionAnswerer(config, documents)
queue_sync = QueueSync(
    db,
    surface_factory=lambda monitor: WebhookSurface(discord_bot, monitor, queue_handler.view_for),
    notifier=DiscordNotifier(discord_bot),
    chunk_limit=config["queue"]["chunk_limit"],
)
queue_handler = QueueInteractionHandler(queue_sync, config)
request_service = RequestService(db, on_change=queue_sync.refresh)


async def notify_admin_error(error: Exception, context: str = "") -> None:
    await core_notify_admin_error(discord_bot, config, error, context)


async def run_selection(
    interaction: discord.Interaction,
    state: SelectionState,
    projects: Sequence[str],
    technologies: Sequence[str] = (),
    item_number_check: Optional[ItemNumberCheck] = None,
) -> SelectionState:
    """
    Drive a selection flow in an ephemeral message until it ends.

    Cancelled, timed out and rejected flows are reported in place; the caller
    only handles SUBMITTED.
    """
    if state.done:
        await interaction.response.defer(ephemeral=True, thinking=True)
        return state

    view = SelectionView(
        state, projects, technologies, timeout=config["selection_timeout"], item_number_check=item_number_check
    )
    await interaction.response.send_message(view.prompt(), view=view, ephemeral=True)
    state = await view.run()

    if state.phase is not Phase.SUBMITTED:
        if state.notice:
            text = state.notice
        elif state.kind is FlowKind.LISTING:
            text = "Selection cancelled or timed out."
        else:
            text = FINAL_MESSAGES[state.phase]
        await interaction.edit_original_response(content=text, view=None)
    return state


# ── Slash commands: requests ────────────────────────────────────────────────

@discord_bot.tree.command(name="request-items", description="Request items for a project")
@app_commands.describe(repeat="Reuse your last project and technology selection")
async def request_items_command(interaction: discord.Interaction, repeat: bool = False) -> None:
    projects = projects_for_member(interaction.user, config)
    technologies = technologies_for_member(interaction.user, config)
    if not projects:
        return await interaction.response.send_message("You are not part of any projects.", ephemeral=True)
    if not technologies:
        return await interaction.response.send_message("You don't have any approved technologies.", ephemeral=True)

    key = FlowKind.REQUEST.value
    last = await request_service.last_selection(key, interaction.user.id) if repeat else None
    state = await run_selection(interaction, start(FlowKind.REQUEST, interaction.user.id, last), projects, technologies)
    if state.phase is not Phase.SUBMITTED:
        return

    result = await request_service.submit_request(state.project, state.technologies, str(interaction.user), interaction.user.id)
    await request_service.remember_selection(key, interaction.user.id, state.project, state.technologies)
    await interaction.edit_original_response(content=result.message, view=None)


@discord_bot.tree.command(name="request-reassignment", description="Request reassignment of an item")
async def request_reassignment_command(interaction: discord.Interaction) -> None:
    projects = projects_for_member(interaction.user, config)
    if not projects:
        return await interaction.response.send_message("You are not part of any projects.", ephemeral=True)

    async def already_requested(project: str, item_number: str) -> Optional[str]:
        return await request_service.reassignment_conflict(project, item_number, interaction.user.id)

    state = await run_selection(
        interaction, start(FlowKind.REASSIGNMENT, interaction.user.id), projects, item_number_check=already_requested
    )
    if state.phase is not Phase.SUBMITTED:
        return

    try:
        result = await request_service.submit_reassignment(state.project, state.item_number, str(interaction.user), interaction.user.id)
        text = result.message
    except DuplicateRequestError as e:
        text = str(e)
    await interaction.edit_original_response(content=text, view=None)


@discord_bot.tree.command(name="list-requests", description="List all item requests")
@app_commands.describe(repeat="Reuse your last project and technology filter")
async def list_requests_command(interaction: discord.Interaction, repeat: bool = False) -> None:
    requests = [Request.from_record(r) for r in await db.collection(REQUESTS).find_all()]
    if not requests:
        return await interaction.response.send_message("No requests have been made yet.", ephemeral=True)

    key = FlowKind.LISTING.value
    projects, technologies = unique_values(requests)
    last = await request_service.last_selection(key, interaction.user.id) if repeat else None
    state = await run_selection(interaction, start(FlowKind.LISTING, interaction.user.id, last), projects, technologies)
    if state.phase is not Phase.SUBMITTED:
        return
    await request_service.remember_selection(key, interaction.user.id, state.project, state.technologies)

    listing = build_listing(requests, state.project, state.technologies)
    if not listing.count:
        return await interaction.edit_original_response(content="No requests found matching your criteria.", view=None)

    embed = discord.Embed(title="Item Requests", description=listing.description, color=EMBED_COLOR)
    for i, value in enumerate(listing.fields[:MAX_EMBED_FIELDS]):
        embed.add_field(name="Requests" if i == 0 else "\u200b", value=value, inline=False)
    if len(listing.fields) > MAX_EMBED_FIELDS:
        embed.set_footer(text="Too many requests to show them all, narrow the filter to see the rest.")
    await interaction.edit_original_response(content=None, embed=embed, view=None)


@discord_bot.tree.command(name="setup-queue-monitor", description="Set up a channel to monitor the requests queue")
@app_commands.describe(
    channel="The channel to monitor the queue in",
    project_filter="Only show projects whose name contains this text",
    include_reassignments="Also show reassignment requests",
)
async def setup_queue_monitor_command(
    interaction: discord.Interaction,
    channel: discord.TextChannel,
    project_filter: Optional[str] = None,
    include_reassignments: bool = True,
) -> None:
    if not is_queue_admin(interaction.user, config):
        return await interaction.response.send_message("You don't have permission to set up the queue monitor.", ephemeral=True)
    await interaction.response.defer(ephemeral=True, thinking=True)

    perms = channel.permissions_for(channel.guild.me)
    if missing := [p for p in MONITOR_PERMISSIONS if not getattr(perms, p)]:
        names = "\n".join(f"• {p.replace('_', ' ')}" for p in missing)
        return await interaction.followup.send(
            f"I don't have the required permissions in {channel.mention}. "
            f"Please make sure I have the following permissions:\n{names}",
            ephemeral=True,
        )

    try:
        webhook = await channel.create_webhook(name=config["queue"]["webhook_name"], reason="Queue monitor")
        monitor = QueueMonitorConfig(
            channel_id=channel.id,
            webhook_id=webhook.id,
            webhook_token=webhook.token,
            project_filter=project_filter,
            include_reassignments=include_reassignments,
        )
        await queue_sync.install(monitor)
    except discord.HTTPException as e:
        logging.exception("Error setting up queue monitor")
        await notify_admin_error(e, f"Queue monitor setup in #{channel.name}")
        return await interaction.followup.send(
            "There was an error setting up the queue monitor. Please make sure I have the "
            "necessary permissions to create webhooks in the selected channel.",
            ephemeral=True,
        )

    logging.info(f"Queue monitor set up in #{channel.name} by {interaction.user.id}")
    await interaction.followup.send(
        f"Queue monitor has been set up in {channel.mention}. The message will be automatically updated when requests change.",
        ephemeral=True,
    )


# ── Slash commands: documents and questions ─────────────────────────────────

async def answer_question(question: str, project: Optional[str], context: str) -> str:
    try:
        return await answerer.answer(question, project)
    except Exception as e:  # noqa: BLE001
        admin_msg, user_msg = error_messages(e)
        logging.warning(f"Question answering failed: {admin_msg}")
        await notify_admin_error(e, context)
        return user_msg


@discord_bot.tree.command(name="ask", description="Ask the LLM a question")
@app_commands.describe(question="The question to ask", project="The project name (optional)")
async def ask_command(interaction: discord.Interaction, question: str, project: Optional[str] = None) -> None:
    await interaction.response.defer(thinking=True)
    answer = await answer_question(question, project, f"/ask by {interaction.user.id}")
    await send_in_chunks(interaction.followup.send, answer)


@discord_bot.tree.command(name="upload", description="Upload a document for the LLM to learn from")
@app_commands.rename(doc_type="type")
@app_commands.describe(
    project="The project name this document belongs to",
    doc_type="The type of document",
    document="The document file to upload (text format)",
)
@app_commands.choices(doc_type=[Choice(name=t.title() if t != "faq" else "FAQ", value=t) for t in DOCUMENT_TYPES])
async def upload_command(interaction: discord.Interaction, project: str, doc_type: str, document: discord.Attachment) -> None:
    await interaction.response.defer(thinking=True)
    if "text" not in (document.content_type or ""):
        return await interaction.followup.send("Please upload a text file.")

    try:
        resp = await httpx_client.get(document.url)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logging.warning(f"Failed to fetch attachment {document.filename}: {e}")
        return await interaction.followup.send("Failed to fetch the attachment.")

    try:
        documents.save(project, doc_type, resp.text)
    except ValueError as e:
        return await interaction.followup.send(str(e))
    answerer.retriever.invalidate(project)

    await interaction.followup.send(
        f"Successfully uploaded {doc_type} for project {project}. "
        "The bot will now be able to answer questions about this document."
    )


@discord_bot.tree.command(name="projects", description="List all available projects")
async def projects_command(interaction: discord.Interaction) -> None:
    projects = documents.projects()
    if not projects:
        return await interaction.response.send_message("No projects have been created yet.")

    embed = discord.Embed(
        title="Available Projects",
        description="Here are the projects that I can answer questions about:",
        color=EMBED_COLOR,
    )
    for project in projects[:25]:
        types = ", ".join(documents.document_types(project))
        embed.add_field(name=project, value=f"Available documentation: {types}" if types else "No documentation yet", inline=False)
    embed.set_footer(text="Use /ask with a project name to ask questions about a specific project")
    await interaction.response.send_message(embed=embed)


@discord_bot.tree.command(name="send", description="Send a message to a user regarding a project")
@app_commands.describe(user="The user to send the message to", project="The project name", message="The message to send")
async def send_command(interaction: discord.Interaction, user: discord.User, project: str, message: str) -> None:
    await interaction.response.defer(ephemeral=True, thinking=True)
    text = f"**Message regarding project {project}**\n\n{message}\n\n*Sent by {interaction.user}*"
    try:
        await user.send(text)
    except discord.HTTPException as e:
        logging.warning(f"Could not DM {user.id}: {e}")
        return await interaction.followup.send(f"I was unable to send a DM to {user}. They might have DMs disabled.", ephemeral=True)
    await interaction.followup.send(f"Message regarding project {project} sent to {user}.", ephemeral=True)


@discord_bot.tree.error
async def on_app_command_error(interaction: discord.Interaction, error: Exception) -> None:
    await handle_app_command_error(interaction, error, discord_bot, config)


# ── Events ───────────────────────────────────────────────────────────────────

@discord_bot.event
async def setup_hook() -> None:
    # One instance serves the controls of every queue message, including those sent before a restart.
    discord_bot.add_view(queue_handler.view_for())
    if config.get("seed_sample_requests"):
        await seed_sample_requests(db)


@discord_bot.event
async def on_ready() -> None:
    if client_id := config.get("client_id"):
        logging.info(f"\n\nBOT INVITE URL:\nhttps://discord.com/oauth2/authorize?client_id={client_id}&permissions=412317191168&scope=bot\n")
    if guild_id := config.get("guild_id"):
        guild = discord.Object(id=int(guild_id))
        discord_bot.tree.copy_global_to(guild=guild)
        synced = await discord_bot.tree.sync(guild=guild)
    else:
        synced = await discord_bot.tree.sync()
    logging.info(f"Synced {len(synced)} slash commands")


@discord_bot.event
async def on_message(new_msg: discord.Message) -> None:
    is_dm = new_msg.channel.type == discord.ChannelType.private
    if (not is_dm and discord_bot.user not in new_msg.mentions) or new_msg.author.bot:
        return

    question = re.sub(rf"<@!?{discord_bot.user.id}>", "", new_msg.content).strip()
    if not question:
        return

    logging.info(f"Message (uid:{new_msg.author.id}, len:{len(question)}): {question}")
    async with new_msg.channel.typing():
        answer = await answer_question(question, None, f"Mention in #{getattr(new_msg.channel, 'name', 'DM')}")
    try:
        await send_in_chunks(new_msg.reply, answer)
    except discord.HTTPException:
        logging.exception("Could not reply to message")


async def main() -> None:
    await discord_bot.start(config["bot_token"])


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass

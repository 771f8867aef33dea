"""
discord.ui wiring for the selection flows and the queue monitor controls.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Sequence

import discord

from reqbot.flows.selection import (
    Cancelled,
    Confirmed,
    Event,
    FlowKind,
    Finish,
    ItemNumberEntered,
    ItemNumberRejected,
    Phase,
    ProjectChosen,
    SelectionState,
    ShowConfirmation,
    ShowControls,
    ShowItemNumberForm,
    TechnologiesChosen,
    TimedOut,
    advance,
)
from reqbot.queue.errors import QueueActionError
from reqbot.queue.formatter import QueueControls, QueueOption, SELECT_ID
from reqbot.queue.listing import ALL
from reqbot.queue.sync import QueueSync

from .access import is_queue_admin
from .errors import GENERIC_ERROR, send_ephemeral


MAX_SELECT_OPTIONS = 25
EMPTY_QUEUE_VALUE = "none"

FINAL_MESSAGES = {
    Phase.CANCELLED: "Request cancelled.",
    Phase.TIMED_OUT: "Request timed out.",
}


# (project, item number) -> refusal text, or None when the item number is acceptable
ItemNumberCheck = Callable[[str, str], Awaitable[str | None]]


def select_options(values: Sequence[str], all_label: str | None = None) -> list[discord.SelectOption]:
    options = [discord.SelectOption(label=all_label, value=ALL)] if all_label else []
    options += [discord.SelectOption(label=v[:100], value=v[:100]) for v in values]
    if len(options) > MAX_SELECT_OPTIONS:
        logging.warning("Select menu truncated from %d to %d options", len(options), MAX_SELECT_OPTIONS)
    return options[:MAX_SELECT_OPTIONS]


# ── Selection flow ───────────────────────────────────────────────────────────

class ItemNumberModal(discord.ui.Modal, title="Enter Item Number"):
    item_number = discord.ui.TextInput(
        label="Item Number",
        placeholder="Enter the item number",
        required=True,
        max_length=15,
    )

    def __init__(self, flow: "SelectionView"):
        super().__init__(timeout=flow.timeout)
        self.flow = flow

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await self.flow.dispatch(interaction, ItemNumberEntered(interaction.user.id, self.item_number.value))

    async def on_error(self, interaction: discord.Interaction, error: Exception) -> None:
        logging.exception("Item number form failed", exc_info=error)
        await send_ephemeral(interaction, GENERIC_ERROR)


class SelectionView(discord.ui.View):
    """
    Renders the current SelectionState as components and feeds every
    component/modal interaction back through `advance`.

    The view timeout is the per-step wait window; discord.py re-arms it on
    every interaction and cancels it when the view stops.
    """

    def __init__(
        self,
        state: SelectionState,
        projects: Sequence[str],
        technologies: Sequence[str],
        timeout: float = 60,
        item_number_check: ItemNumberCheck | None = None,
    ):
        super().__init__(timeout=timeout)
        self.state = state
        self.item_number_check = item_number_check
        self.projects = list(projects)
        self.technologies = list(technologies)
        self.render()

    # ── rendering ───────────────────────────────────────────────────────────

    def prompt(self) -> str:
        phase = self.state.phase
        if phase is Phase.AWAITING_PROJECT:
            return "Please select a project:"
        if phase is Phase.AWAITING_TECHNOLOGIES:
            return f"Project: {self.state.project}\nPlease select technologies:"
        if phase is Phase.AWAITING_ITEM_NUMBER:
            return f"Project: {self.state.project}\nPlease enter the item number."
        if phase is Phase.AWAITING_CONFIRMATION:
            what = "reassignment request" if self.state.kind is FlowKind.REASSIGNMENT else "request"
            return f"Please confirm your {what}:\n{self.state.summary()}"
        return self.state.notice or FINAL_MESSAGES.get(phase, "Processing…")

    def render(self) -> None:
        self.clear_items()
        phase = self.state.phase
        listing = self.state.kind is FlowKind.LISTING

        if phase in (Phase.AWAITING_PROJECT, Phase.AWAITING_ITEM_NUMBER):
            select = discord.ui.Select(
                custom_id="project-select",
                placeholder="Select a project",
                options=select_options(self.projects, "All Projects" if listing else None),
            )
            select.callback = self._on_project
            self.add_item(select)
        elif phase is Phase.AWAITING_TECHNOLOGIES:
            options = select_options(self.technologies, "All Technologies" if listing else None)
            select = discord.ui.Select(
                custom_id="tech-select",
                placeholder="Select technologies",
                min_values=1,
                max_values=len(options),
                options=options,
            )
            select.callback = self._on_technologies
            self.add_item(select)
        elif phase is Phase.AWAITING_CONFIRMATION:
            confirm = discord.ui.Button(label="Confirm Request", style=discord.ButtonStyle.primary, custom_id="confirm-request")
            confirm.callback = self._on_confirm
            self.add_item(confirm)

        if not self.state.done:
            cancel = discord.ui.Button(label="Cancel", style=discord.ButtonStyle.secondary, custom_id="cancel-request")
            cancel.callback = self._on_cancel
            self.add_item(cancel)

    # ── event plumbing ──────────────────────────────────────────────────────

    async def dispatch(self, interaction: discord.Interaction | None, event: Event) -> None:
        event = await self._check_item_number(event)
        self.state, effects = advance(self.state, event)

        for effect in effects:
            if isinstance(effect, ShowItemNumberForm):
                await interaction.response.send_modal(ItemNumberModal(self))
            elif isinstance(effect, (ShowControls, ShowConfirmation)):
                self.render()
                await interaction.response.edit_message(content=self.prompt(), view=self)
            elif isinstance(effect, Finish):
                self.stop()
                if interaction is not None and not interaction.response.is_done():
                    await interaction.response.defer()

        # Ignored events (foreign users, stale components) are acknowledged silently.
        if interaction is not None and not interaction.response.is_done():
            await interaction.response.defer()

    async def _check_item_number(self, event: Event) -> Event:
        # Refused item numbers end the flow before a confirmation is ever offered.
        if (
            self.item_number_check is None
            or not isinstance(event, ItemNumberEntered)
            or event.user_id != self.state.owner_id
            or self.state.phase is not Phase.AWAITING_ITEM_NUMBER
            or not event.item_number.strip()
        ):
            return event
        reason = await self.item_number_check(self.state.project, event.item_number.strip())
        if reason:
            return ItemNumberRejected(event.user_id, event.item_number, reason)
        return event

    async def run(self) -> SelectionState:
        """Wait for the flow to finish and return its final state."""
        if await self.wait():
            self.state, _ = advance(self.state, TimedOut())
        return self.state

    async def _on_project(self, interaction: discord.Interaction) -> None:
        values = interaction.data.get("values") or []
        await self.dispatch(interaction, ProjectChosen(interaction.user.id, values[0] if values else ""))

    async def _on_technologies(self, interaction: discord.Interaction) -> None:
        values = tuple(interaction.data.get("values") or ())
        await self.dispatch(interaction, TechnologiesChosen(interaction.user.id, values))

    async def _on_confirm(self, interaction: discord.Interaction) -> None:
        await self.dispatch(interaction, Confirmed(interaction.user.id))

    async def _on_cancel(self, interaction: discord.Interaction) -> None:
        await self.dispatch(interaction, Cancelled(interaction.user.id))

    async def on_error(self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item[Any]) -> None:
        logging.exception("Selection flow error", exc_info=error)
        await send_ephemeral(interaction, GENERIC_ERROR)


# ── Queue monitor controls ───────────────────────────────────────────────────

def controls_from_message(message: discord.Message | None) -> QueueControls:
    """Recover the queue controls (and the current choice) from a sent message."""
    options: list[QueueOption] = []
    for row in getattr(message, "components", None) or []:
        for component in getattr(row, "children", []):
            if getattr(component, "custom_id", None) == SELECT_ID:
                options.extend(
                    QueueOption(label=o.label, value=o.value, description=o.description or "", default=o.default)
                    for o in component.options
                    if o.value != EMPTY_QUEUE_VALUE
                )
    return QueueControls(options=tuple(options))


class QueueActionView(discord.ui.View):
    """
    Select + Complete/Reject/Delete controls attached to the last queue message.

    Custom ids are fixed and the view never times out, so a single instance
    registered with `Client.add_view` keeps serving queue messages after a
    restart.
    """

    def __init__(self, handler: "QueueInteractionHandler", controls: QueueControls | None = None):
        super().__init__(timeout=None)
        self.handler = handler
        controls = controls or QueueControls()

        options = [
            discord.SelectOption(label=o.label, value=o.value, description=o.description or None, default=o.default)
            for o in controls.options[:MAX_SELECT_OPTIONS]
        ]
        if len(controls.options) > MAX_SELECT_OPTIONS:
            logging.warning(
                "Queue select shows %d of %d requests", MAX_SELECT_OPTIONS, len(controls.options)
            )
        select = discord.ui.Select(
            custom_id=controls.select_id,
            placeholder=controls.placeholder,
            min_values=1,
            max_values=1,
            options=options or [discord.SelectOption(label="No open requests", value=EMPTY_QUEUE_VALUE)],
            disabled=not options,
        )
        select.callback = self._on_select
        self.add_item(select)

        for control in controls.buttons:
            button = discord.ui.Button(
                custom_id=control.custom_id,
                label=control.label,
                style=getattr(discord.ButtonStyle, control.style),
                disabled=control.disabled,
            )
            button.callback = self._make_button_callback(control.custom_id)
            self.add_item(button)

    def _make_button_callback(self, custom_id: str):
        async def callback(interaction: discord.Interaction) -> None:
            await self.handler.on_button(interaction, custom_id)
        return callback

    async def _on_select(self, interaction: discord.Interaction) -> None:
        values = interaction.data.get("values") or []
        await self.handler.on_select(interaction, values[0] if values else None)

    async def on_error(self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item[Any]) -> None:
        logging.exception("Queue control error", exc_info=error)
        await send_ephemeral(interaction, "There was an error processing your action. Please try again later.")


class QueueInteractionHandler:
    def __init__(self, sync: QueueSync, config: dict[str, Any]):
        self.sync = sync
        self.config = config

    def view_for(self, controls: QueueControls | None = None) -> QueueActionView:
        return QueueActionView(self, controls)

    async def _check_admin(self, interaction: discord.Interaction) -> bool:
        if is_queue_admin(interaction.user, self.config):
            return True
        await send_ephemeral(interaction, "You don't have permission to manage the queue.")
        return False

    async def on_select(self, interaction: discord.Interaction, value: str | None) -> None:
        if not await self._check_admin(interaction):
            return
        try:
            controls = self.sync.select_option(controls_from_message(interaction.message), value or "")
        except QueueActionError as e:
            await send_ephemeral(interaction, str(e))
            return
        await interaction.response.edit_message(view=self.view_for(controls))

    async def on_button(self, interaction: discord.Interaction, custom_id: str) -> None:
        if not await self._check_admin(interaction):
            return
        selected = controls_from_message(interaction.message).selected_value()
        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            outcome = await self.sync.handle_action(custom_id, selected, actor_name=str(interaction.user))
        except QueueActionError as e:
            await interaction.followup.send(str(e), ephemeral=True)
            return
        except Exception:  # noqa: BLE001
            logging.exception("Queue action %s failed", custom_id)
            await interaction.followup.send(
                "There was an error processing your action. Please try again later.", ephemeral=True
            )
            return
        await interaction.followup.send(outcome.message, ephemeral=True)

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from functools import partial

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import TelegramError
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes

from clockin.config import Settings
from clockin.db import Database
from clockin.db_constants import DREAM_THEMES, GOAL_PERIODS
from clockin.duration import DurationParseError, format_duration, parse_duration_to_minutes
from clockin.errors import EntryNotFound, InvalidTransition, PersistenceFailure
from clockin.messages import dream_message, event_message, goals_message, session_message, status_message, stop_message
from clockin.notifications import Event
from clockin.service import add_manual_entry, complete_entry, compute_status
from clockin.session import SessionMachine
from clockin.stores import SqliteEntryStore, SqliteSessionSlot
from clockin.time_utils import now_local

logger = logging.getLogger(__name__)

HELP_TEXT = "\n".join(
    [
        "⏱ Focus tracker",
        "/focus <category> — start a focus session",
        "/pomodoro <category> — start a pomodoro session",
        "/pause, /resume, /stop, /discard",
        "/log <duration> <category> [note] — add time manually",
        "/status, /goals, /dream",
        "/goal <daily|weekly|monthly> <duration> [category]",
        "/dream <hours> [theme]",
        "/reminders on|off, /quiet_hours HH:MM-HH:MM",
    ]
)


class TelegramSink:
    """Delivers progression events to a chat as plain text messages."""

    def __init__(self, bot: Bot, chat_id: int) -> None:
        self.bot = bot
        self.chat_id = chat_id

    async def emit(self, event: Event) -> None:
        try:
            await self.bot.send_message(chat_id=self.chat_id, text=event_message(event))
        except TelegramError:
            logger.exception("failed to deliver %s to chat %s", event.kind, self.chat_id)


def build_keyboard(status: str) -> InlineKeyboardMarkup | None:
    if status == "running":
        rows = [[InlineKeyboardButton("⏸ Pause", callback_data="pause"), InlineKeyboardButton("⏹ Stop", callback_data="stop")]]
    elif status == "paused":
        rows = [[InlineKeyboardButton("▶️ Resume", callback_data="resume"), InlineKeyboardButton("⏹ Stop", callback_data="stop")]]
    else:
        return None
    rows.append([InlineKeyboardButton("Status", callback_data="status")])
    return InlineKeyboardMarkup(rows)


def _db(context: ContextTypes.DEFAULT_TYPE) -> Database:
    db = context.application.bot_data.get("db")
    assert isinstance(db, Database)
    return db


def _settings(context: ContextTypes.DEFAULT_TYPE) -> Settings:
    settings = context.application.bot_data.get("settings")
    assert isinstance(settings, Settings)
    return settings


def _touch_user(update: Update, context: ContextTypes.DEFAULT_TYPE) -> tuple[int, int, datetime]:
    assert update.effective_user is not None
    assert update.effective_chat is not None
    user_id = update.effective_user.id
    chat_id = update.effective_chat.id
    now = now_local(_settings(context).tz)
    _db(context).upsert_user_profile(user_id=user_id, chat_id=chat_id, seen_at=now)
    return user_id, chat_id, now


async def _machine(context: ContextTypes.DEFAULT_TYPE, user_id: int, chat_id: int) -> SessionMachine:
    machines: dict[int, SessionMachine] = context.application.bot_data.setdefault("machines", {})
    machine = machines.get(user_id)
    if machine is None:
        db = _db(context)
        machine = await SessionMachine.restore(
            user_id,
            SqliteEntryStore(db),
            SqliteSessionSlot(db, user_id),
            clock=partial(now_local, _settings(context).tz),
            sink=TelegramSink(context.bot, chat_id),
        )
        machines[user_id] = machine
    return machine


async def _reply(update: Update, text: str, status: str | None = None) -> None:
    assert update.effective_message is not None
    markup = build_keyboard(status) if status else None
    await update.effective_message.reply_text(text, reply_markup=markup)


async def _start_session(update: Update, context: ContextTypes.DEFAULT_TYPE, entry_type: str) -> None:
    user_id, chat_id, _ = _touch_user(update, context)
    if not context.args:
        await _reply(update, f"Usage: /{'pomodoro' if entry_type == 'pomodoro' else 'focus'} <category>")
        return
    category = context.args[0].strip().lower()
    machine = await _machine(context, user_id, chat_id)
    try:
        state = await machine.start(category, entry_type=entry_type)
    except InvalidTransition:
        await _reply(update, session_message(machine.state, machine.elapsed_ms(), machine.pomodoro()), machine.status)
        return
    except PersistenceFailure:
        logger.exception("could not start session for user %s", user_id)
        await _reply(update, "Could not save the session, please try again.")
        return
    started = state.started_at.strftime("%H:%M") if state.started_at else ""
    await _reply(update, f"⏱ Started {category} at {started}", state.status)


async def cmd_focus(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _start_session(update, context, "timer")


async def cmd_pomodoro(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _start_session(update, context, "pomodoro")


async def _transition(update: Update, context: ContextTypes.DEFAULT_TYPE, action: str) -> None:
    user_id, chat_id, now = _touch_user(update, context)
    machine = await _machine(context, user_id, chat_id)
    try:
        if action == "pause":
            await machine.pause()
        elif action == "resume":
            await machine.resume()
        elif action == "stop":
            result = await machine.stop()
            settings = _settings(context)
            try:
                outcome = await complete_entry(
                    _db(context),
                    result.entry,
                    now,
                    machine.sink,
                    tz_name=settings.tz,
                    week_start=settings.week_start,
                    dream_default_hours=settings.dream_goal_default_hours,
                )
            except sqlite3.Error:
                # The entry is closed; the recompute job scores it later.
                logger.exception("scoring entry %s failed for user %s", result.entry.id, user_id)
                await _reply(update, f"⏹ Saved {format_duration(result.duration_seconds * 1000)}.")
                return
            await _reply(update, stop_message(outcome))
            return
        elif action == "discard":
            discarded = await machine.reset("explicit")
            if discarded is None:
                await _reply(update, "No active session.")
            return
    except InvalidTransition as exc:
        await _reply(update, str(exc), machine.status)
        return
    except EntryNotFound:
        await _reply(update, "That session is no longer recorded, it was discarded.")
        return
    except PersistenceFailure:
        logger.exception("session %s failed for user %s", action, user_id)
        await _reply(update, "Could not save the session, please try again.", machine.status)
        return
    await _reply(update, session_message(machine.state, machine.elapsed_ms(), machine.pomodoro()), machine.status)


async def cmd_pause(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _transition(update, context, "pause")


async def cmd_resume(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _transition(update, context, "resume")


async def cmd_stop(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _transition(update, context, "stop")


async def cmd_discard(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _transition(update, context, "discard")


async def cmd_log(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id, chat_id, now = _touch_user(update, context)
    if len(context.args) < 2:
        await _reply(update, "Usage: /log <duration> <category> [note]")
        return

    try:
        minutes = parse_duration_to_minutes(context.args[0])
    except DurationParseError as exc:
        await _reply(update, str(exc))
        return

    note = " ".join(context.args[2:]).strip() or None
    db = _db(context)
    try:
        entry = add_manual_entry(db, user_id, context.args[1], now - timedelta(minutes=minutes), now, note)
    except ValueError as exc:
        await _reply(update, str(exc))
        return

    settings = _settings(context)
    outcome = await complete_entry(
        db,
        entry,
        now,
        TelegramSink(context.bot, chat_id),
        tz_name=settings.tz,
        week_start=settings.week_start,
        dream_default_hours=settings.dream_goal_default_hours,
    )
    await _reply(update, stop_message(outcome))


async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id, chat_id, now = _touch_user(update, context)
    await _machine(context, user_id, chat_id)
    settings = _settings(context)
    view = compute_status(_db(context), user_id, now, settings.tz, settings.week_start)
    username = update.effective_user.username if update.effective_user else None
    await _reply(update, status_message(view, username), view.session.status)


async def cmd_goals(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id, _, now = _touch_user(update, context)
    settings = _settings(context)
    view = compute_status(_db(context), user_id, now, settings.tz, settings.week_start)
    await _reply(update, goals_message(view))


async def cmd_goal(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id, _, now = _touch_user(update, context)
    usage = "Usage: /goal <daily|weekly|monthly> <duration> [category] or /goal remove <id>"
    if len(context.args) < 2:
        await _reply(update, usage)
        return

    db = _db(context)
    if context.args[0].lower() == "remove":
        try:
            goal_id = int(context.args[1])
        except ValueError:
            await _reply(update, usage)
            return
        removed = db.deactivate_goal(user_id, goal_id)
        await _reply(update, f"Goal #{goal_id} removed" if removed else f"Goal #{goal_id} not found")
        return

    period = context.args[0].lower()
    if period not in GOAL_PERIODS:
        await _reply(update, usage)
        return
    try:
        minutes = parse_duration_to_minutes(context.args[1])
    except DurationParseError as exc:
        await _reply(update, str(exc))
        return

    category = context.args[2].lower() if len(context.args) > 2 else None
    goal = db.create_goal(user_id, minutes, period, now, category_id=category)
    await _reply(update, f"🎯 Goal #{goal.id} set: {minutes}m {period}" + (f" of {category}" if category else ""))


async def cmd_dream(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id, _, now = _touch_user(update, context)
    db = _db(context)
    settings = _settings(context)
    db.get_or_create_dream_goal(user_id, now, settings.dream_goal_default_hours)

    if context.args:
        try:
            hours = float(context.args[0])
        except ValueError:
            await _reply(update, f"Usage: /dream <hours> [{'|'.join(DREAM_THEMES)}]")
            return
        theme = context.args[1].lower() if len(context.args) > 1 else None
        try:
            db.update_dream_goal_settings(user_id, now, target_hours=hours, theme=theme)
        except ValueError as exc:
            await _reply(update, str(exc))
            return

    view = compute_status(db, user_id, now, settings.tz, settings.week_start)
    await _reply(update, dream_message(view))


async def cmd_reminders(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id, _, _ = _touch_user(update, context)
    action = context.args[0].lower() if context.args else ""
    if action not in {"on", "off"}:
        await _reply(update, "Usage: /reminders on|off")
        return

    enabled = action == "on"
    _db(context).update_reminders_enabled(user_id, enabled)
    await _reply(update, f"Reminders {'enabled' if enabled else 'disabled'}")


async def cmd_quiet_hours(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id, _, _ = _touch_user(update, context)
    if not context.args:
        await _reply(update, "Usage: /quiet_hours HH:MM-HH:MM")
        return

    raw = context.args[0]
    if "-" not in raw or ":" not in raw:
        await _reply(update, "Invalid format. Example: /quiet_hours 22:00-08:00")
        return

    _db(context).update_quiet_hours(user_id, raw)
    await _reply(update, f"Quiet hours set to {raw}")


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id, chat_id, _ = _touch_user(update, context)
    await _machine(context, user_id, chat_id)
    await _reply(update, HELP_TEXT)


async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    assert query is not None
    await query.answer()

    data = query.data or ""
    if data in {"pause", "resume", "stop"}:
        await _transition(update, context, data)
        return
    if data == "status":
        await cmd_status(update, context)


def build_application(settings: Settings, db: Database) -> Application:
    app = Application.builder().token(settings.telegram_bot_token).build()
    app.bot_data["db"] = db
    app.bot_data["settings"] = settings
    app.bot_data["machines"] = {}

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_start))
    app.add_handler(CommandHandler("focus", cmd_focus))
    app.add_handler(CommandHandler("pomodoro", cmd_pomodoro))
    app.add_handler(CommandHandler("pause", cmd_pause))
    app.add_handler(CommandHandler("resume", cmd_resume))
    app.add_handler(CommandHandler("stop", cmd_stop))
    app.add_handler(CommandHandler("discard", cmd_discard))
    app.add_handler(CommandHandler("log", cmd_log))
    app.add_handler(CommandHandler("status", cmd_status))
    app.add_handler(CommandHandler("goals", cmd_goals))
    app.add_handler(CommandHandler("goal", cmd_goal))
    app.add_handler(CommandHandler("dream", cmd_dream))
    app.add_handler(CommandHandler("reminders", cmd_reminders))
    app.add_handler(CommandHandler("quiet_hours", cmd_quiet_hours))
    app.add_handler(CallbackQueryHandler(handle_callback))

    return app

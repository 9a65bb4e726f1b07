import asyncio
import logging
from typing import Optional

import discord
from discord.ext import commands
from discord import app_commands

from livequiz_bot.channel.answer_channel import AnswerChannel
from livequiz_bot.channel.transport import InboundMessage, MessageHub
from livequiz_bot.trivia.constants import OPTION_LABELS, TOP_PLAYER_CHOICES
from livequiz_bot.trivia.preferences import PreferenceStore
from livequiz_bot.trivia.questions import QuestionRepository
from livequiz_bot.trivia.session import SessionController
from livequiz_bot.trivia.state import RoundPhase, RoundState
from .config import (
    BOT_TOKEN,
    DEMO_MODE,
    FALLBACK_TIMEOUT_MS,
    LOG_LEVEL,
    PREFERENCES_PATH,
    WIDGET_BASE_URL,
    WIDGET_CHANNEL_ID,
)

logger = logging.getLogger(__name__)

DISCORD_ORIGIN = "https://discord.com"

intents = discord.Intents.default()
intents.message_content = True
intents.members = True

bot = commands.Bot(
    command_prefix="!",
    intents=intents,
    help_command=None,
)

HUB = MessageHub()
PREFERENCES = PreferenceStore(PREFERENCES_PATH)
QUESTIONS = QuestionRepository()

# (guild_id, channel_id) -> running quiz
SESSIONS: dict[tuple[int, int], "HostedQuiz"] = {}


class DiscordSpeech:
    """Speech collaborator: TTS messages in the quiz channel, if enabled."""

    def __init__(self, channel: discord.abc.Messageable):
        self.channel = channel

    def speak(self, text: str) -> None:
        if not PREFERENCES.current.speech.enabled:
            return
        task = asyncio.create_task(self.channel.send(text, tts=True))
        task.add_done_callback(_log_send_failure)


def _log_send_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.warning("Could not send TTS message: %s", task.exception())


def make_answer_channel(discord_channel_id: int) -> AnswerChannel:
    """
    Answers arrive through the chat relay, keyed by the Discord channel id.

    The pull fallback asks the widget for WIDGET_CHANNEL_ID. Without one
    there is no widget channel to ask, so the fallback stays off.
    """
    relay_id = str(discord_channel_id)
    return AnswerChannel(
        WIDGET_CHANNEL_ID or relay_id,
        WIDGET_BASE_URL,
        origin=DISCORD_ORIGIN,
        relay_id=relay_id,
        timeout=FALLBACK_TIMEOUT_MS / 1000 if WIDGET_CHANNEL_ID else None,
        demo_mode=DEMO_MODE,
    )


class HostedQuiz:
    """A session bound to one text channel, hosted by one user (the local player)."""

    def __init__(self, channel: discord.TextChannel, host_id: int):
        self.channel = channel
        self.host_id = host_id
        self._announced_round = None
        self.session = SessionController(
            QUESTIONS,
            PREFERENCES,
            speech=DiscordSpeech(channel),
            transport=HUB,
            channel_factory=self._make_answer_channel,
        )
        self.session.engine.subscribe(self._on_state)

    def _make_answer_channel(self) -> AnswerChannel:
        return make_answer_channel(self.channel.id)

    def _on_state(self, state: RoundState) -> None:
        if state.phase is RoundPhase.COUNTDOWN and state.round_id != self._announced_round:
            self._announced_round = state.round_id
            self._post(format_question(state))
        elif state.phase is RoundPhase.LOCKED and self._announced_round == state.round_id:
            self._announced_round = -state.round_id
            self._post(format_reveal(state))
        elif state.phase is RoundPhase.FINISHED and self.session.summary is not None:
            self._post(format_summary(self.session))
            SESSIONS.pop((self.channel.guild.id, self.channel.id), None)

    def _post(self, text: str) -> None:
        task = asyncio.create_task(self.channel.send(text))
        task.add_done_callback(_log_send_failure)


# -----------------------------
# MESSAGE FORMATTING
# -----------------------------
def format_question(state: RoundState) -> str:
    q = state.question
    lines = [f"❓ **Question {state.index + 1} of {state.total}** ({q.points} pts)", q.text, ""]
    lines += [f"**{o.label}**: {o.text}" for o in q.options]
    lines.append(f"\n⏱️ {state.remaining_seconds}s. Type A, B, C or D in chat.")
    return "\n".join(lines)


def format_reveal(state: RoundState) -> str:
    reveal = state.reveal
    q = state.question
    if reveal.local_correct:
        head = f"✅ Correct! +{reveal.points_awarded} points."
    elif reveal.local_answer is None:
        head = "⏰ Time's up."
    else:
        head = f"❌ Wrong, host picked **{reveal.local_answer}**."
    return f"{head} Correct answer: **{reveal.correct_label}: {q.option_text(reveal.correct_label)}**"


def format_summary(quiz: HostedQuiz) -> str:
    summary = quiz.session.summary
    lines = [f"🎉 **Game over.** Host score: **{summary.local_score}** ({summary.local_correct}/{summary.question_count} correct)"]
    if not summary.top_participants:
        lines.append("Nobody in chat answered. Tough crowd.")
    for i, (name, stat) in enumerate(summary.top_participants, start=1):
        lines.append(f"**{i}. {name}** — {stat.correct_answers}/{stat.total_answers} correct")
    return "\n".join(lines)


def format_status(quiz: HostedQuiz) -> str:
    state = quiz.session.engine.state
    agg = quiz.session.aggregator
    if state.question is None:
        return "No round running."
    pct = agg.percentages()
    bars = " | ".join(f"{label}: {pct[label]}%" for label in OPTION_LABELS)
    first = ", ".join(e.participant_id for e in agg.first_responders) or "nobody yet"
    return (
        f"Question {state.index + 1}/{state.total} · {state.phase.value} · {state.remaining_seconds}s left\n"
        f"{bars} ({agg.total_votes} votes)\nFirst in: {first}\nHost score: {quiz.session.score}"
    )


def settings_changes(timer_seconds: int, top_players: int, tts: Optional[bool] = None) -> dict:
    changes = {"question_timer_seconds": timer_seconds, "top_player_count": top_players}
    # left out, the saved TTS setting stays as it is
    if tts is not None:
        changes["speech"] = {"enabled": tts}
    return changes


def relay_message(message: discord.Message) -> Optional[InboundMessage]:
    """Chat message from the audience of a running quiz, as a hub message."""
    hosted = SESSIONS.get((message.guild.id, message.channel.id))
    # the host answers with /answer, not in chat
    if hosted is None or message.author.id == hosted.host_id:
        return None
    return InboundMessage(
        origin=DISCORD_ORIGIN,
        data={
            "cid": str(message.channel.id),
            "messages": [
                {
                    "user": message.author.display_name,
                    "id": message.id,
                    "text": message.content,
                }
            ],
        },
    )


def _quiz_for(interaction: discord.Interaction):
    if interaction.guild is None or interaction.channel is None:
        return None
    return SESSIONS.get((interaction.guild.id, interaction.channel.id))


# -----------------------------
# BOT EVENTS
# -----------------------------
@bot.event
async def on_ready():
    logger.info("Logged in as %s (ID: %s)", bot.user, bot.user.id)

    try:
        synced = await bot.tree.sync()
        logger.info("Synced %d app commands.", len(synced))
    except Exception:
        logger.exception("Error syncing app commands")


# -----------------------------
# COMMANDS
# -----------------------------
@bot.tree.command(name="quiz", description="Start a quiz in this channel. You play as host.")
async def quiz(interaction: discord.Interaction):
    if interaction.guild is None or interaction.channel is None:
        await interaction.response.send_message(
            "I can only run quizzes inside a server text channel.",
            ephemeral=True,
        )
        return

    key = (interaction.guild.id, interaction.channel.id)
    existing = SESSIONS.get(key)
    if existing and existing.session.is_running:
        await interaction.response.send_message(
            "There’s already a quiz running in this channel.",
            ephemeral=True,
        )
        return

    hosted = HostedQuiz(interaction.channel, interaction.user.id)
    SESSIONS[key] = hosted

    await interaction.response.send_message(
        f"🎬 Starting a quiz with **{len(QUESTIONS)} questions**. "
        f"{interaction.user.mention} answers with `/answer`, everyone else types A/B/C/D."
    )
    hosted.session.start()


@bot.tree.command(name="answer", description="Host's answer for the current question.")
@app_commands.choices(
    choice=[app_commands.Choice(name=label, value=label) for label in OPTION_LABELS]
)
async def answer(interaction: discord.Interaction, choice: app_commands.Choice[str]):
    hosted = _quiz_for(interaction)
    if hosted is None or not hosted.session.is_running:
        await interaction.response.send_message("No quiz running here.", ephemeral=True)
        return
    if interaction.user.id != hosted.host_id:
        await interaction.response.send_message(
            "Only the host answers with `/answer`. Type your letter in chat instead.",
            ephemeral=True,
        )
        return

    accepted = hosted.session.submit_answer(choice.value)
    await interaction.response.send_message(
        f"Locked in **{choice.value}**." if accepted else "Too late, this round is already locked.",
        ephemeral=True,
    )


@bot.tree.command(name="quiz_status", description="Live vote split for the current question.")
async def quiz_status(interaction: discord.Interaction):
    hosted = _quiz_for(interaction)
    if hosted is None:
        await interaction.response.send_message("No quiz running here.", ephemeral=True)
        return
    await interaction.response.send_message(format_status(hosted), ephemeral=True)


@bot.tree.command(name="quiz_stop", description="Stop the quiz in this channel.")
async def quiz_stop(interaction: discord.Interaction):
    hosted = _quiz_for(interaction)
    if hosted is None:
        await interaction.response.send_message("No quiz running here.", ephemeral=True)
        return

    hosted.session.restart()
    SESSIONS.pop((interaction.guild.id, interaction.channel.id), None)
    await interaction.response.send_message("⛔ **Quiz stopped.**")


@bot.tree.command(name="quiz_settings", description="Question timer and leaderboard size.")
@app_commands.choices(
    top_players=[app_commands.Choice(name=str(n), value=n) for n in TOP_PLAYER_CHOICES]
)
async def quiz_settings(
    interaction: discord.Interaction,
    timer_seconds: app_commands.Range[int, 10, 120],
    top_players: app_commands.Choice[int],
    tts: Optional[bool] = None,
):
    try:
        prefs = PREFERENCES.save(**settings_changes(timer_seconds, top_players.value, tts))
    except ValueError as e:
        await interaction.response.send_message(str(e), ephemeral=True)
        return

    await interaction.response.send_message(
        f"⚙️ Timer **{prefs.question_timer_seconds}s**, top **{prefs.top_player_count}**, "
        f"TTS {'on' if prefs.speech.enabled else 'off'}. Applies from the next question.",
        ephemeral=True,
    )


# -----------------------------
# MESSAGE LISTENER
# -----------------------------
@bot.event
async def on_message(message: discord.Message):
    if message.author.bot or message.guild is None:
        return

    relayed = relay_message(message)
    if relayed is not None:
        HUB.publish(relayed)

    await bot.process_commands(message)


# -----------------------------
# ENTRY POINT
# -----------------------------
def main():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    if not BOT_TOKEN:
        raise ValueError("BOT_TOKEN is missing. Add it to .env or environment variables.")
    bot.run(BOT_TOKEN, log_handler=None)


if __name__ == "__main__":
    main()

"""
Discord front end for the trivia game.

Every Discord user gets an independent game, settings and stats. The bot only
reads SessionView projections and forwards button presses to the engine.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

import aiohttp
import discord
from discord import app_commands
from discord.ext import commands

from .config_manager import AppConfig, Settings
from .data_manager import DataManager
from .exceptions import InvalidSessionStateError, NoQuestionsError
from .game_session import (
    ANSWERED,
    EXPIRED,
    QUESTION_STARTED,
    SESSION_ABANDONED,
    SESSION_ENDED,
    SESSION_RESET,
    TICK,
    GameSession,
    SessionView,
)
from .models import AnswerState, Difficulty
from .question_source import FallbackQuestionSource, OpenTriviaSource, QuestionSource
from .stats_recorder import StatsRecorder

logger = logging.getLogger(__name__)

COLOR_OK = 0x00ff00
COLOR_WARN = 0xff6600
COLOR_ALERT = 0xff0000
COLOR_INFO = 0x6699ff

BUTTON_LABEL_LIMIT = 80
DIFFICULTY_CHOICES = [
    app_commands.Choice(name=difficulty.value, value=difficulty.value)
    for difficulty in Difficulty
]


def progress_bar(percent: float, width: int = 10) -> str:
    """Render a percentage as a text bar."""
    filled = max(0, min(width, int(round(percent / 100 * width))))
    return "▰" * filled + "▱" * (width - filled)


def truncate_label(text: str, limit: int = BUTTON_LABEL_LIMIT) -> str:
    return text if len(text) <= limit else text[:limit - 1] + "…"


def build_question_embed(view: SessionView, sound_enabled: bool = True) -> discord.Embed:
    """Embed for an unanswered question with its countdown."""
    # Change color based on remaining time
    if view.time_left > view.timer_seconds // 2:
        color = COLOR_OK
        timer_emoji = "⏱️"
        footer_text = "Pick an answer before the time runs out"
    elif view.time_left > 1:
        color = COLOR_WARN
        timer_emoji = "⚠️"
        footer_text = "⚡ Time running out!"
    else:
        color = COLOR_ALERT
        timer_emoji = "🚨"
        footer_text = "🔔 Final second!" if sound_enabled else "Final second!"

    embed = discord.Embed(
        title=f"🎯 Question {view.question_number}/{view.total_questions}",
        description=view.question_text,
        color=color
    )
    embed.add_field(
        name=f"{timer_emoji} Time Remaining",
        value=f"{view.time_left} second{'s' if view.time_left != 1 else ''}",
        inline=True
    )
    embed.add_field(name="🏆 Score", value=str(view.score), inline=True)
    embed.add_field(name="📶 Difficulty", value=view.difficulty or "-", inline=True)
    embed.add_field(
        name="Progress",
        value=f"{progress_bar(view.progress)} {view.progress:.0f}%",
        inline=False
    )
    embed.set_footer(text=footer_text)
    return embed


def build_reveal_embed(view: SessionView) -> discord.Embed:
    """Embed shown once a question is resolved."""
    if view.selected_answer is None:
        title = f"⏰ Time's Up! - Question {view.question_number}/{view.total_questions}"
        color = COLOR_ALERT
    elif view.is_correct:
        title = f"✅ Correct! - Question {view.question_number}/{view.total_questions}"
        color = COLOR_OK
    else:
        title = f"❌ Wrong! - Question {view.question_number}/{view.total_questions}"
        color = COLOR_ALERT

    embed = discord.Embed(title=title, description=view.question_text, color=color)
    if view.selected_answer is not None and not view.is_correct:
        embed.add_field(name="Your Answer", value=view.selected_answer, inline=False)
    embed.add_field(name="✅ Correct Answer", value=f"**{view.revealed_correct_answer}**", inline=False)
    embed.add_field(name="🏆 Score", value=str(view.score), inline=True)

    if view.question_number == view.total_questions:
        embed.set_footer(text="That was the final question")
    else:
        embed.set_footer(text=f"Question {view.question_number + 1} coming up next...")
    return embed


def build_summary_embed(view: SessionView, stats: StatsRecorder) -> discord.Embed:
    """Embed shown when a game ends."""
    new_high = view.score > 0 and view.score >= stats.high_score
    embed = discord.Embed(
        title="🎉 Game Over!",
        description=f"Final score: **{view.score}**" + (", a new high score! 🏅" if new_high else ""),
        color=COLOR_OK
    )
    embed.add_field(
        name="📊 This Game",
        value=f"Questions: {view.total_questions}\nDifficulty: {view.difficulty}",
        inline=True
    )
    embed.add_field(
        name="📈 All Time",
        value=(
            f"High score: {stats.high_score}\n"
            f"Average: {stats.average_score}\n"
            f"Games played: {stats.games_played}"
        ),
        inline=True
    )
    embed.set_footer(text="Thanks for playing! Use /play to start another game.")
    return embed


def build_stats_embed(stats: StatsRecorder, recent: int = 5) -> discord.Embed:
    """Embed with a player's aggregate statistics."""
    embed = discord.Embed(title="📈 Your Stats", color=COLOR_INFO)
    if stats.games_played == 0:
        embed.description = "No games played yet. Use /play to start one!"
        return embed

    embed.add_field(name="🏅 High Score", value=str(stats.high_score), inline=True)
    embed.add_field(name="📊 Average", value=str(stats.average_score), inline=True)
    embed.add_field(name="🎮 Games Played", value=str(stats.games_played), inline=True)

    best = stats.best_game
    if best is not None:
        embed.add_field(
            name="⭐ Best Game",
            value=f"{best.score} points ({best.difficulty}, {best.timestamp[:10]})",
            inline=False
        )

    history = stats.history[-recent:]
    if history:
        lines = [f"{result.timestamp[:10]} · {result.difficulty} · {result.score}" for result in reversed(history)]
        embed.add_field(name="🕘 Recent Games", value="\n".join(lines), inline=False)
    return embed


def build_settings_embed(settings: Settings) -> discord.Embed:
    embed = discord.Embed(title="⚙️ Settings", color=COLOR_INFO)
    embed.description = f"```\n{settings.get_settings_summary()}\n```"
    return embed


def build_message_embed(title: str, message: str, color: int = COLOR_INFO) -> discord.Embed:
    return discord.Embed(title=title, description=message, color=color)


class AnswerView(discord.ui.View):
    """One button per option for a single question; only the owning player may answer."""

    def __init__(
        self,
        session: GameSession,
        player_id: int,
        options,
        question_key=None,
        timeout: Optional[float] = None
    ):
        super().__init__(timeout=timeout)
        self.session = session
        self.player_id = player_id
        self.question_key = question_key
        for index, option in enumerate(options):
            button = discord.ui.Button(
                label=truncate_label(option),
                style=discord.ButtonStyle.primary,
                row=index // 5
            )
            button.callback = self._make_callback(option)
            self.add_item(button)

    def _make_callback(self, option: str):
        async def callback(interaction: discord.Interaction):
            if interaction.user.id != self.player_id:
                await interaction.response.send_message(
                    "This isn't your game. Use /play to start your own!",
                    ephemeral=True
                )
                return
            try:
                if not self.session.submit_answer(option, question_key=self.question_key):
                    logger.debug(f"Ignoring answer for player {self.player_id}: question already resolved")
            except InvalidSessionStateError:
                logger.debug(f"Ignoring answer for player {self.player_id}: no game in progress")
            await interaction.response.defer()
        return callback

    def disable(self) -> None:
        for item in self.children:
            item.disabled = True

    def retire(self) -> None:
        """Disable every button and stop listening for presses."""
        self.disable()
        self.stop()


@dataclass
class PlayerContext:
    """Everything the bot keeps for one player."""
    player_id: int
    settings: Settings
    stats: StatsRecorder
    session: GameSession
    channel: Optional[discord.abc.Messageable] = None
    message: Optional[discord.Message] = None
    answer_view: Optional[AnswerView] = None
    render_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class TriviaBot(commands.Bot):
    """Discord bot that runs single-player trivia games"""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        data_manager: Optional[DataManager] = None,
        question_source: Optional[QuestionSource] = None
    ):
        # Minimal intents for slash commands
        intents = discord.Intents.none()
        intents.guilds = True

        self.app_config = config or AppConfig()
        super().__init__(
            command_prefix=self.app_config.command_prefix,
            intents=intents,
            help_command=None
        )

        self.data_manager = data_manager or DataManager(self.app_config.data_directory)
        self.question_source = question_source
        self.http_session: Optional[aiohttp.ClientSession] = None
        self.players: Dict[int, PlayerContext] = {}
        self._render_tasks: Set[asyncio.Task] = set()

    async def setup_hook(self):
        """Called when the bot is starting up"""
        logger.info("Setting up bot components...")

        if self.question_source is None:
            self.http_session = aiohttp.ClientSession()
            source = OpenTriviaSource(
                api_url=self.app_config.api_url,
                timeout=self.app_config.request_timeout,
                session=self.http_session
            )
            if self.app_config.use_fallback_questions:
                source = FallbackQuestionSource(source)
            self.question_source = source

        self.setup_commands()
        logger.info("Bot setup completed successfully")

    async def close(self):
        for context in self.players.values():
            context.session.reset()
        if self.http_session is not None and not self.http_session.closed:
            await self.http_session.close()
        await super().close()

    def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="play", description="Start a new trivia game")
        @app_commands.describe(difficulty="Question difficulty (defaults to your setting)")
        @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
        async def play_command(interaction: discord.Interaction, difficulty: Optional[app_commands.Choice[str]] = None):
            await self.handle_play(interaction, difficulty.value if difficulty else None)

        @self.tree.command(name="quit", description="Abandon your current game")
        async def quit_command(interaction: discord.Interaction):
            await self.handle_quit(interaction)

        @self.tree.command(name="difficulty", description="Set your default difficulty")
        @app_commands.choices(level=DIFFICULTY_CHOICES)
        async def difficulty_command(interaction: discord.Interaction, level: app_commands.Choice[str]):
            await self.handle_difficulty(interaction, level.value)

        @self.tree.command(name="sound", description="Toggle sound cues")
        async def sound_command(interaction: discord.Interaction):
            await self.handle_sound(interaction)

        @self.tree.command(name="settings", description="Show your settings")
        async def settings_command(interaction: discord.Interaction):
            await self.handle_settings(interaction)

        @self.tree.command(name="reset_settings", description="Reset your settings to defaults")
        async def reset_settings_command(interaction: discord.Interaction):
            await self.handle_reset_settings(interaction)

        @self.tree.command(name="stats", description="Show your statistics")
        async def stats_command(interaction: discord.Interaction):
            await self.handle_stats(interaction)

        @self.tree.command(name="clear_stats", description="Erase your statistics")
        async def clear_stats_command(interaction: discord.Interaction):
            await self.handle_clear_stats(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user} in {len(self.guilds)} guilds")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    def get_player(self, player_id: int) -> PlayerContext:
        """
        Get or lazily create the context for a player.

        Args:
            player_id: Discord user id

        Returns:
            PlayerContext with persisted settings and stats attached
        """
        context = self.players.get(player_id)
        if context is not None:
            return context

        profile_id = str(player_id)
        settings = self.data_manager.load_settings(profile_id)
        stats = self.data_manager.load_stats(profile_id)
        self.data_manager.attach(profile_id, settings, stats)

        session = GameSession(
            self.question_source,
            settings,
            stats,
            question_count=self.app_config.questions_per_game,
            tick_interval=self.app_config.tick_interval,
            answer_feedback_delay=self.app_config.answer_feedback_delay,
            expiry_feedback_delay=self.app_config.expiry_feedback_delay,
            session_id=profile_id
        )
        context = PlayerContext(player_id=player_id, settings=settings, stats=stats, session=session)
        session.add_listener(lambda event, view: self._on_session_event(context, event, view))
        self.players[player_id] = context
        logger.info(f"Created player context for {player_id}")
        return context

    def _on_session_event(self, context: PlayerContext, event: str, view: SessionView) -> None:
        if event in (SESSION_ABANDONED, SESSION_RESET):
            self._retire_question(context)
            return
        if event not in (QUESTION_STARTED, TICK, ANSWERED, EXPIRED, SESSION_ENDED):
            return
        # Skip a tick when the previous render is still in flight
        if event == TICK and context.render_lock.locked():
            return
        self._spawn_render(self._render(context, event, view))

    def _spawn_render(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._render_tasks.add(task)
        task.add_done_callback(self._render_tasks.discard)

    def _retire_question(self, context: PlayerContext) -> None:
        """Take the buttons of an abandoned or reset game out of play."""
        answer_view, message = context.answer_view, context.message
        context.answer_view = None
        context.message = None
        if answer_view is None:
            return
        answer_view.retire()
        if message is not None:
            self._spawn_render(self._show_retired(context, message, answer_view))

    async def _show_retired(self, context: PlayerContext, message: discord.Message, answer_view: AnswerView) -> None:
        async with context.render_lock:
            try:
                await message.edit(view=answer_view)
            except discord.HTTPException as e:
                logger.error(f"Failed to disable buttons for player {context.player_id}: {e}")

    async def _render(self, context: PlayerContext, event: str, view: SessionView) -> None:
        if context.channel is None:
            return
        async with context.render_lock:
            try:
                if event == QUESTION_STARTED:
                    if view.question_key != context.session.question_key:
                        # The game moved on before this question could be shown
                        return
                    context.answer_view = AnswerView(
                        context.session,
                        context.player_id,
                        view.options,
                        question_key=view.question_key,
                        timeout=view.timer_seconds * self.app_config.tick_interval + 30
                    )
                    context.message = await context.channel.send(
                        embed=build_question_embed(view, context.settings.sound_enabled),
                        view=context.answer_view
                    )
                elif event == TICK and context.message is not None:
                    if view.answer_state is AnswerState.UNANSWERED:
                        await context.message.edit(
                            embed=build_question_embed(view, context.settings.sound_enabled)
                        )
                elif event in (ANSWERED, EXPIRED) and context.message is not None:
                    if context.answer_view is not None:
                        context.answer_view.retire()
                    await context.message.edit(embed=build_reveal_embed(view), view=context.answer_view)
                elif event == SESSION_ENDED:
                    await context.channel.send(embed=build_summary_embed(view, context.stats))
                    context.message = None
                    context.answer_view = None
            except discord.HTTPException as e:
                # Rendering problems must not break the game
                logger.error(f"Failed to render {event} for player {context.player_id}: {e}")

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        embed = discord.Embed(
            title="🎯 Trivia Commands",
            description="Answer multiple-choice questions against the clock",
            color=COLOR_OK
        )
        embed.add_field(
            name="🎮 Game",
            value=(
                "`/play [difficulty]` - Start a new game\n"
                "`/quit` - Abandon your current game"
            ),
            inline=False
        )
        embed.add_field(
            name="⚙️ Settings",
            value=(
                "`/difficulty <level>` - Set your default difficulty\n"
                "`/sound` - Toggle sound cues\n"
                "`/settings` - Show your settings\n"
                "`/reset_settings` - Restore defaults"
            ),
            inline=False
        )
        embed.add_field(
            name="📈 Stats",
            value="`/stats` - Show your statistics\n`/clear_stats` - Erase your statistics",
            inline=False
        )
        embed.add_field(
            name="🏆 Scoring",
            value="100 points per correct answer + 10 per second left, times the difficulty multiplier",
            inline=False
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_play(self, interaction: discord.Interaction, difficulty: Optional[str] = None):
        """Handle /play command"""
        context = self.get_player(interaction.user.id)
        context.channel = interaction.channel
        await interaction.response.defer(thinking=True)

        try:
            started = await context.session.start_session(difficulty)
        except NoQuestionsError as e:
            logger.warning(f"Could not start game for player {context.player_id}: {e}")
            await self.send_error_response(
                interaction,
                "Could not load questions right now. Please try again in a moment.",
                "❌ Could Not Start"
            )
            return

        if not started:
            # A newer /play or /quit superseded this request
            await self.send_info_response(interaction, "That game request was replaced by a newer one.")
            return

        view = context.session.view()
        await interaction.followup.send(
            embed=build_message_embed(
                "🚀 Game On!",
                f"{view.total_questions} {view.difficulty} questions, "
                f"{view.timer_seconds}s each. Good luck!",
                COLOR_OK
            )
        )

    async def handle_quit(self, interaction: discord.Interaction):
        """Handle /quit command"""
        context = self.players.get(interaction.user.id)
        if context is None or not context.session.abandon():
            await self.send_info_response(interaction, "You have no game in progress.")
            return
        await interaction.response.send_message(
            embed=build_message_embed("🛑 Game Abandoned", "Your game was abandoned and not recorded."),
            ephemeral=True
        )

    async def handle_difficulty(self, interaction: discord.Interaction, level: str):
        """Handle /difficulty command"""
        result = self.get_player(interaction.user.id).settings.set_difficulty(level)
        if result['success']:
            await interaction.response.send_message(result['user_message'], ephemeral=True)
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Invalid Difficulty")

    async def handle_sound(self, interaction: discord.Interaction):
        """Handle /sound command"""
        result = self.get_player(interaction.user.id).settings.toggle_sound()
        await interaction.response.send_message(result['user_message'], ephemeral=True)

    async def handle_settings(self, interaction: discord.Interaction):
        """Handle /settings command"""
        settings = self.get_player(interaction.user.id).settings
        await interaction.response.send_message(embed=build_settings_embed(settings), ephemeral=True)

    async def handle_reset_settings(self, interaction: discord.Interaction):
        """Handle /reset_settings command"""
        settings = self.get_player(interaction.user.id).settings
        settings.reset_to_defaults()
        await interaction.response.send_message(embed=build_settings_embed(settings), ephemeral=True)

    async def handle_stats(self, interaction: discord.Interaction):
        """Handle /stats command"""
        stats = self.get_player(interaction.user.id).stats
        await interaction.response.send_message(embed=build_stats_embed(stats), ephemeral=True)

    async def handle_clear_stats(self, interaction: discord.Interaction):
        """Handle /clear_stats command"""
        self.get_player(interaction.user.id).stats.clear_stats()
        await self.send_info_response(interaction, "Your statistics have been cleared.", "🧹 Stats Cleared")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        await self._send_ephemeral(interaction, build_message_embed(title, message, COLOR_ALERT))

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        await self._send_ephemeral(interaction, build_message_embed(title, message, COLOR_INFO))

    async def _send_ephemeral(self, interaction: discord.Interaction, embed: discord.Embed):
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send response to user")


async def run_bot(config: AppConfig):
    """Run the bot with proper error handling"""
    if not config.token:
        logger.error("No Discord bot token provided")
        return

    bot = TriviaBot(config)
    try:
        logger.info("Starting Discord Trivia Bot...")
        await bot.start(config.token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()

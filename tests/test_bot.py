"""
Unit tests for the Discord front end with mocked Discord objects.
"""
import asyncio
import dataclasses
import logging
import tempfile
import unittest

from trivia_game.bot import (
    COLOR_ALERT,
    COLOR_OK,
    COLOR_WARN,
    AnswerView,
    TriviaBot,
    build_question_embed,
    build_reveal_embed,
    build_stats_embed,
    build_summary_embed,
    progress_bar,
    truncate_label,
)
from trivia_game.config_manager import AppConfig, Settings
from trivia_game.data_manager import DataManager
from trivia_game.exceptions import FetchError, FetchErrorReason
from trivia_game.game_session import GameSession, SessionView
from trivia_game.models import AnswerState, Difficulty, GameStatus
from trivia_game.stats_recorder import StatsRecorder
from tests.test_fixtures import AsyncTestHelpers, FakeQuestionSource, MockDiscordObjects


def make_view(**overrides) -> SessionView:
    view = SessionView(
        status=GameStatus.PLAYING,
        difficulty="medium",
        question_text="What is 2+2?",
        options=("3", "4", "5", "6"),
        question_number=1,
        total_questions=4,
        time_left=6,
        timer_seconds=6,
        answer_state=AnswerState.UNANSWERED,
        selected_answer=None,
        revealed_correct_answer=None,
        score=0,
        progress=0.0,
        is_loading=False,
    )
    return dataclasses.replace(view, **overrides)


class TestFormatting(unittest.TestCase):
    """Test cases for the text helpers and embed builders."""

    def test_progress_bar(self):
        self.assertEqual(progress_bar(0), "▱" * 10)
        self.assertEqual(progress_bar(50), "▰" * 5 + "▱" * 5)
        self.assertEqual(progress_bar(100), "▰" * 10)
        self.assertEqual(progress_bar(150), "▰" * 10)

    def test_truncate_label(self):
        self.assertEqual(truncate_label("Paris"), "Paris")
        label = truncate_label("x" * 100)
        self.assertEqual(len(label), 80)
        self.assertTrue(label.endswith("…"))

    def test_question_embed_color_follows_time_left(self):
        self.assertEqual(build_question_embed(make_view(time_left=6)).color.value, COLOR_OK)
        self.assertEqual(build_question_embed(make_view(time_left=2)).color.value, COLOR_WARN)
        self.assertEqual(build_question_embed(make_view(time_left=1)).color.value, COLOR_ALERT)

    def test_question_embed_content(self):
        embed = build_question_embed(make_view(time_left=1, score=210), sound_enabled=False)

        self.assertEqual(embed.title, "🎯 Question 1/4")
        self.assertEqual(embed.description, "What is 2+2?")
        self.assertEqual(embed.fields[0].value, "1 second")
        self.assertEqual(embed.fields[1].value, "210")
        self.assertNotIn("🔔", embed.footer.text)

    def test_reveal_embed_variants(self):
        resolved = dict(answer_state=AnswerState.ANSWERED, revealed_correct_answer="4")

        timeout = build_reveal_embed(make_view(time_left=0, **resolved))
        correct = build_reveal_embed(make_view(selected_answer="4", **resolved))
        wrong = build_reveal_embed(make_view(selected_answer="5", **resolved))

        self.assertTrue(timeout.title.startswith("⏰ Time's Up!"))
        self.assertTrue(correct.title.startswith("✅ Correct!"))
        self.assertTrue(wrong.title.startswith("❌ Wrong!"))
        self.assertIn("5", [field.value for field in wrong.fields])
        self.assertIn("**4**", [field.value for field in timeout.fields])

    def test_reveal_embed_on_last_question(self):
        view = make_view(
            question_number=4,
            answer_state=AnswerState.ANSWERED,
            selected_answer="4",
            revealed_correct_answer="4"
        )
        self.assertEqual(build_reveal_embed(view).footer.text, "That was the final question")

    def test_summary_embed_flags_new_high_score(self):
        stats = StatsRecorder()
        stats.record_game(210, "medium")

        embed = build_summary_embed(make_view(status=GameStatus.ENDED, score=210), stats)
        self.assertIn("new high score", embed.description)

        stats.record_game(500, "hard")
        embed = build_summary_embed(make_view(status=GameStatus.ENDED, score=210), stats)
        self.assertNotIn("new high score", embed.description)

    def test_stats_embed(self):
        stats = StatsRecorder()
        self.assertIn("No games played yet", build_stats_embed(stats).description)

        stats.record_game(100, "easy")
        stats.record_game(300, "hard")
        embed = build_stats_embed(stats)
        values = {field.name: field.value for field in embed.fields}

        self.assertEqual(values["🏅 High Score"], "300")
        self.assertEqual(values["📊 Average"], "200")
        self.assertEqual(values["🎮 Games Played"], "2")
        self.assertTrue(values["⭐ Best Game"].startswith("300 points (hard"))


class TestAnswerView(unittest.IsolatedAsyncioTestCase):
    """Test cases for the answer buttons."""

    async def asyncSetUp(self):
        logging.disable(logging.CRITICAL)
        self.session = GameSession(FakeQuestionSource(), Settings(), StatsRecorder(), tick_interval=60.0)
        self.addCleanup(self.session.reset)
        await self.session.start_session(Difficulty.MEDIUM)
        self.view = AnswerView(self.session, 67890, self.session.view().options)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    async def test_one_button_per_option(self):
        labels = [item.label for item in self.view.children]
        self.assertEqual(labels, list(self.session.view().options))

    async def test_owner_answer_is_submitted(self):
        button = next(item for item in self.view.children if item.label == "4")
        interaction = MockDiscordObjects.create_mock_interaction(user_id=67890)

        await button.callback(interaction)

        self.assertEqual(self.session.state.answer_state, AnswerState.ANSWERED)
        self.assertEqual(self.session.state.selected_answer, "4")
        interaction.response.defer.assert_awaited_once()

    async def test_other_player_is_rejected(self):
        interaction = MockDiscordObjects.create_mock_interaction(user_id=1)

        await self.view.children[0].callback(interaction)

        self.assertEqual(self.session.state.answer_state, AnswerState.UNANSWERED)
        interaction.response.send_message.assert_awaited_once()
        self.assertTrue(interaction.response.send_message.call_args[1]['ephemeral'])

    async def test_press_after_game_over_is_ignored(self):
        self.session.reset()
        interaction = MockDiscordObjects.create_mock_interaction(user_id=67890)

        await self.view.children[0].callback(interaction)

        interaction.response.defer.assert_awaited_once()

    async def test_disable(self):
        self.view.disable()
        self.assertTrue(all(item.disabled for item in self.view.children))


class TestTriviaBot(unittest.IsolatedAsyncioTestCase):
    """Test cases for the command handlers."""

    async def asyncSetUp(self):
        logging.disable(logging.CRITICAL)
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.config = AppConfig(
            data_directory=self.temp_dir.name,
            questions_per_game=2,
            tick_interval=60.0,
            answer_feedback_delay=60.0,
            expiry_feedback_delay=60.0
        )
        self.source = FakeQuestionSource()
        self.bot = TriviaBot(self.config, question_source=self.source)

    async def asyncTearDown(self):
        for context in self.bot.players.values():
            context.session.reset()
        logging.disable(logging.NOTSET)

    async def test_get_player_is_cached_and_loads_persisted_settings(self):
        saved = Settings()
        saved.set_difficulty("hard")
        DataManager(self.temp_dir.name).save_settings("42", saved)

        context = self.bot.get_player(42)

        self.assertIs(self.bot.get_player(42), context)
        self.assertEqual(context.settings.difficulty, Difficulty.HARD)
        self.assertEqual(context.session.question_count, 2)

    async def test_players_are_independent(self):
        self.bot.get_player(1).settings.set_difficulty("easy")
        self.assertEqual(self.bot.get_player(2).settings.difficulty, Difficulty.MEDIUM)

    async def test_play_starts_game_and_renders_question(self):
        interaction = MockDiscordObjects.create_mock_interaction(user_id=42)

        await self.bot.handle_play(interaction, "easy")

        context = self.bot.get_player(42)
        self.assertEqual(context.session.status, GameStatus.PLAYING)
        self.assertEqual(self.source.calls, [(Difficulty.EASY, 2)])
        interaction.response.defer.assert_awaited_once()
        interaction.followup.send.assert_awaited_once()

        channel = interaction.channel
        await AsyncTestHelpers.wait_for(lambda: channel.send.await_count == 1)
        kwargs = channel.send.call_args[1]
        self.assertEqual(kwargs['embed'].title, "🎯 Question 1/2")
        self.assertIsInstance(kwargs['view'], AnswerView)

    async def test_answer_renders_reveal(self):
        interaction = MockDiscordObjects.create_mock_interaction(user_id=42)
        await self.bot.handle_play(interaction)
        context = self.bot.get_player(42)
        await AsyncTestHelpers.wait_for(lambda: context.message is not None)

        context.session.submit_answer(context.session.current_question.correct_answer)

        await AsyncTestHelpers.wait_for(lambda: context.message.edit.await_count == 1)
        embed = context.message.edit.call_args[1]['embed']
        self.assertTrue(embed.title.startswith("✅ Correct!"))
        self.assertTrue(all(item.disabled for item in context.answer_view.children))

    async def test_play_reports_fetch_failure(self):
        self.source.error = FetchError(FetchErrorReason.NETWORK, "down")
        interaction = MockDiscordObjects.create_mock_interaction(user_id=42)
        interaction.response.is_done.return_value = True

        await self.bot.handle_play(interaction)

        self.assertEqual(self.bot.get_player(42).session.status, GameStatus.IDLE)
        embed = interaction.followup.send.call_args[1]['embed']
        self.assertEqual(embed.title, "❌ Could Not Start")

    async def test_quit_without_game(self):
        interaction = MockDiscordObjects.create_mock_interaction(user_id=42)

        await self.bot.handle_quit(interaction)

        embed = interaction.response.send_message.call_args[1]['embed']
        self.assertIn("no game in progress", embed.description)

    async def test_quit_abandons_game_without_recording(self):
        interaction = MockDiscordObjects.create_mock_interaction(user_id=42)
        await self.bot.handle_play(interaction)

        await self.bot.handle_quit(MockDiscordObjects.create_mock_interaction(user_id=42))

        context = self.bot.get_player(42)
        self.assertEqual(context.session.status, GameStatus.IDLE)
        self.assertEqual(context.stats.games_played, 0)

    async def test_quit_disables_question_buttons(self):
        await self.bot.handle_play(MockDiscordObjects.create_mock_interaction(user_id=42))
        context = self.bot.get_player(42)
        await AsyncTestHelpers.wait_for(lambda: context.message is not None)
        answer_view, message = context.answer_view, context.message

        await self.bot.handle_quit(MockDiscordObjects.create_mock_interaction(user_id=42))

        self.assertIsNone(context.answer_view)
        self.assertIsNone(context.message)
        self.assertTrue(answer_view.is_finished())
        self.assertTrue(all(item.disabled for item in answer_view.children))
        await AsyncTestHelpers.wait_for(lambda: message.edit.await_count == 1)
        self.assertIs(message.edit.call_args[1]['view'], answer_view)

    async def test_buttons_from_previous_game_cannot_answer(self):
        await self.bot.handle_play(MockDiscordObjects.create_mock_interaction(user_id=42))
        context = self.bot.get_player(42)
        await AsyncTestHelpers.wait_for(lambda: context.message is not None)
        old_view, old_message = context.answer_view, context.message

        await self.bot.handle_play(MockDiscordObjects.create_mock_interaction(user_id=42))
        await AsyncTestHelpers.wait_for(lambda: context.message is not None and context.message is not old_message)

        self.assertTrue(old_view.is_finished())
        self.assertTrue(all(item.disabled for item in old_view.children))
        await AsyncTestHelpers.wait_for(lambda: old_message.edit.await_count == 1)
        self.assertIs(old_message.edit.call_args[1]['view'], old_view)

        correct = context.session.current_question.correct_answer
        button = next(item for item in old_view.children if item.label == correct)
        interaction = MockDiscordObjects.create_mock_interaction(user_id=42)
        await button.callback(interaction)

        self.assertEqual(context.session.state.current_index, 0)
        self.assertEqual(context.session.state.answer_state, AnswerState.UNANSWERED)
        self.assertEqual(context.session.state.score, 0)
        interaction.response.defer.assert_awaited_once()
        self.assertIsNot(context.answer_view, old_view)
        self.assertFalse(context.answer_view.is_finished())

    async def test_difficulty_command(self):
        interaction = MockDiscordObjects.create_mock_interaction(user_id=42)

        await self.bot.handle_difficulty(interaction, "hard")

        self.assertEqual(self.bot.get_player(42).settings.difficulty, Difficulty.HARD)
        self.assertIn("hard", interaction.response.send_message.call_args[0][0])
        reloaded = DataManager(self.temp_dir.name).load_settings("42")
        self.assertEqual(reloaded.difficulty, Difficulty.HARD)

    async def test_invalid_difficulty_command(self):
        interaction = MockDiscordObjects.create_mock_interaction(user_id=42)

        await self.bot.handle_difficulty(interaction, "nightmare")

        embed = interaction.response.send_message.call_args[1]['embed']
        self.assertEqual(embed.title, "❌ Invalid Difficulty")

    async def test_sound_command_toggles(self):
        interaction = MockDiscordObjects.create_mock_interaction(user_id=42)

        await self.bot.handle_sound(interaction)

        self.assertFalse(self.bot.get_player(42).settings.sound_enabled)

    async def test_clear_stats_command(self):
        context = self.bot.get_player(42)
        context.stats.record_game(100, "easy")

        await self.bot.handle_clear_stats(MockDiscordObjects.create_mock_interaction(user_id=42))

        self.assertEqual(context.stats.games_played, 0)
        self.assertEqual(DataManager(self.temp_dir.name).load_stats("42").games_played, 0)

    async def test_stats_command(self):
        self.bot.get_player(42).stats.record_game(150, "medium")
        interaction = MockDiscordObjects.create_mock_interaction(user_id=42)

        await self.bot.handle_stats(interaction)

        embed = interaction.response.send_message.call_args[1]['embed']
        self.assertEqual(embed.title, "📈 Your Stats")


if __name__ == '__main__':
    unittest.main()

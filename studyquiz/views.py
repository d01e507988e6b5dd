"""
Discord rendering for study packs and the timed quiz.
Everything here is a pure function of engine snapshots; the engine never
knows about colours, buttons or messages.
"""
import asyncio
import logging
from typing import Callable, List, Optional

import discord

from .errors import InvalidOptionError
from .models import QuizPhase, QuizResult, QuizSnapshot, StudyResult
from .quiz_engine import TimedQuizEngine

logger = logging.getLogger(__name__)

LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
BUTTON_LABEL_LIMIT = 80
EMBED_DESCRIPTION_LIMIT = 4096
PASSING_PERCENTAGE = 70

COLOR_INFO = 0x6699ff
COLOR_OK = 0x00ff00
COLOR_WARN = 0xff6600
COLOR_ERROR = 0xff0000
COLOR_GOLD = 0xffcc00


def option_letter(index: int) -> str:
    return LETTERS[index] if index < len(LETTERS) else str(index + 1)


def option_style(option: str, snapshot: QuizSnapshot) -> discord.ButtonStyle:
    """
    Button style for an option.

    Before an answer is locked every option is neutral. Afterwards the
    correct answer turns green, a wrong pick turns red, the rest stay grey.
    """
    if not snapshot.answer_locked or snapshot.question is None:
        return discord.ButtonStyle.secondary
    if option == snapshot.question.correct_answer:
        return discord.ButtonStyle.success
    if option == snapshot.selected_answer:
        return discord.ButtonStyle.danger
    return discord.ButtonStyle.secondary


def option_marker(option: str, snapshot: QuizSnapshot) -> str:
    if not snapshot.answer_locked or snapshot.question is None:
        return ""
    if option == snapshot.question.correct_answer:
        return " ✅"
    if option == snapshot.selected_answer:
        return " ❌"
    return ""


def timer_color(remaining_seconds: int) -> int:
    if remaining_seconds > 5:
        return COLOR_OK
    if remaining_seconds > 2:
        return COLOR_WARN
    return COLOR_ERROR


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 1] + "…"


def build_intro_embed(total_questions: int, seconds_per_question: int) -> discord.Embed:
    embed = discord.Embed(
        title="🏆 Quick Quiz",
        description=f"{total_questions} questions • {seconds_per_question} seconds each",
        color=COLOR_INFO
    )
    embed.add_field(
        name="Ready?",
        value="Read each question carefully before choosing an answer. Press **Start quiz** when you are ready.",
        inline=False
    )
    return embed


def build_question_embed(snapshot: QuizSnapshot) -> discord.Embed:
    question = snapshot.question
    lines = []
    for index, option in enumerate(question.options):
        lines.append(f"**{option_letter(index)}.** {option}{option_marker(option, snapshot)}")
    description = _truncate(
        f"{question.question}\n\n" + "\n".join(lines), EMBED_DESCRIPTION_LIMIT
    )

    if snapshot.timed_out:
        title = f"⏰ Time's up! - Question {snapshot.question_number}/{snapshot.total}"
        color = COLOR_ERROR
    elif snapshot.answer_locked:
        correct = question.is_correct(snapshot.selected_answer)
        title = f"{'✅ Correct!' if correct else '❌ Wrong!'} - Question {snapshot.question_number}/{snapshot.total}"
        color = COLOR_OK if correct else COLOR_ERROR
    else:
        title = f"🎯 Question {snapshot.question_number}/{snapshot.total}"
        color = timer_color(snapshot.remaining_seconds)

    embed = discord.Embed(title=title, description=description, color=color)

    remaining = snapshot.remaining_seconds
    timer_emoji = "🚨" if remaining <= 5 else "⏱️"
    embed.add_field(
        name=f"{timer_emoji} Time Remaining",
        value=f"{remaining} second{'s' if remaining != 1 else ''}",
        inline=True
    )
    embed.add_field(name="⭐ Score", value=str(snapshot.score), inline=True)

    if snapshot.answer_locked:
        footer = "Next question coming up..." if snapshot.question_number < snapshot.total else "Calculating your result..."
    elif not snapshot.countdown_running:
        footer = "Get ready..."
    else:
        footer = "Pick an answer before the time runs out"
    embed.set_footer(text=footer)
    return embed


def build_result_embed(result: QuizResult) -> discord.Embed:
    percentage = result.percentage
    passed = percentage >= PASSING_PERCENTAGE
    embed = discord.Embed(
        title="🏆 Finished!",
        description=f"**{result.score}/{result.total}**\n{percentage}% correct",
        color=COLOR_OK if passed else COLOR_WARN
    )
    embed.add_field(
        name="Verdict",
        value="🎉 Excellent!" if passed else "💪 Keep practicing!",
        inline=False
    )
    embed.set_footer(text="Press Play again to retry the quiz")
    return embed


def build_snapshot_embed(snapshot: QuizSnapshot) -> discord.Embed:
    if snapshot.phase is QuizPhase.NOT_STARTED:
        return build_intro_embed(snapshot.total, snapshot.remaining_seconds)
    if snapshot.phase is QuizPhase.FINISHED and snapshot.result is not None:
        return build_result_embed(snapshot.result)
    return build_question_embed(snapshot)


def build_study_embeds(study: StudyResult) -> List[discord.Embed]:
    """Embeds for the summary, keywords, mind map and related media."""
    embeds = []

    summary = discord.Embed(
        title="📄 Summary",
        description=_truncate(study.summary, EMBED_DESCRIPTION_LIMIT),
        color=COLOR_INFO
    )
    if study.source_name:
        summary.set_footer(text=study.source_name)
    if study.keywords:
        summary.add_field(
            name="🔑 Keywords",
            value=_truncate(", ".join(study.keywords), 1024),
            inline=False
        )
    embeds.append(summary)

    if study.mind_map:
        fence_budget = EMBED_DESCRIPTION_LIMIT - len("```mermaid\n\n```")
        embeds.append(discord.Embed(
            title="🧠 Mind Map",
            description=f"```mermaid\n{_truncate(study.mind_map, fence_budget)}\n```",
            color=COLOR_INFO
        ))

    if study.related_videos:
        videos = discord.Embed(title="🎬 Related Videos", color=COLOR_ERROR)
        videos.description = "\n".join(
            f"• [{_truncate(video.title, 200)}]({video.url})" for video in study.related_videos
        )
        if study.related_videos[0].thumbnail_url:
            videos.set_thumbnail(url=study.related_videos[0].thumbnail_url)
        embeds.append(videos)

    if study.related_images:
        images = discord.Embed(title="🖼️ Related Images", color=COLOR_GOLD)
        images.description = "\n".join(
            f"• [{_truncate(image.title, 200)}]({image.url})" for image in study.related_images
        )
        if study.related_images[0].thumbnail_url:
            images.set_image(url=study.related_images[0].thumbnail_url)
        embeds.append(images)

    return embeds


class QuizView(discord.ui.View):
    """
    Interactive quiz message: a start button before and after a run,
    one answer button per option while it is running.
    """

    def __init__(self, engine: TimedQuizEngine):
        super().__init__(timeout=None)
        self.engine = engine
        self.message: Optional[discord.Message] = None
        self._render_lock = asyncio.Lock()
        self._last_rendered: Optional[QuizSnapshot] = None
        self._unsubscribe = engine.subscribe(self.on_engine_update)
        self.render_buttons(engine.snapshot())

    def render_buttons(self, snapshot: QuizSnapshot) -> None:
        self.clear_items()

        if snapshot.phase in (QuizPhase.NOT_STARTED, QuizPhase.FINISHED):
            label = "Start quiz" if snapshot.phase is QuizPhase.NOT_STARTED else "Play again"
            button = discord.ui.Button(label=label, style=discord.ButtonStyle.primary, emoji="▶️")
            button.callback = self._on_start
            self.add_item(button)
            return

        for index, option in enumerate(snapshot.question.options[:25]):
            button = discord.ui.Button(
                label=_truncate(f"{option_letter(index)}. {option}", BUTTON_LABEL_LIMIT),
                style=option_style(option, snapshot),
                disabled=snapshot.answer_locked,
                row=index // 5
            )
            button.callback = self._answer_callback(option)
            self.add_item(button)

    def _answer_callback(self, option: str) -> Callable:
        async def callback(interaction: discord.Interaction):
            await interaction.response.defer()
            try:
                self.engine.select_answer(option)
            except InvalidOptionError as e:
                # A click on a button from a previous question
                logger.info(f"Ignored stale answer click: {e}")
        return callback

    async def _on_start(self, interaction: discord.Interaction):
        await interaction.response.defer()
        self.engine.start()

    async def on_engine_update(self, snapshot: QuizSnapshot) -> None:
        async with self._render_lock:
            # Always draw the newest state, earlier queued updates are stale
            latest = self.engine.snapshot()
            if latest == self._last_rendered:
                return
            self.render_buttons(latest)
            if self.message is None:
                return
            try:
                await self.message.edit(embed=build_snapshot_embed(latest), view=self)
            except discord.HTTPException as e:
                logger.error(f"Failed to update quiz message: {e}")
                return
            self._last_rendered = latest

    def close(self) -> None:
        """Detach from the engine and stop listening for clicks."""
        self._unsubscribe()
        self.stop()

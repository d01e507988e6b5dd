import discord
from discord import app_commands
from discord.ext import commands
import logging
import asyncio
from typing import Dict, Optional
import os
from pathlib import Path

from .config_manager import ConfigManager
from .errors import DocumentError, StudyBotError
from .quiz_controller import QuizController
from .study_service import StudyService
from .views import QuizView, build_snapshot_embed, build_study_embeds

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO, log_directory: str = "logs"):
    """Set up console and file logging for debugging and monitoring."""
    logs_dir = Path(log_directory)
    logs_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),  # Console output
            logging.FileHandler(logs_dir / "bot.log", encoding='utf-8'),  # File output
        ]
    )

    # Set up error-specific logging
    error_handler = logging.FileHandler(logs_dir / "errors.log", encoding='utf-8')
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logging.getLogger().addHandler(error_handler)

    # Reduce discord.py noise
    logging.getLogger('discord').setLevel(logging.WARNING)
    logging.getLogger('discord.http').setLevel(logging.WARNING)

    return logging.getLogger(__name__)


class QuizBot(commands.Bot):
    """Discord bot that turns uploaded documents into study packs and timed quizzes"""

    def __init__(self, config=None):
        # Slash commands only need the guilds intent
        intents = discord.Intents.none()
        intents.guilds = True

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # Fallback prefix, mainly using slash commands
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.config_manager: Optional[ConfigManager] = None
        self.quiz_controller: Optional[QuizController] = None
        self.study_service: Optional[StudyService] = None
        self._quiz_views: Dict[int, QuizView] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")
            self.setup_components()
            await self.setup_commands()
            logger.info("Bot setup completed successfully")
        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def setup_components(self):
        """Create the managers and services from the loaded configuration."""
        self.config_manager = ConfigManager()
        if self.app_config:
            self.config_manager.load_from_dict(self.app_config)

        validation = self.config_manager.validate_settings()
        for issue in validation['issues']:
            logger.warning(f"Configuration issue: {issue}")

        self.quiz_controller = QuizController(self.config_manager)
        self.study_service = StudyService(self.config_manager)

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="study", description="Upload a PDF or TXT file to get a summary and a quiz")
        @app_commands.describe(file="PDF or TXT document to study")
        async def study_command(interaction: discord.Interaction, file: discord.Attachment):
            await self.handle_study(interaction, file)

        @self.tree.command(name="quiz", description="Open the quiz for the last studied document")
        async def quiz_command(interaction: discord.Interaction):
            await self.handle_quiz(interaction)

        @self.tree.command(name="stop", description="Stop the current quiz")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="status", description="Show the current document and quiz progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="set_timer", description="Set the time limit for each question (5-300 seconds)")
        async def set_timer_command(interaction: discord.Interaction, seconds: int):
            await self.handle_set_timer(interaction, seconds)

        @self.tree.command(name="set_questions", description="Set how many quiz questions to generate (1-10)")
        async def set_questions_command(interaction: discord.Interaction, number: int):
            await self.handle_set_questions(interaction, number)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")
        print(f"🤖 {self.user} is Ready and Online!")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="📚 Study Quiz Bot Commands",
                description="Upload a document, get a summary, a mind map, related media and a timed quiz",
                color=0x00ff00
            )
            help_embed.add_field(
                name="📄 Study",
                value=(
                    "`/study <file>` - Analyse a PDF or TXT file (takes 1-2 minutes)\n"
                    "`/quiz` - Open the quiz for the last studied document\n"
                    "`/stop` - Stop the current quiz\n"
                    "`/status` - Show document and quiz progress"
                ),
                inline=False
            )
            help_embed.add_field(
                name="⚙️ Settings",
                value=(
                    "`/set_timer <seconds>` - Time limit per question (5-300)\n"
                    "`/set_questions <number>` - Questions generated per document (1-10)"
                ),
                inline=False
            )
            help_embed.add_field(
                name="Current Settings",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )
            help_embed.set_footer(text="Use slash commands to interact with the bot")
            await interaction.response.send_message(embed=help_embed)

        except discord.HTTPException as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help", "❌ Help Error")

    async def handle_study(self, interaction: discord.Interaction, file: discord.Attachment):
        """Handle /study command: validate, analyse and post the study pack"""
        channel_id = interaction.channel_id

        try:
            self.study_service.validate_upload(file.filename, file.size, file.content_type)
        except DocumentError as e:
            logger.info(f"Rejected upload {file.filename} in channel {channel_id}: {e}")
            await self.send_error_response(interaction, e.user_message, "❌ Invalid File")
            return

        await interaction.response.defer(thinking=True)

        try:
            data = await file.read()
            study = await self.study_service.process_document(file.filename, data, file.content_type)
        except StudyBotError as e:
            logger.warning(f"Study pipeline failed for {file.filename} in channel {channel_id}: {e}")
            await self.send_error_response(interaction, e.user_message, "❌ Processing Failed")
            return
        except discord.HTTPException as e:
            logger.error(f"Failed to download {file.filename}: {e}")
            await self.send_error_response(interaction, "Could not download the file from Discord.", "❌ Download Error")
            return
        except Exception as e:
            logger.error(f"Unexpected error processing {file.filename} in channel {channel_id}: {e}", exc_info=True)
            await self.send_error_response(
                interaction,
                "Something went wrong while processing your document. Please try again.",
                "❌ Processing Failed"
            )
            return

        self._close_view(channel_id)
        self.quiz_controller.register_study(channel_id, study)

        try:
            await interaction.followup.send(embeds=build_study_embeds(study))
        except discord.HTTPException as e:
            logger.error(f"Failed to post study pack for channel {channel_id}: {e}")
            await self.send_error_response(interaction, "The study pack could not be posted.", "❌ Discord Error")
            return

        await self.open_quiz(interaction, interaction.channel)

    async def handle_quiz(self, interaction: discord.Interaction):
        """Handle /quiz command"""
        await interaction.response.defer(thinking=True)
        await self.open_quiz(interaction, interaction.channel)

    async def open_quiz(self, interaction: discord.Interaction, channel) -> bool:
        """
        Create a quiz engine for the channel's study pack and post its message.

        Returns:
            True if the quiz message was posted
        """
        channel_id = interaction.channel_id
        result = self.quiz_controller.create_quiz(channel_id)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Quiz Unavailable")
            return False

        engine = result['engine']
        self._close_view(channel_id)
        view = QuizView(engine)

        try:
            message = await channel.send(embed=build_snapshot_embed(engine.snapshot()), view=view)
        except discord.HTTPException as e:
            logger.error(f"Failed to post quiz for channel {channel_id}: {e}")
            view.close()
            self.quiz_controller.stop_quiz(channel_id)
            await self.send_error_response(interaction, "The quiz could not be posted in this channel.", "❌ Discord Error")
            return False

        view.message = message
        self._quiz_views[channel_id] = view
        session = self.quiz_controller.get_session(channel_id)
        session.quiz_message = message

        # Both callers defer first, so this lands as the followup that ends "thinking..."
        await self.send_info_response(interaction, "Quiz is ready! Press **Start quiz** below.", "🏆 Quiz Ready")
        return True

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        channel_id = interaction.channel_id
        result = self.quiz_controller.stop_quiz(channel_id)
        if not result['success']:
            await self.send_warning_response(interaction, result['user_message'], "⚠️ Nothing to Stop")
            return

        self._close_view(channel_id)
        info = result['session_info']
        embed = discord.Embed(
            title="🛑 Quiz Stopped",
            description=f"Stopped at question {info['question_number']}/{info['total_questions']} with a score of {info['score']}.",
            color=0xffaa00
        )
        embed.set_footer(text="Use /quiz to start over")
        try:
            await interaction.response.send_message(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to confirm stop for channel {channel_id}: {e}")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        channel_id = interaction.channel_id
        summary = self.quiz_controller.get_session_status_summary(channel_id)
        embed = discord.Embed(title="ℹ️ Study Status", description=summary, color=0x6699ff)
        try:
            await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Error in status command: {e}")

    async def handle_set_timer(self, interaction: discord.Interaction, seconds: int):
        """Handle /set_timer command"""
        result = self.config_manager.set_timer_duration(seconds)
        try:
            if result['success']:
                embed = discord.Embed(
                    title="✅ Timer Duration Updated",
                    description=f"Each question will now have **{seconds} seconds**. Applies to the next quiz you open.",
                    color=0x00ff00
                )
                await interaction.response.send_message(embed=embed)
            else:
                await interaction.response.send_message(result['user_message'], ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Error in set_timer command: {e}")

    async def handle_set_questions(self, interaction: discord.Interaction, number: int):
        """Handle /set_questions command"""
        result = self.config_manager.set_question_count(number)
        try:
            if result['success']:
                embed = discord.Embed(
                    title="✅ Question Count Updated",
                    description=f"The next document will get **{number}** quiz questions.",
                    color=0x00ff00
                )
                await interaction.response.send_message(embed=embed)
            else:
                await interaction.response.send_message(result['user_message'], ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Error in set_questions command: {e}")

    def _close_view(self, channel_id: int) -> None:
        view = self._quiz_views.pop(channel_id, None)
        if view is not None:
            view.close()

    async def _send_embed(self, interaction: discord.Interaction, embed: discord.Embed, ephemeral: bool = True):
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=ephemeral)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=ephemeral)

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        embed = discord.Embed(title=title, description=message, color=0xff0000)
        embed.set_footer(text="If this error persists, try using /help for available commands")
        try:
            await self._send_embed(interaction, embed)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        embed = discord.Embed(title=title, description=message, color=0x6699ff)
        try:
            await self._send_embed(interaction, embed)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        embed = discord.Embed(title=title, description=message, color=0xffaa00)
        try:
            await self._send_embed(interaction, embed)
        except discord.HTTPException:
            logger.error("Failed to send warning response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Study Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(run_bot())

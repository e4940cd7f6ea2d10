"""
CLI entry point for Sentient.

Loads settings, configures logging, spawns the inference worker, waits for
the model to load and then hands over to the chat REPL.
"""

import sys
from typing import Optional, Tuple

import click
from loguru import logger

from sentient.config.settings import SamplingProfile, Settings, load_settings
from sentient.core.models import Character, Conversation
from sentient.engine.worker import InferenceEngine
from sentient.repl import ChatREPL
from sentient.utils.exceptions import SentientError
from sentient.utils.logging import configure_logging

DEFAULT_CHARACTER = Character(
    name="Assistant",
    description="<|character_name|> is a friendly, helpful assistant chatting with <|user_name|>.",
    greeting="<|character_name|>: Hello <|user_name|>! What would you like to talk about?",
)


def pick_model(settings: Settings, requested: Optional[str]) -> str:
    """Name of the model to load: the requested one or the first configured."""
    if requested:
        return requested
    if not settings.models:
        raise click.UsageError("No models are configured; add a [[models]] entry to the config file")
    return settings.models[0].name


def pick_parameters(settings: Settings, requested: Optional[str]) -> SamplingProfile:
    """Sampling profile to chat with: the requested one, the first configured, or defaults."""
    if requested:
        profile = settings.find_parameters(requested)
        if profile is None:
            raise click.UsageError(f"Unknown parameters profile '{requested}'")
        return profile
    if settings.parameters:
        return settings.parameters[0]
    return SamplingProfile(name="default")


@click.command()
@click.option(
    "--config",
    default=None,
    help="Path to configuration file (default: ~/.config/sentient/config.toml, then ./config.toml)",
    type=click.Path(exists=False, dir_okay=False),
)
@click.option("--model", default=None, help="Model name or GGUF path (default: first configured)")
@click.option(
    "--character",
    default=None,
    help="Character TOML file with name, description, context and greeting",
    type=click.Path(exists=True, dir_okay=False),
)
@click.option("--parameters", default=None, help="Sampling profile name (default: first configured)")
@click.option(
    "--memory",
    "memory_files",
    multiple=True,
    help="JSON memory file to attach to the conversation (repeatable)",
    type=click.Path(exists=True, dir_okay=False),
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(
    config: Optional[str],
    model: Optional[str],
    character: Optional[str],
    parameters: Optional[str],
    memory_files: Tuple[str, ...],
    debug: bool,
) -> None:
    """
    Sentient - chat with AI characters on a local or remote model.
    """
    engine = None
    try:
        settings = load_settings(config)

        if debug:
            settings.logging.level = "DEBUG"

        configure_logging(settings.logging)

        model_name = pick_model(settings, model)
        sampling = pick_parameters(settings, parameters)
        chat_character = Character.load(character) if character else DEFAULT_CHARACTER

        conversation = Conversation.from_greeting(chat_character, settings.display_name)
        if memory_files:
            conversation.load_memories(list(memory_files))

        logger.info(f"Model: {model_name}")
        logger.info(f"Character: {chat_character.name}")
        logger.info(f"Parameters: {sampling.name}")

        click.echo(f"Loading model '{model_name}' (this may take a moment)...")
        engine = InferenceEngine.spawn(settings, model_name)
        engine.wait_until_loaded()

        repl = ChatREPL(engine, settings, chat_character, sampling, conversation)
        repl.run()

    except click.UsageError:
        raise

    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")

    except SentientError as e:
        logger.error(str(e))
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)

    finally:
        if engine is not None and not engine.shutdown(timeout=10.0):
            logger.warning("Inference worker did not stop in time")


if __name__ == "__main__":
    main()

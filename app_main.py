"""Application entry point for the QuizVault service."""

from __future__ import annotations

from quizvault.core.quiz_manager import QuizManager
from quizvault.core.services.ai_generator import GeminiQuestionGenerator
from quizvault.server.api_server import run_api_server
from quizvault.utils.logging_config import configure_logging
from quizvault.utils.settings import EngineSettings


def main() -> None:
    """Read settings, initialize logging, and serve the API until interrupted."""
    settings = EngineSettings.from_env()
    logger = configure_logging(settings.log_level)
    logger.info("Starting QuizVault on %s:%d", settings.host, settings.port)

    generator = None
    if settings.gemini_api_key:
        generator = GeminiQuestionGenerator(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            timeout_seconds=settings.ai_timeout_seconds,
        )
    else:
        logger.warning("GEMINI_API_KEY is not set; AI quizzes will fall back to stored questions.")

    quiz_manager = QuizManager(generator=generator, settings=settings)
    try:
        run_api_server(
            quiz_manager=quiz_manager,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level,
        )
    finally:
        quiz_manager.shutdown()


if __name__ == "__main__":
    main()

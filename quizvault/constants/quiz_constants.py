"""Quiz-related constants shared across core and API layers."""

MIN_DURATION_MINUTES: int = 1
MAX_DURATION_MINUTES: int = 180

MIN_TITLE_LENGTH: int = 3
MAX_TITLE_LENGTH: int = 100
MAX_DESCRIPTION_LENGTH: int = 500

MIN_QUESTION_TEXT_LENGTH: int = 5
MAX_QUESTION_TEXT_LENGTH: int = 5000

MIN_QUESTION_MARKS: int = 1
MAX_QUESTION_MARKS: int = 10
DEFAULT_QUESTION_MARKS: int = 1

MCQ_OPTION_COUNT: int = 4
TRUE_FALSE_OPTIONS: tuple[str, str] = ("True", "False")
MIN_MATCHING_PAIRS: int = 2

MIN_AI_QUESTION_COUNT: int = 1
MAX_AI_QUESTION_COUNT: int = 50
AI_DIFFICULTIES: tuple[str, ...] = ("easy", "medium", "hard")
DEFAULT_AI_DIFFICULTY: str = "medium"
# Nominal marks the generator is instructed to award per difficulty.
DIFFICULTY_NOMINAL_MARKS: dict[str, int] = {"easy": 1, "medium": 2, "hard": 3}

EPHEMERAL_ID_PREFIX: str = "ai-"
# Extra lifetime of a sealed grading key beyond the quiz duration.
GRADING_TOKEN_GRACE_SECONDS: int = 10 * 60

"""Static metadata describing QuizVault."""

APP_NAME = "QuizVault"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "QuizVault serves quizzes to students and grades their submissions. "
    "Teachers author questions by hand or let an AI generator build a fresh set for every student, "
    "while answer keys never leave the server in readable form."
)

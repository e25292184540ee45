"""Network configuration constants for the quiz engine."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000

AI_GENERATION_TIMEOUT_SECONDS: float = 20.0
GEMINI_API_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_GEMINI_MODEL: str = "gemini-1.5-flash"

VIEWER_ID_HEADER: str = "X-Viewer-Id"
VIEWER_ROLE_HEADER: str = "X-Viewer-Role"

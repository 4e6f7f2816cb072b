"""Fixed identifiers, phrases and limits shared across the notebook."""

from __future__ import annotations

import os

# Debug mode toggle (can be controlled via environment variable)
DEBUG_NOTEBOOK = os.getenv("DEBUG_NOTEBOOK", "false").lower() == "true"

# ==============================================================================
# FOLDERS
# ==============================================================================

GENERAL_FOLDER_ID = "general-dir"
CONFIDENTIAL_FOLDER_ID = "confidential-dir"

DEFAULT_FOLDERS = {
    GENERAL_FOLDER_ID: "General",
    CONFIDENTIAL_FOLDER_ID: "Confidential",
}
PROTECTED_FOLDER_IDS = frozenset(DEFAULT_FOLDERS)
UNFILED_FOLDER_NAME = "Unfiled"

# ==============================================================================
# UPLOADS
# ==============================================================================

ALLOWED_EXTENSIONS = (".txt", ".md", ".pdf", ".xlsx", ".xls", ".docx")

# ==============================================================================
# CONVERSATION
# ==============================================================================

HISTORY_WINDOW = 6  # Number of recent eligible messages sent with each query
DEFAULT_TEMPERATURE = 0.1
DEFAULT_MODEL = "gemini-flash-latest"
DEFAULT_ENGINE_TIMEOUT_MS = 60_000
DEFAULT_MAX_SESSIONS = 1000
DEFAULT_SESSION_IDLE_SECONDS = 3600
SHARED_NOTEBOOK_TIMEOUT_SECONDS = 15
PREVIEW_CHARS = 280
LOCKED_PREVIEW = "🔒 Content locked. Log in as administrator to view."

# Reserved utterances that open the credential prompt (compared trimmed + lowercased)
LOGIN_TRIGGER_PHRASES = frozenset({
    "admin",
    "administrator",
    "login",
    "log in",
    "verification",
})

# The engine must answer with exactly one of these when locked content is needed.
REFUSAL_SENTENCE_EN = (
    "This information is confidential. Please log in as an administrator to access it."
)
REFUSAL_SENTENCE_AR = "هذه المعلومات سرية. يرجى تسجيل الدخول كمسؤول للوصول إليها."
REFUSAL_SENTENCES = (REFUSAL_SENTENCE_EN, REFUSAL_SENTENCE_AR)

# ==============================================================================
# FIXED ASSISTANT MESSAGES
# ==============================================================================

WELCOME_MESSAGE = (
    "Welcome to your notebook. Upload documents on the left and ask me anything "
    "about them, in English or Arabic."
)
IMPORT_WELCOME_MESSAGE = (
    "Workspace successfully imported! I'm ready to answer questions about these "
    "specific documents."
)
LOGIN_PROMPT_MESSAGE = "Administrator verification required. Please enter your credentials."
LOGIN_WELCOME_MESSAGE = (
    "Administrator access granted. Confidential documents are now available."
)
ALREADY_AUTHORIZED_MESSAGE = "You are already logged in as an administrator."
LOGOUT_MESSAGE = "You have been logged out. Confidential documents are locked again."
INVALID_CREDENTIALS_MESSAGE = "Invalid username or password."
NO_PROMPT_OPEN_MESSAGE = "No login is in progress."
TRANSPORT_FAILURE_MESSAGE = (
    "I'm having trouble connecting to my brain. Please check your internet or API key."
)

# Arabic variants used when the user writes in Arabic
ARABIC_MESSAGES = {
    LOGIN_PROMPT_MESSAGE: "مطلوب التحقق من المسؤول. يرجى إدخال بيانات الاعتماد.",
    LOGIN_WELCOME_MESSAGE: "تم منح صلاحية المسؤول. المستندات السرية متاحة الآن.",
    ALREADY_AUTHORIZED_MESSAGE: "أنت مسجل الدخول بالفعل كمسؤول.",
    TRANSPORT_FAILURE_MESSAGE: "أواجه مشكلة في الاتصال. يرجى التحقق من الإنترنت أو مفتاح API.",
}

__all__ = [
    "DEBUG_NOTEBOOK",
    "GENERAL_FOLDER_ID",
    "CONFIDENTIAL_FOLDER_ID",
    "DEFAULT_FOLDERS",
    "PROTECTED_FOLDER_IDS",
    "UNFILED_FOLDER_NAME",
    "ALLOWED_EXTENSIONS",
    "HISTORY_WINDOW",
    "DEFAULT_TEMPERATURE",
    "DEFAULT_MODEL",
    "DEFAULT_ENGINE_TIMEOUT_MS",
    "DEFAULT_MAX_SESSIONS",
    "DEFAULT_SESSION_IDLE_SECONDS",
    "SHARED_NOTEBOOK_TIMEOUT_SECONDS",
    "PREVIEW_CHARS",
    "LOCKED_PREVIEW",
    "LOGIN_TRIGGER_PHRASES",
    "REFUSAL_SENTENCE_EN",
    "REFUSAL_SENTENCE_AR",
    "REFUSAL_SENTENCES",
    "WELCOME_MESSAGE",
    "IMPORT_WELCOME_MESSAGE",
    "LOGIN_PROMPT_MESSAGE",
    "LOGIN_WELCOME_MESSAGE",
    "ALREADY_AUTHORIZED_MESSAGE",
    "LOGOUT_MESSAGE",
    "INVALID_CREDENTIALS_MESSAGE",
    "NO_PROMPT_OPEN_MESSAGE",
    "TRANSPORT_FAILURE_MESSAGE",
    "ARABIC_MESSAGES",
]

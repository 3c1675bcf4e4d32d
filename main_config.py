import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
PROMPTS_DIR = os.path.join(BASE_DIR, "prompts")
DEFAULT_SYSTEM_PROMPT_PATH = os.getenv(
    "SYSTEM_PROMPT_PATH", os.path.join(PROMPTS_DIR, "coding_agent_system_prompt.md")
)
PROVIDERS_CONFIG_PATH = os.getenv("PROVIDERS_CONFIG", os.path.join(os.getcwd(), "providers.json"))
SESSION_CONTEXT_PATH = os.getenv(
    "SESSION_CONTEXT_PATH", os.path.join(os.getcwd(), "session_context.txt")
)
WORKSPACE_DIR = os.getenv("AGENT_WORKSPACE", os.getcwd())
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

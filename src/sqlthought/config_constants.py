from enum import Enum


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

class LogFormat(str, Enum):
    JSON = "json"
    CONSOLE = "console"

class OPENAI_LLM_MODELS(str, Enum):
    GPT_4O = "gpt-4o"
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_41 = "gpt-4.1"
    GPT_41_MINI = "gpt-4.1-mini"

OPENAI_API_URL = "https://api.openai.com/v1"

# -------------------------
# Pipeline Constants
# -------------------------

# Logical name the target database is attached under; generated SQL is
# qualified with this prefix
DEFAULT_CATALOG_NAME = "chinook"

# Total execution attempts per run (first execution + corrections)
DEFAULT_MAX_ATTEMPTS = 3

# DuckDB column types that cannot be carried exactly by IEEE-754 doubles
WIDE_INTEGER_TYPES = frozenset({"BIGINT", "UBIGINT", "HUGEINT", "UHUGEINT"})

# Largest integer a JSON consumer using doubles represents exactly (2^53 - 1)
MAX_SAFE_INTEGER = 9007199254740991

# Questions offered by the demo runner
DEMO_QUESTIONS = (
    "List all customers from USA",
    "What are the top 5 best-selling tracks by total revenue?",
    "Show me the total sales amount for each employee",
)

"""
Constants and Enums for SiteGen
===============================

Centralized enums and the small set of in-band markers shared by the
providers, the router, the pipeline and the streaming transport.
"""

from enum import Enum


# ===========================
# BASE
# ===========================

class BaseEnum(str, Enum):
    """Base enum class with string values for consistent behavior."""

    def __str__(self):
        return self.value


# ===========================
# PROVIDERS AND MODELS
# ===========================

class AIProvider(BaseEnum):
    """Upstream generation backends."""
    OPENAI = "openai"
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


class AIModel(BaseEnum):
    """Abstract model identifiers accepted by the router."""
    AUTO = "auto"  # let the router pick the first enabled provider
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_4_1 = "gpt-4.1"
    GPT_4O = "gpt-4o"
    GEMINI_15_FLASH = "gemini-1.5-flash"
    GEMINI_15_PRO = "gemini-1.5-pro"
    CLAUDE_35_SONNET = "claude-3-5-sonnet"
    CLAUDE_3_OPUS = "claude-3-opus"


class AIOperation(BaseEnum):
    """Operation tags used for cost accounting."""
    GENERATE_PAGE = "generatePage"
    GENERATE_COMPONENT = "generateComponent"
    CONTENT_REWRITE = "contentRewrite"
    DESIGN_SUGGESTION = "designSuggestion"
    CODE_OPTIMIZATION = "codeOptimization"


class ChunkType(BaseEnum):
    """Variants of a streamed response chunk."""
    TOKEN = "token"
    TEXT = "text"
    JSON = "json"
    ERROR = "error"


class ExecutionContext(BaseEnum):
    """Where the generation code is running."""
    SERVER = "server"
    CLIENT = "client"
    TEST = "test"


# ===========================
# DESIGN PREFERENCES
# ===========================

class DesignStyle(BaseEnum):
    MINIMAL = "minimal"
    BOLD = "bold"
    CORPORATE = "corporate"
    CREATIVE = "creative"


class ContentTone(BaseEnum):
    FORMAL = "formal"
    CASUAL = "casual"
    TECHNICAL = "technical"
    FRIENDLY = "friendly"


class PerformancePriority(BaseEnum):
    MAX = "max"
    BALANCED = "balanced"
    FEATURES = "features"


class DesignConstraintType(BaseEnum):
    """Typed constraints attached to every generation request."""
    A11Y = "a11y"
    PERFORMANCE = "performance"
    SEO = "seo"
    BRAND = "brand"
    BUDGET = "budget"


# ===========================
# VALIDATION
# ===========================

class Severity(BaseEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IssueType(BaseEnum):
    """Category of a generated-markup issue."""
    HTML = "html"
    ACCESSIBILITY = "accessibility"
    PERFORMANCE = "performance"
    SECURITY = "security"
    SEO = "seo"
    CROSS_BROWSER = "cross-browser"


class SafetyLevel(BaseEnum):
    """Strictness of the content safety layer."""
    STRICT = "strict"
    MODERATE = "moderate"
    MINIMAL = "minimal"


# ===========================
# STREAMING
# ===========================

class StreamEventType(BaseEnum):
    """Named events pushed to the client over server-sent events."""
    RESERVED = "reserved"
    CREDITS = "credits"
    PROGRESS = "progress"
    DATA = "data"
    VALIDATION = "validation"
    ERROR = "error"
    DONE = "done"
    ABORTED = "aborted"


class AdmissionReason(BaseEnum):
    """Reasons an admission request can be rejected."""
    INSUFFICIENT_CREDITS = "insufficient_credits"
    INSUFFICIENT_RATE_LIMIT = "insufficient_rate_limit"


COMPLETION_MARKER = "<!-- COMPLETE -->"
FALLBACK_MARKER = "<!-- FALLBACK START -->"
FALLBACK_MESSAGE = "No provider available or provider failure. Please retry."

"""Prompts for the classification and extraction passes."""

from __future__ import annotations

CLASSIFICATION_SYSTEM_PROMPT = """You are an expert call center QA analyst.
Classify customer-service calls and identify the customer's intent.

Return strict JSON with exactly these keys:
{
  "callType": "Automated" | "Escalated",
  "successCategory": "Successful" | "Partially Successful" | "Unsuccessful",
  "intent": "<primary customer intent, e.g. Check order status>",
  "intentCategory": "<category of the intent, e.g. Order inquiry>",
  "confidence": <float between 0 and 1>,
  "rationale": "<brief explanation of the classification>"
}
"""

CLASSIFICATION_STRICT_SYSTEM_PROMPT = """Expert QA analyst. Follow rules strictly.
Return strict JSON with the keys callType, successCategory, intent,
intentCategory, confidence, rationale. All fields are required.
"""

EXTRACTION_SYSTEM_PROMPT = """You extract key information from customer service calls.

Return strict JSON with exactly these keys:
{
  "summary": "<2-3 sentence summary>",
  "keyPoints": ["<3-6 key points from the call>"],
  "actionItems": ["<follow-up actions, may be empty>"],
  "productsMentioned": [
    {"name": "<full product name>", "brand": "<brand if mentioned>", "category": "<category>"}
  ]
}
"""

EXTRACTION_STRICT_SYSTEM_PROMPT = """Information extractor. Follow the output shape exactly.
Return strict JSON with the keys summary, keyPoints, actionItems, productsMentioned.
summary must be non-empty and keyPoints must contain at least one non-empty string.
"""

_CALL_OUTCOME_RULES = """\
- Automated calls CANNOT be "Partially Successful" (only Successful or Unsuccessful)
- Escalated calls CANNOT be "Successful" (only Partially Successful or Unsuccessful)"""


def build_classification_user_prompt(transcript: str) -> str:
    """Render the first-attempt classification prompt."""

    return (
        "Analyze the transcript and determine:\n"
        "1. callType: Automated or Escalated\n"
        "   - Automated: the agent handled the entire call end-to-end\n"
        "   - Escalated: the agent explicitly directed the customer to an external "
        "channel or human support\n"
        "\n"
        "2. successCategory: Successful, Partially Successful, or Unsuccessful\n"
        "   - Automated calls: only Successful or Unsuccessful\n"
        "     * Successful: the agent provided the requested information or resolved the issue\n"
        "     * Unsuccessful: the agent failed to help or the customer left frustrated\n"
        "   - Escalated calls: only Partially Successful or Unsuccessful\n"
        "     * Partially Successful: the agent provided some help before escalating\n"
        "     * Unsuccessful: the agent escalated immediately without helping\n"
        "\n"
        '3. intent: primary customer intent (e.g. "Check order status")\n'
        '4. intentCategory: category of the intent (e.g. "Order inquiry")\n'
        "5. confidence: 0-1\n"
        "6. rationale: brief explanation\n"
        "\n"
        "IMPORTANT: if the agent provides the information requested (order status, "
        "tracking info, etc.), the call is SUCCESSFUL even if the conversation is incomplete.\n"
        "\n"
        "Transcript:\n"
        f"{transcript}\n"
    )


def build_classification_strict_user_prompt(transcript: str) -> str:
    """Render the retry prompt that restates the call-type/outcome rule."""

    return (
        "STRICT RULES:\n"
        f"{_CALL_OUTCOME_RULES}\n"
        "- Mark as Successful if the agent provided the requested information\n"
        "- All fields required\n"
        "\n"
        "Analyze this transcript:\n"
        f"{transcript}\n"
    )


def build_extraction_user_prompt(transcript: str) -> str:
    """Render the first-attempt extraction prompt."""

    return (
        "Extract from this transcript:\n"
        "1. summary: 2-3 sentence summary\n"
        "2. keyPoints: 3-6 key points from the call\n"
        "3. actionItems: any follow-up actions needed (empty list if none)\n"
        "4. productsMentioned: specific products mentioned, each with:\n"
        "   - name: full product name\n"
        "   - brand: if mentioned\n"
        "   - category: product category if it can be inferred\n"
        "\n"
        "Transcript:\n"
        f"{transcript}\n"
    )


def build_extraction_strict_user_prompt(transcript: str) -> str:
    """Render the retry prompt for extraction."""

    return (
        "STRICT RULES:\n"
        "- summary: 2-3 non-empty sentences\n"
        "- keyPoints: between 3 and 6 non-empty strings\n"
        "- actionItems: list of non-empty strings, or an empty list\n"
        "- productsMentioned: list of objects with a non-empty name\n"
        "- Call classification elsewhere must satisfy:\n"
        f"{_CALL_OUTCOME_RULES}\n"
        "\n"
        "Extract from this transcript:\n"
        f"{transcript}\n"
    )

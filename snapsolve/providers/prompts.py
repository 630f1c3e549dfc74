"""Prompt templates for the provider stages.

The same wording is sent to every vendor; only the message packaging
differs. Templates are format strings, so literal braces are doubled.
"""

from __future__ import annotations

# Prompt version for tracking
PROMPT_VERSION = "1.0.0"

EXTRACTION_SYSTEM_PROMPT = (
    "You are an assistant that can analyze any content shown in screenshots. "
    "Describe what you see in full detail so that it can be solved or answered later."
)

EXTRACTION_PROMPT_TEMPLATE = """Analyze these screenshots and give a detailed account of their content.
If it is a question, state it exactly. If it is a problem, state the problem with all constraints and examples.
If it is text that needs analysis, transcribe the relevant parts.
If you detect code or a programming problem, use {language} as the preferred language."""

SOLUTION_SYSTEM_PROMPT = "You are an expert assistant that provides detailed analyses and solutions."

SOLUTION_PROMPT_TEMPLATE = """Analyze and respond to the following content detected in the screenshots:

CONTENT:
{content}

If this is a programming problem or contains code, use {language} as the preferred language.

Your response should be:
1. Complete and detailed
2. Well structured with clear sections
3. Include code solutions in a fenced code block, if appropriate
4. Include a "Thoughts:" section listing your reasoning as bullet points

If it is a programming problem, also include:
- Time complexity: O(...) with a short justification
- Space complexity: O(...) with a short justification
- A step-by-step explanation of the solution"""

DEBUG_SECTION_HEADINGS: tuple[str, ...] = (
    "New Elements Identified",
    "Specific Improvements and Corrections",
    "Explanation of Changes",
    "Key Points",
)

DEBUG_SYSTEM_PROMPT = """You are an assistant that analyzes additional screenshots to add information to, or correct, your previous analysis.

Your response MUST follow this exact structure with these section headings (use ### for headings):
### New Elements Identified
- List each new element as a bullet with a clear explanation

### Specific Improvements and Corrections
- List the specific changes needed as bullets

### Explanation of Changes
Explain clearly why the changes are needed

### Key Points
- Bullet summary of the most important conclusions

If you include code examples, use markdown code blocks with a language tag (for example ```{language})."""

DEBUG_PROMPT_TEMPLATE = """I am analyzing this content: "{content}". I am now showing additional screenshots. Use them to:
1. Provide additional information
2. Correct any misunderstandings
3. Answer follow-up questions
4. Debug any code or solutions discussed earlier
5. Add more detail to your analysis"""


def extraction_prompt(language: str) -> str:
    """Build the user prompt for the extract stage."""
    return EXTRACTION_PROMPT_TEMPLATE.format(language=language)


def solution_prompt(content: str, language: str) -> str:
    """Build the user prompt for the analyze stage."""
    return SOLUTION_PROMPT_TEMPLATE.format(content=content, language=language)


def debug_system_prompt(language: str) -> str:
    """Build the system prompt for the debug stage."""
    return DEBUG_SYSTEM_PROMPT.format(language=language)


def debug_prompt(content: str) -> str:
    """Build the user prompt for the debug stage."""
    return DEBUG_PROMPT_TEMPLATE.format(content=content)

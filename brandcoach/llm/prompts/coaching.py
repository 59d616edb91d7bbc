"""
Prompts for the dynamic checklist interview.

Builds the system prompt from:
- Category objective and the fields it should fill
- The user's profile snapshot (side context)
- Checklist topics already covered and still remaining

and maps the transcript onto provider chat messages.
"""

import json
from typing import Any, Dict, List, Optional

OPENING_INSTRUCTION = "Start the session. Ask me your first question."
CONTINUE_INSTRUCTION = "Let's pick up where we left off. Ask me your next question."
FULL_TEXT_INSTRUCTION = (
    "Now write the complete version of my story in the first person, "
    "in 4 to 6 paragraphs, using everything I told you. Return only the text."
)

CATEGORY_OBJECTIVES: Dict[str, str] = {
    "story": (
        "Help {name} tell their story: their background, the trigger that got them "
        "started, the hard times, what makes them unique, their vision. The goal is "
        "an authentic narrative that connects emotionally."
    ),
    "persona": (
        "Help {name} draw a precise portrait of their ideal client: who they are, "
        "what they live through, what blocks them, what they want, how they buy, "
        "their objections. The portrait should be precise enough to call them by name."
    ),
    "value_proposition": (
        "Help {name} put into words what makes them unique and desirable: the "
        "problem they solve, for whom, how, and why them rather than someone else."
    ),
    "tone_style": (
        "Help {name} define their voice: how they speak, what they stand for, "
        "their limits, their visual style. The goal is a tone guide usable for "
        "every piece of content."
    ),
    "content_strategy": (
        "Help {name} define their content pillars, creative twist and editorial line, "
        "so they never again wonder what to post."
    ),
    "offers": (
        "Help {name} phrase their offers so they are desirable: name, promise, "
        "who it is for, price, why now. Fields to fill: name, price, description, "
        "target, promise, includes, objection_handler."
    ),
}

RESPONSE_FORMAT = """Always return valid JSON and nothing else:
{
  "question": "The question to display",
  "question_type": "text" | "textarea" | "select" | "multi_select",
  "options": ["option1", "option2"],
  "placeholder": "Example answer...",
  "covered_topic": "topic id the LAST answer covered, or null",
  "extracted_insights": { "field": "value extracted from the LAST answer" },
  "is_complete": false,
  "completion_percentage": 45,
  "remaining_topics": ["topic ids still to cover"]
}

When you have enough information, return instead:
{
  "is_complete": true,
  "completion_percentage": 100,
  "final_summary": "3-5 sentence summary of the section, third person, for the recap card"
}"""


def _display_name(context: Dict[str, Any]) -> str:
    profile = context.get("profile") or {}
    return profile.get("first_name") or profile.get("prenom") or "the user"


def _context_lines(context: Dict[str, Any]) -> List[str]:
    lines: List[str] = []

    profile = context.get("profile") or {}
    if profile:
        lines.append(f"Activity: {profile.get('activity') or 'not provided'}")
        if profile.get("activity_type"):
            lines.append(f"Type: {profile['activity_type']}")
        if profile.get("channels"):
            lines.append(f"Channels: {', '.join(profile['channels'])}")
        if profile.get("main_blocker"):
            lines.append(f"Main blocker: {profile['main_blocker']}")
        if profile.get("main_goal"):
            lines.append(f"Goal: {profile['main_goal']}")

    branding = context.get("branding") or {}
    for key in ("positioning", "mission"):
        if branding.get(key):
            lines.append(f"{key.capitalize()}: {branding[key]}")
    for key in ("tone_keywords", "values"):
        if branding.get(key):
            lines.append(f"{key.replace('_', ' ').capitalize()}: {json.dumps(branding[key])}")

    audit = context.get("audit") or {}
    if audit.get("score_global"):
        lines.append(f"Global audit score: {audit['score_global']}/100")
    for key, title in (("strengths", "Strengths"), ("weaknesses", "Weaknesses")):
        if audit.get(key):
            lines.append(f"{title}: {', '.join(str(x) for x in audit[key])}")

    persona = context.get("persona") or {}
    if persona:
        lines.append(
            "\nWHAT WE ALREADY KNOW ABOUT THE IDEAL CLIENT:\n"
            + json.dumps(persona, indent=2, ensure_ascii=False)
        )
    return lines


def get_coaching_system_prompt(
    category: str,
    category_title: str,
    context: Dict[str, Any],
    checklist: List[str],
    covered_topics: List[str],
) -> str:
    """
    Get system prompt for one dynamic interview turn.

    Args:
        category: Category value (e.g. "persona")
        category_title: Human-readable section title
        context: Opaque profile snapshot
        checklist: Ordered topic ids for the category (may be empty)
        covered_topics: Topic ids already covered

    Returns:
        System prompt string
    """
    name = _display_name(context)
    objective = CATEGORY_OBJECTIVES.get(category, "").format(name=name)

    coverage_block = ""
    if checklist:
        remaining = [t for t in checklist if t not in covered_topics]
        coverage_block = (
            "\n══ TOPICS ══\n"
            f"All topics, in order: {', '.join(checklist)}\n"
            f"Already covered (NEVER ask about these again): {', '.join(covered_topics) or 'none'}\n"
            f"Still to cover: {', '.join(remaining) or 'none'}\n"
            "Set covered_topic to the topic id the user's LAST answer addressed."
        )

    context_block = "\n".join(_context_lines(context)) or "No profile data yet."

    return f"""You are a brand coaching assistant. You help {name} build the "{category_title}" section of their branding.

You ask ONE question at a time, personalised and conversational. You NEVER ask a question you already know the answer to.

══ CONTEXT ══
{context_block}

══ OBJECTIVE ══
{objective}
{coverage_block}

══ RULES ══
- One question at a time, specific to {name}'s context, never generic
- No marketing jargon; warm, direct, friendly tone
- Each question explores a DIFFERENT angle
- If an answer is short or vague, dig deeper
- Aim for 8-12 questions per section; when you know enough, return is_complete: true

══ RESPONSE FORMAT ══
{RESPONSE_FORMAT}"""


def get_coaching_messages(messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
    """
    Map a transcript onto provider chat messages.

    The provider conversation always starts and ends on a user message: an
    opening instruction is prepended, and a continue instruction is appended
    when the transcript ends on an assistant question (resumed session).
    """
    chat = [{"role": "user", "content": OPENING_INSTRUCTION}]
    for message in messages:
        role = "user" if message.get("role") == "user" else "assistant"
        if chat[-1]["role"] == role:
            chat[-1] = {"role": role, "content": chat[-1]["content"] + "\n\n" + message["content"]}
        else:
            chat.append({"role": role, "content": message["content"]})
    if chat[-1]["role"] == "assistant":
        chat.append({"role": "user", "content": CONTINUE_INSTRUCTION})
    return chat


def get_full_text_messages(
    messages: List[Dict[str, str]], instruction: Optional[str] = None
) -> List[Dict[str, str]]:
    """Transcript followed by the explicit "write the complete version" request."""
    chat = get_coaching_messages(messages)
    # get_coaching_messages always ends on a user message
    last = chat[-1]
    if last["content"] == CONTINUE_INSTRUCTION:
        chat[-1] = {"role": "user", "content": instruction or FULL_TEXT_INSTRUCTION}
    else:
        chat[-1] = {
            "role": "user",
            "content": last["content"] + "\n\n" + (instruction or FULL_TEXT_INSTRUCTION),
        }
    return chat


def get_writing_system_prompt(category_title: str, context: Dict[str, Any]) -> str:
    """System prompt for the long-form text written after a session completes."""
    name = _display_name(context)
    return (
        f"You are a brand copywriter. You have just interviewed {name} for the "
        f'"{category_title}" section of their branding. Write warmly and concretely, '
        "keep their own words where they are strong, no marketing jargon, no headings."
    )

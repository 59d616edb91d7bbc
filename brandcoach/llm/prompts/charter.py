"""
Prompts for the fixed-step visual charter interview.

Each step sends the predetermined question, the user's answer and the data
accumulated so far; the model returns feedback, a suggestion and the
structured fields the answer fills.
"""

import json
from typing import Any, Dict, List, Optional

from brandcoach.domain.models.category import FixedStep

SECTOR_PALETTES: Dict[str, str] = {
    "photograph": "For a photographer, sophisticated neutrals (warm grey, cream, black) or earthy tones (terracotta, khaki) let the images breathe.",
    "ethical fashion": "For ethical fashion, terracotta, sage green, linen and ecru evoke authenticity and nature.",
    "wellness": "For wellness, soft blues, lavender, aqua and rosy beige create a soothing atmosphere.",
    "business coach": "For business coaching, a contrasted duo (midnight blue/gold, black/coral) looks professional and dynamic.",
    "craft": "For crafts, warm organic colours (honey, terracotta, olive) reinforce the handmade feel.",
    "food": "For food, appetising colours (burgundy, mustard, olive, cream) stimulate desire.",
}

FONT_CHOICES = (
    "Inter, Poppins, Montserrat, Playfair Display, Libre Baskerville, Lora, Raleway, "
    "Open Sans, Nunito, DM Sans, Space Grotesk, Outfit, Cormorant Garamond, "
    "Josefin Sans, Work Sans"
)

# Step instructions keyed by checklist topic, so the question order can change in YAML
TOPIC_INSTRUCTIONS: Dict[str, str] = {
    "mood_place": "The user describes the place that matches their brand. Deduce 3-5 visual keywords and return them in extracted.mood_keywords.",
    "colors": "The user describes their favourite colours. Interpret colour names as HEX codes. {sector_advice} Return in extracted: {{ color_primary, color_secondary, color_accent }} as HEX codes.",
    "visual_style": 'The user describes their visual style in 3 words. Deduce mood_keywords and a photo_style. Return in extracted: {{ mood_keywords: [...], photo_style: "..." }}.',
    "typography": 'The user describes typography preferences. {font_advice} Suggest a title/body pair among: {fonts}. Return in extracted: {{ font_title: "...", font_body: "..." }}.',
    "logo": "The user talks about their logo. If they have none, suggest simple tools or working with a designer. extracted may be empty {{}}; give reassuring advice.",
    "visual_donts": 'The user lists what they hate visually. Rephrase as clear, actionable "visual_donts". Return in extracted: {{ visual_donts: "..." }}.',
}


def sector_advice(activity_type: Optional[str]) -> str:
    if not activity_type:
        return ""
    lowered = activity_type.lower()
    for key, advice in SECTOR_PALETTES.items():
        if key in lowered:
            return advice
    return ""


def _font_advice(branding: Dict[str, Any]) -> str:
    tone = ", ".join(
        str(branding[k]) for k in ("tone_register", "tone_style") if branding.get(k)
    )
    if not tone:
        return ""
    return (
        f'Their tone is "{tone}". Keep fonts consistent with it: direct and punchy '
        "means an assertive sans-serif, soft and poetic means an elegant serif, "
        "professional means a clean sans-serif."
    )


def get_charter_system_prompt(
    step: int,
    steps: List[FixedStep],
    answer: str,
    accumulated: Dict[str, Any],
    context: Dict[str, Any],
) -> str:
    """
    Get system prompt for one fixed-step charter turn.

    Args:
        step: 1-indexed step being answered
        steps: Full predetermined question list
        answer: The user's answer to that step
        accumulated: Structured data extracted by previous steps
        context: Profile snapshot (first_name, activity, tone)

    Returns:
        System prompt string
    """
    total = len(steps)
    current = steps[step - 1]
    profile = context.get("profile") or {}
    branding = context.get("branding") or {}
    name = profile.get("first_name") or "the user"

    context_lines = [f"User: {name}"]
    if profile.get("activity"):
        context_lines.append(f"Activity: {profile['activity']}")
    if profile.get("activity_type"):
        context_lines.append(f"Activity type: {profile['activity_type']}")
    if branding.get("tone_register"):
        context_lines.append(f"Tone register: {branding['tone_register']}")
    if accumulated:
        context_lines.append(
            f"Charter data so far: {json.dumps(accumulated, ensure_ascii=False)}"
        )

    instruction = TOPIC_INSTRUCTIONS.get(
        current.topic,
        "Extract whatever structured visual identity fields the answer provides.",
    ).format(
        sector_advice=sector_advice(profile.get("activity_type")),
        font_advice=_font_advice(branding),
        fonts=FONT_CHOICES,
    )

    brief_field = ""
    if step >= total:
        instruction += (
            ' This is the last question: also write "ai_generated_brief", one paragraph '
            f"summarising {name}'s complete visual identity from all answers."
        )
        brief_field = ',\n  "ai_generated_brief": "Paragraph summarising the visual identity"'

    return f"""You are a visual branding assistant. You help {name} define their brand charter.

══ CONTEXT ══
{chr(10).join(context_lines)}

══ STEP {step}/{total} ══
Question asked: "{current.question}"
User's answer: "{answer}"

══ INSTRUCTION ══
{instruction}

══ RULES ══
- Warm, direct, friendly tone
- Be specific and concrete in your suggestions
- No design jargon
- Feedback is 2-4 sentences max

══ FORMAT (strict JSON, nothing else) ══
{{
  "feedback": "Kind comment on the answer",
  "suggestion": "Concrete, actionable suggestion",
  "extracted": {{ ... fields to prefill }}{brief_field}
}}"""

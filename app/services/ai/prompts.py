"""Prompt templates for the story assistant."""

from typing import Dict, Optional

SAFETY_GUIDELINES = """SAFETY GUIDELINES (MANDATORY):
- No violence, weapons, injury, death or scary imagery beyond gentle suspense
- No romance, brand names, real people or personal information
- Keep vocabulary and themes right for the writer's age
- Encourage creativity, kindness and positive values"""

JSON_ONLY = "Respond in JSON format only, with no text before or after the JSON object."

AGE_GROUP_LABELS = {
    "toddler": "early childhood",
    "early": "early elementary",
    "middle": "late elementary",
    "teen": "middle school",
    "older_teen": "high school",
}


def age_group_label(age: Optional[int]) -> str:
    """Reader description for an age in years."""
    if age is None:
        return AGE_GROUP_LABELS["middle"]
    if age <= 5:
        return AGE_GROUP_LABELS["toddler"]
    if age <= 8:
        return AGE_GROUP_LABELS["early"]
    if age <= 12:
        return AGE_GROUP_LABELS["middle"]
    if age <= 15:
        return AGE_GROUP_LABELS["teen"]
    return AGE_GROUP_LABELS["older_teen"]


def writing_system_prompt(age: Optional[int]) -> str:
    """System prompt for opening and collaboration requests."""
    years = f"aged {age}" if age else "aged 6-12"
    return "\n".join([
        f"You are a creative writing assistant for children {years}.",
        "Generate age-appropriate, engaging and educational story content.",
        f"Keep vocabulary and themes suitable for {age_group_label(age)} readers.",
        "",
        SAFETY_GUIDELINES,
        "",
        JSON_ONLY,
    ])


def assessment_system_prompt(age: Optional[int]) -> str:
    years = f"aged {age}" if age else "aged 6-12"
    return "\n".join([
        f"You are an educational writing coach assessing stories by children {years}.",
        "Assess stories for grammar, creativity and overall quality.",
        f"Give encouraging feedback appropriate for {age_group_label(age)} learners.",
        "Focus on positive reinforcement while suggesting improvements.",
        "",
        JSON_ONLY,
    ])


def build_opening_prompt(elements: Dict[str, str], age: Optional[int]) -> str:
    """
    Prompt for the first lines of a new story.

    Args:
        elements: Human-readable story elements (genre, setting, ...).
        age: Writer's age in years.

    Returns:
        User prompt asking for ``{"opening", "prompts"}`` JSON.
    """
    return f"""Create a story opening based on these elements:
Genre: {elements['genre']}
Setting: {elements['setting']}
Character: {elements['character']}
Mood: {elements['mood']}
Conflict: {elements['conflict']}
Theme: {elements['theme']}

Writer's age: {age or 'unknown'}

Respond with JSON containing:
{{
  "opening": "2-3 sentence story opening",
  "prompts": {{
    "continue": ["3 different continuation prompts"],
    "twist": ["3 different plot twist prompts"],
    "character": ["3 different new character prompts"],
    "challenge": ["3 different challenge prompts"]
  }}
}}"""


COLLABORATION_TASKS = {
    "continue": "Write 2-3 sentences that continue the story naturally from where it stops.",
    "twist": "Suggest one surprising but gentle plot twist in 2-3 sentences.",
    "character": "Introduce one new character in 2-3 sentences: their name, look and why they join the story.",
    "challenge": "Describe one challenge the main character must face next, in 2-3 sentences.",
}


def build_collaboration_prompt(
    response_type: str,
    story_content: str,
    elements: Dict[str, str],
    user_input: str = "",
) -> str:
    """Prompt for one mid-story help request."""
    excerpt = story_content[-1500:] if story_content else "(the story has not started yet)"
    parts = [
        f"The child is writing a {elements['mood']} {elements['genre']} story set in the "
        f"{elements['setting']}, about a {elements['character']}, with the theme of {elements['theme']}.",
        "",
        "STORY SO FAR:",
        excerpt,
        "",
        f"TASK: {COLLABORATION_TASKS[response_type]}",
    ]
    if user_input:
        parts.extend(["", f"The child asked: {user_input}"])
    parts.extend(["", 'Respond with JSON containing: {"response": "your text"}'])
    return "\n".join(parts)


def build_assessment_prompt(content: str, elements: Optional[Dict[str, str]], age: Optional[int]) -> str:
    element_line = ""
    if elements:
        element_line = (
            f"\nOriginal elements: Genre: {elements['genre']}, Setting: {elements['setting']}, "
            f"Character: {elements['character']}\n"
        )
    return f"""Assess this story written by a {age or 'young'}-year-old:

Story: "{content}"
{element_line}
Respond with JSON containing:
{{
  "grammar_score": score_0_to_100,
  "creativity_score": score_0_to_100,
  "overall_score": score_0_to_100,
  "feedback": "encouraging paragraph about what they did well",
  "suggestions": ["2-3 specific improvement suggestions"],
  "strengths": ["2-3 things they did really well"],
  "improvements": ["2-3 areas to work on"],
  "reading_level": "age-appropriate reading level assessment"
}}"""

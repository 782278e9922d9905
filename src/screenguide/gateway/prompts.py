"""Prompt assembly for frame analysis, chat replies, and session titles."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from screenguide.domain.models import ConversationTurn

DEFAULT_GOAL = "Assist user with their current task"
MAX_STEPS_IN_PROMPT = 5

FRAME_INSTRUCTIONS = (
    "Analyze the screen image and provide clear, concise guidance on what the user "
    "should do next. Be specific about which UI elements to click or interact with. "
    "Keep your response brief and actionable (2-3 sentences max)."
)

CHAT_INSTRUCTIONS = (
    "Provide a helpful, concise response that guides the user toward their goal. "
    "If they're asking about what's on the screen, describe what you see and "
    "suggest next steps."
)

FIRST_MESSAGE_INSTRUCTIONS = (
    "This is the user's first message and describes what they want to accomplish. "
    "Acknowledge the goal and give the first concrete step."
)


def _format_steps(step_history: Sequence[str]) -> list[str]:
    if not step_history:
        return []
    recent = step_history[-MAX_STEPS_IN_PROMPT:]
    lines = ["Guidance already given (most recent last):"]
    lines.extend(f"- {step}" for step in recent)
    return lines


def _format_metadata(metadata: dict[str, Any]) -> list[str]:
    lines: list[str] = []
    if metadata.get("currentStep") is not None:
        lines.append(f"- Current Step: {metadata['currentStep']}")
    mouse = metadata.get("mousePosition")
    if isinstance(mouse, dict) and "x" in mouse and "y" in mouse:
        lines.append(f"- Mouse Position: ({mouse['x']}, {mouse['y']})")
    if metadata.get("detectedElements"):
        lines.append(f"- Detected UI Elements: {metadata['detectedElements']}")
    known = {"currentStep", "mousePosition", "detectedElements"}
    for key, value in metadata.items():
        if key not in known:
            lines.append(f"- {key}: {value}")
    return lines


def build_frame_prompt(goal: str, metadata: dict[str, Any], step_history: Sequence[str]) -> str:
    """Prompt sent alongside a screen frame."""
    parts = [
        "You are an AI assistant helping a user accomplish a task on their computer.",
        "",
        f"User's Goal: {goal or DEFAULT_GOAL}",
    ]
    context = _format_metadata(metadata)
    if context:
        parts += ["", "Current Context:", *context]
    steps = _format_steps(step_history)
    if steps:
        parts += ["", *steps]
    parts += ["", FRAME_INSTRUCTIONS]
    return "\n".join(parts)


def build_chat_prompt(
    text: str,
    history_tail: Iterable[ConversationTurn],
    goal: str,
    step_history: Sequence[str],
    is_first_message: bool,
) -> str:
    """Prompt for a chat turn, carrying recent conversation and guidance."""
    parts = [
        "You are a helpful AI assistant guiding a user through tasks on their computer.",
        "",
        f"User's Goal: {goal or 'General assistance'}",
    ]
    history = [f"{turn.role}: {turn.content}" for turn in history_tail]
    if history:
        parts += ["", "Conversation History:", *history]
    steps = _format_steps(step_history)
    if steps:
        parts += ["", *steps]
    parts += ["", f"Current User Message: {text}", ""]
    if is_first_message:
        parts.append(FIRST_MESSAGE_INSTRUCTIONS)
    parts.append(CHAT_INSTRUCTIONS)
    return "\n".join(parts)


def build_title_prompt(messages: Iterable[str]) -> str:
    """Prompt asking for a short title summarizing a saved session."""
    summary = " ".join(list(messages)[:5])
    return (
        f'Based on this conversation: "{summary}"\n\n'
        "Generate a short, descriptive title (4-6 words max) that captures the main "
        "topic or goal. Only return the title, nothing else."
    )

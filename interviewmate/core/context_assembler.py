"""Build the ordered context handed to the generation backend."""

from dataclasses import dataclass, field

from interviewmate.core.conversation import ChatTurn, SimilarityMatch
from interviewmate.core.languages import language_label

NO_CONTEXT_PLACEHOLDER = "No additional context available."

PERSONA_TEMPLATE = """
You are {name}.
{instruction}

Always respond in {language}.

Here is relevant context from past conversations or knowledge base:
{relevant_context}
"""


@dataclass
class Persona:
    """Persona fields read from the interview-mate record."""

    name: str
    instruction: str


@dataclass
class AssembledContext:
    """Persona instruction followed by the chat turns, latest user message last."""

    system: str
    turns: list[ChatTurn] = field(default_factory=list)


def build_persona_instruction(
    name: str,
    instruction: str,
    language: str,
    matches: list[SimilarityMatch] | None = None,
) -> str:
    """
    Render the persona instruction.

    Args:
        name: Persona display name
        instruction: Free-form behaviour instructions
        language: Target response language label
        matches: Optional similarity matches joined in as relevant context

    Returns:
        Instruction text; the placeholder stands in when there are no matches
    """
    relevant = "\n".join(m.content for m in matches or [] if m.content)
    return PERSONA_TEMPLATE.format(
        name=name,
        instruction=instruction,
        language=language,
        relevant_context=relevant or NO_CONTEXT_PLACEHOLDER,
    )


def assemble_context(
    persona: Persona,
    history: list[ChatTurn],
    user_message: str,
    matches: list[SimilarityMatch] | None = None,
    language_code: str | None = None,
) -> AssembledContext:
    """
    Combine persona, recent history and the live user message.

    The history is read after the user turn was appended, but it may come
    from the window cache and miss that turn. The live message is appended
    only when the history does not already end with the same user turn, so
    it appears exactly once either way.
    """
    system = build_persona_instruction(
        name=persona.name,
        instruction=persona.instruction,
        language=language_label(language_code),
        matches=matches,
    )

    turns = list(history)
    live = ChatTurn.user(user_message.strip())
    if not turns or turns[-1] != live:
        turns.append(live)

    return AssembledContext(system=system, turns=turns)

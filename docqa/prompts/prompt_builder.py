# docqa/prompts/prompt_builder.py

from typing import Dict, List, Sequence

from docqa.prompts.system_prompts import STANDALONE_QUESTION_PROMPT
from docqa.retrieval.result import RetrievalResult


def build_document_prompt(question: str, result: RetrievalResult) -> str:
    """
    Build grounded prompt from the chunks the cascade selected.

    The system prompt is sent separately by the model client,
    so this only carries context and question.
    """

    blocks = []

    for i, scored in enumerate(result.chunks, 1):

        header = [f"Context {i}"]

        if scored.chunk.page_number is not None:
            header.append(f"Page: {scored.chunk.page_number}")

        if scored.score is not None:
            header.append(f"Score: {scored.score:.3f}")

        blocks.append(f"[{' | '.join(header)}]\n{scored.chunk.text}")

    context_block = "\n\n".join(blocks)

    prompt = f"""
DOCUMENT CONTEXT:
----------------
{context_block}
----------------

QUESTION:
{question}

INSTRUCTIONS:

Answer using ONLY the DOCUMENT CONTEXT above.

If the answer does not exist in the context, say:
"I don't have enough information in the document to answer this."

FINAL ANSWER:
"""

    return prompt.strip()


def build_standalone_question_prompt(question: str, history: Sequence[Dict]) -> str:
    """
    history: list of {"role": "user"|"assistant", "text": str}
    """

    lines: List[str] = []

    for turn in history:

        role = "User" if turn.get("role") == "user" else "Assistant"

        lines.append(f"{role}: {turn.get('text', '')}")

    conversation = "\n".join(lines)

    prompt = f"""
{STANDALONE_QUESTION_PROMPT}

CONVERSATION:
{conversation}

FOLLOW-UP QUESTION:
{question}

STANDALONE QUESTION:
"""

    return prompt.strip()

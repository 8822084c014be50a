import logging

from typing import Dict, Optional, Sequence

from docqa.config import HISTORY_TURNS
from docqa.prompts.prompt_builder import (
    build_document_prompt,
    build_standalone_question_prompt,
)
from docqa.prompts.system_prompts import (
    DOCUMENT_QA_SYSTEM_PROMPT,
    STANDALONE_QUESTION_PROMPT,
)
from docqa.retrieval.result import RetrievalResult

logger = logging.getLogger(__name__)


class ChatChain:
    """
    Optional LLM steps around the retrieval cascade.

    rephrase() turns a follow-up into a standalone question and never
    raises; generate_answer() raises so the caller can fall back to a
    template answer.
    """

    def __init__(self, llm_client, history_turns: int = HISTORY_TURNS):

        self._llm = llm_client
        self._history_turns = history_turns

    def rephrase(self, question: str, history: Optional[Sequence[Dict]] = None) -> str:

        if not history:
            return question

        recent = list(history)[-self._history_turns:]

        prompt = build_standalone_question_prompt(question, recent)

        try:

            rephrased = self._llm.generate(prompt, system_prompt=STANDALONE_QUESTION_PROMPT)

        except Exception as e:

            logger.warning(
                "Question rephrase failed, using original question",
                extra={"error": str(e)},
            )

            return question

        rephrased = (rephrased or "").strip()

        if not rephrased:
            return question

        logger.info(
            "Question rephrased",
            extra={
                "original": question,
                "rephrased": rephrased,
                "history_turns": len(recent),
            },
        )

        return rephrased

    def generate_answer(self, question: str, result: RetrievalResult) -> str:

        prompt = build_document_prompt(question, result)

        answer = self._llm.generate(prompt, system_prompt=DOCUMENT_QA_SYSTEM_PROMPT)

        if not answer or not answer.strip():
            raise ValueError("LLM returned an empty answer")

        return answer.strip()

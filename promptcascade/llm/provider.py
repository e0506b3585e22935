"""Generation provider abstraction for pluggable LLM backends."""

from abc import ABC, abstractmethod

from promptcascade.schemas.generation import GenerationRequest, GenerationResult, QuestionInterrupt

# Name of the tool offered to question nodes so the model can pause and ask.
ASK_QUESTION_TOOL = "ask_user_question"


class GenerationProvider(ABC):
    """
    Abstract generation provider - plug in any LLM backend.

    Implementations should handle:
    - API authentication
    - Request formatting (messages, response format, question tool)
    - Usage reporting
    - Resuming an interrupted conversation from ``resume_response_id``

    Errors are raised as-is; the node executor wraps them.
    """

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResult | QuestionInterrupt:
        """
        Run one generation call.

        Args:
            request: The resolved request. When ``request.is_resume`` is true
                the provider continues the conversation identified by
                ``resume_response_id``, supplying ``resume_answer`` as the
                answer to the pending question.

        Returns:
            GenerationResult when the model finished, or QuestionInterrupt
            when it paused to ask the user something.
        """

    def discard(self, response_id: str) -> None:
        """
        Drop any state kept for a conversation that will never be resumed.

        Called after a question is cancelled or the question limit is hit.
        Providers that keep nothing between calls can ignore it.
        """

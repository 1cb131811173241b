"""
LLM client for the OpenAI chat-completions API using LangChain.

One client is built per run from that run's `RunConfig` (model, API key,
temperature); nothing about credentials is process-wide.
"""

from typing import Any, Dict, List, Optional
from langchain_openai import ChatOpenAI
from langchain_core.messages import HumanMessage, BaseMessage

from ..config import LLMConfig
from ..domain.pipeline import RunConfig
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id
from ..utils.text_utils import InputValidator
from ..domain.errors import LLMError


logger = get_module_logger()

JSON_OBJECT_FORMAT = {"type": "json_object"}


class LLMClient:
    """
    Thin completion client over LangChain's ChatOpenAI.

    Prompt construction and output parsing live in the stage agents; this
    class only sends text and returns text.

    The client never retries: `max_retries=0` is passed to the SDK and every
    retry decision belongs to the pipeline's correction loop.

    Usage:
        client = LLMClient(settings.llm, run_config)
        await client.connect()

        text = await client.complete("Return {\"ok\": true} as JSON", structured_output=True)

        await client.close()
    """

    def __init__(self, config: LLMConfig, run_config: RunConfig):
        """
        Initialize LLM client.

        Args:
            config: Server-wide LLM configuration (limits, base URL)
            run_config: Model, key and temperature of this run
        """
        self.config = config
        self.run_config = run_config
        self._llm: Optional[ChatOpenAI] = None
        self._is_connected = False

        logger.info(
            "LLMClient initialized",
            model=run_config.model,
            base_url=config.base_url,
            temperature=run_config.temperature,
            max_tokens=config.max_tokens
        )

    async def connect(self) -> None:
        """
        Build the LangChain ChatOpenAI client.

        No API call is made here; credentials are checked on first use.

        Raises:
            LLMError: If initialization fails
        """
        if self._is_connected:
            logger.warning("LLM client already connected")
            return

        trace_id = current_trace_id()

        try:
            self._llm = ChatOpenAI(
                model=self.run_config.model,
                api_key=self.run_config.api_key,
                base_url=self.config.base_url,
                temperature=self.run_config.temperature,
                max_tokens=self.config.max_tokens,
                timeout=self.config.timeout_seconds,
                max_retries=0,
            )
        except Exception as e:
            error_msg = f"Failed to initialize LLM client: {e}"
            logger.error(error_msg, error_type=type(e).__name__, trace_id=trace_id)
            raise LLMError(error_msg) from e

        self._is_connected = True
        logger.info("LLM client initialized successfully", trace_id=trace_id)

    async def close(self) -> None:
        """Release the underlying client."""
        # ChatOpenAI holds no resources that need explicit cleanup
        self._is_connected = False
        self._llm = None

    def is_connected(self) -> bool:
        """Check if LLM client is connected."""
        return self._is_connected and self._llm is not None

    async def complete(
        self,
        prompt: str,
        model: Optional[str] = None,
        structured_output: bool = False,
    ) -> str:
        """
        Send one prompt and return the raw response text.

        Args:
            prompt: Full prompt text (sent as a single user message)
            model: Optional model override for this call
            structured_output: If True, request a JSON object response
                (OpenAI JSON mode). Parsing stays with the caller.

        Returns:
            Raw response text; unstructured answers may still carry
            markdown code fences

        Raises:
            LLMError: If the call fails, the prompt is too large, or the
                response is empty
        """
        if not self.is_connected() or self._llm is None:
            raise LLMError("LLM client is not connected")

        try:
            InputValidator.validate_total_chars(prompt=prompt, max_chars=self.config.max_input_chars)
        except ValueError as e:
            raise LLMError(str(e)) from e

        trace_id = current_trace_id()
        logger.info(
            "Requesting completion",
            prompt_length=len(prompt),
            structured_output=structured_output,
            model=model or self.run_config.model,
            trace_id=trace_id
        )
        logger.debug("Completion prompt", prompt=prompt, trace_id=trace_id)

        bind_kwargs: Dict[str, Any] = {}
        if model is not None:
            bind_kwargs["model"] = model
        if structured_output:
            bind_kwargs["response_format"] = JSON_OBJECT_FORMAT

        llm = self._llm.bind(**bind_kwargs) if bind_kwargs else self._llm
        messages: List[BaseMessage] = [HumanMessage(content=prompt)]

        try:
            response = await llm.ainvoke(messages)
        except Exception as e:
            error_msg = f"LLM completion failed: {e}"
            logger.error(
                error_msg,
                error_type=type(e).__name__,
                prompt_length=len(prompt),
                trace_id=trace_id
            )
            raise LLMError(error_msg) from e

        content = str(response.content) if response is not None and response.content else ""
        if not content.strip():
            raise LLMError("LLM returned empty response")

        logger.info("Completion received", response_length=len(content), trace_id=trace_id)
        return content

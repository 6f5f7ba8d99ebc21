"""
Amazon Bedrock generation capability.

Each call is a single attempt; deadlines and bounded retries are applied by
the caller through utils.retry so every capability shares one retry policy.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..models.core import DialogueTurn
from ..models.errors import CapabilityError
from .config import BedrockLLMConfig
from .logging_config import get_logger

logger = get_logger(__name__)


class BedrockLLMError(CapabilityError):
    """Custom exception for Bedrock LLM errors."""
    pass


class BedrockLLM:
    """Amazon Bedrock LLM client implementing the generation capability."""

    def __init__(self, config: Optional[BedrockLLMConfig] = None, client: Optional[Any] = None):
        """
        Initialize Bedrock LLM client.

        Args:
            config: BedrockLLMConfig instance, uses default if None
            client: Pre-built bedrock-runtime client (tests inject a stub)
        """
        if config is None:
            from .config import config as app_config
            config = app_config.bedrock_llm
        self.config = config
        self.model_id = config.model_id

        # Create Bedrock runtime client with timeout configuration
        self.bedrock_runtime = client or boto3.client('bedrock-runtime',
                                                      region_name=config.region,
                                                      config=BotoConfig(
                                                          connect_timeout=10,
                                                          read_timeout=config.read_timeout,
                                                          retries={'max_attempts': 0}  # Retries handled by utils.retry
                                                      ))

        logger.info(f'Initialized Bedrock LLM client with model: {self.model_id}')

    def generate(self,
                 system_prompt: str,
                 history: Sequence[DialogueTurn],
                 user_prompt: str,
                 timeout: Optional[float] = None) -> str:
        """Generation capability entry point used by participants.

        Prior dialogue turns are folded into a single user message because the
        Converse API requires the conversation to open with the user role.
        The deadline itself is enforced by the caller.
        """
        text, _ = self.generate_response(messages=self.build_messages(history, user_prompt), system_prompt=system_prompt)
        return text

    @staticmethod
    def build_messages(history: Sequence[DialogueTurn], user_prompt: str) -> List[Dict[str, Any]]:
        if history:
            previous = '\n\n'.join(f'{turn.participant_id}: {turn.message}' for turn in history)
            user_prompt = f'Previous discussion:\n{previous}\n\n{user_prompt}'
        return [{'role': 'user', 'content': [{'text': user_prompt}]}]

    def generate_response(self,
                          messages: List[Dict[str, Any]],
                          system_prompt: str,
                          max_tokens: Optional[int] = None,
                          temperature: Optional[float] = None,
                          stop_sequences: Optional[List[str]] = None) -> Tuple[str, Optional[Dict[str, Any]]]:
        """
        Generate a response with one Converse streaming call.

        Args:
            messages: List of message dictionaries in Bedrock format
            system_prompt: System prompt for the conversation
            max_tokens: Maximum tokens to generate (uses config default if None)
            temperature: Temperature for generation (uses config default if None)
            stop_sequences: Stop sequences for generation

        Returns:
            Tuple of (response_text, invoke_metrics)

        Raises:
            BedrockLLMError: If the call fails
        """
        inf_params = {
            'maxTokens': max_tokens or self.config.max_tokens,
            'temperature': self.config.temperature if temperature is None else temperature,
            'stopSequences': stop_sequences or [],
        }

        try:
            stream = self.bedrock_runtime.converse_stream(modelId=self.model_id,
                                                          messages=messages,
                                                          system=[{'text': system_prompt}],
                                                          inferenceConfig=inf_params).get('stream')

            msg = ''
            invoke_metrics = None
            if stream:
                for event in stream:
                    if 'contentBlockDelta' in event:
                        msg += event['contentBlockDelta']['delta']['text']
                    if 'metadata' in event:
                        invoke_metrics = {**event['metadata']['usage'], **event['metadata']['metrics']}

            logger.debug(f'Bedrock LLM response generated successfully (length: {len(msg)})')
            return msg, invoke_metrics

        except (ClientError, BotoCoreError) as e:
            logger.warning(f'Bedrock LLM call failed: {e}')
            raise BedrockLLMError(f'Bedrock LLM call failed: {e}')

    def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock LLM service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            response, _ = self.generate_response(messages=[{'role': 'user', 'content': [{'text': 'Hi'}]}],
                                                 system_prompt="Respond with just 'OK'.",
                                                 max_tokens=10,
                                                 temperature=0.0)
            return len(response.strip()) > 0

        except BedrockLLMError as e:
            logger.error(f'Bedrock LLM health check failed: {e}')
            return False

import json
import logging
from typing import Optional

from openai import OpenAI
from pydantic import ValidationError

from ..config import settings
from ..errors import FeatureDisabledError, ProviderError
from ..models import ExtractServiceRequestInfoInput, ExtractServiceRequestInfoOutput

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """You are an AI assistant designed to extract relevant information from service requests or customer complaints.

Given the following text, extract the required documents and potential agent skills needed to fulfill the request.

Text: {request_text}

Format your response as a JSON object with "requiredDocuments" and "potentialVleSkills" fields.
The "requiredDocuments" field should be a list of documents that are explicitly mentioned or strongly implied by the text.
The "potentialVleSkills" field should be a list of skills that a field agent would need to possess to complete the task described in the text.
Example:
{{
  "requiredDocuments": ["Aadhar card", "Property tax receipt"],
  "potentialVleSkills": ["Data entry", "Document verification", "Online form submission"]
}}
"""


class ServiceRequestExtractor:
    """Pulls required documents and agent skills out of free-text requests."""

    def __init__(self, client: Optional[OpenAI] = None):
        self.model_name = settings.AI_MODEL_NAME
        self.client = client
        if self.client is None and settings.ai_enabled:
            self.client = OpenAI(
                base_url=settings.AI_BASE_URL,
                api_key=settings.AI_API_KEY
            )

    def extract(self, payload: ExtractServiceRequestInfoInput) -> ExtractServiceRequestInfoOutput:
        if self.client is None:
            raise FeatureDisabledError("AI extraction is not configured (AI_API_KEY is missing).")

        prompt = EXTRACTION_PROMPT.format(request_text=payload.request_text)
        logger.info(f"======== AI Extract Input ========\n{payload.request_text}\n==================================")

        try:
            completion = self.client.chat.completions.create(
                model=self.model_name,
                messages=[{"role": "user", "content": prompt}],
                response_format={"type": "json_object"}
            )
        except Exception as e:
            logger.error(f"AI Generation Error: {str(e)}")
            raise ProviderError(f"AI provider request failed: {str(e)}")

        content = completion.choices[0].message.content if completion.choices else None
        logger.info(f"======== AI Extract Output ========\n{content}\n===================================")
        if not content:
            raise ProviderError("AI provider returned an empty response.")

        try:
            return ExtractServiceRequestInfoOutput.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"AI response did not match the extraction schema: {str(e)}")
            raise ProviderError("AI provider returned a malformed response.")

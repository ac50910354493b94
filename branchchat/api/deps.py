from functools import lru_cache

from branchchat.services.llm.factory import LLMFactory, LLMProvider


@lru_cache()
def get_llm_provider() -> LLMProvider:
    """Provider configured in settings, created on first use"""
    return LLMFactory.create()

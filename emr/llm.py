"""
LLM (Large Language Model) initialisation.
"""

import os
import sys
from typing import Optional

from langchain_openai import ChatOpenAI

from emr.config import LLM_TEMPERATURE, MODEL_NAME


def init_llm() -> Optional[ChatOpenAI]:
    """Return a ChatOpenAI instance, or None when no API key is configured."""
    if not os.getenv("OPENAI_API_KEY"):
        print("[WARN] OPENAI_API_KEY not set – transcript field extraction disabled",
              file=sys.stderr)
        return None
    llm = ChatOpenAI(model=MODEL_NAME, temperature=LLM_TEMPERATURE)
    print(f"[init] Using LLM model: {MODEL_NAME}")
    return llm

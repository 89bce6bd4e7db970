# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from .base import BaseLanguageModel, Completion, LanguageModel, prepare_messages
from .litellm_model import LiteLLMModel

"""
Built-in modules: single-shot prediction, step-by-step reasoning and tool use.
"""

from .chain_of_thought import ChainOfThought
from .predict import Predict
from .react import ReAct, Tool

# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from .assertions import assert_, suggest
from .config import Settings, configure, get_settings, reset_settings, settings_override
from .core.compiler import Compiler, CompilerBuilder, CompilerConfig
from .core.example import Example
from .core.prediction import Prediction
from .core.result import CompilationResult
from .core.trace import (
    Trace,
    TraceCollector,
    TraceContext,
    get_trace_collector,
    get_trace_context,
    init_tracing,
    reset_tracing,
    use_collector,
)
from .errors import (
    AssertionFailedError,
    ConfigurationError,
    MissingInputsError,
    ModelError,
    ModuleError,
    OptimizerError,
    ProgramError,
    SignatureError,
    SigilError,
    ValidationError,
)
from .field import Field, FieldType
from .module import Module, ModuleConfig, ModuleResult
from .modules import ChainOfThought, Predict, ReAct, Tool
from .optimizers import BootstrapFewShot, KNNFewShot, Optimizer
from .program import Program, ProgramConfig
from .signature import Signature

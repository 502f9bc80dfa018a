from .environment import Binding, Environment
from .evaluator import Evaluator
from .executor import Executor
from .loader import load_data
from .values import Artifact, Struct, Value

__all__ = [
    "Artifact",
    "Binding",
    "Environment",
    "Evaluator",
    "Executor",
    "Struct",
    "Value",
    "load_data",
]

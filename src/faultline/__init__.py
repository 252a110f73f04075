"""
faultline - fault-aware bounded async evaluation.

- faultline.core: error taxonomy, result envelope, logging, settings
- faultline.execution: worker pool, tasks, evaluator, faults, recovery
- faultline.demos: error-handling demo scenarios
"""

__version__ = "0.1.0"

from faultline.execution.evaluator import EvaluationResult, evaluate, evaluate_async  # noqa: E402

__all__ = ["EvaluationResult", "evaluate", "evaluate_async", "__version__"]

from .step_executor import StepExecutor

__all__ = ["StepExecutor"]

from .dispatcher import ChangeDispatcher
from .pipelines import HtmlPipeline, JsPipeline, Pipeline, SassPipeline
from .process_runner import ProcessRunner
from .status_reporter import StatusReporter
from .task_registry import TaskHandle, TaskRegistry

__all__ = [
    "ChangeDispatcher",
    "HtmlPipeline",
    "JsPipeline",
    "Pipeline",
    "ProcessRunner",
    "SassPipeline",
    "StatusReporter",
    "TaskHandle",
    "TaskRegistry",
]

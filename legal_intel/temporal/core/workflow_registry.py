from enum import Enum
from typing import Dict, List, Optional, Type


class WorkflowType(str, Enum):
    PIPELINE = "pipeline"


class WorkflowRegistry:
    """Central registry for workflow classes and the queue each runs on."""

    _workflows: Dict[str, Dict] = {}

    @classmethod
    def register(cls, category: WorkflowType, task_queue: Optional[str] = None):
        """Decorator to register a workflow class."""
        def decorator(workflow_cls: Type):
            cls._workflows[workflow_cls.__name__] = {
                "class": workflow_cls,
                "category": category,
                "task_queue": task_queue,
            }
            return workflow_cls
        return decorator

    @classmethod
    def get_workflows(cls, task_queue: Optional[str] = None) -> List[Type]:
        """Workflow classes for a queue; ones registered without a queue run on every queue."""
        return [
            entry["class"]
            for entry in cls._workflows.values()
            if task_queue is None or entry["task_queue"] in (None, task_queue)
        ]

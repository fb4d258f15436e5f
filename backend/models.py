from pydantic import AfterValidator, BaseModel
from typing import Annotated, Literal, Optional

Priority = Literal["high", "medium", "low"]


def _clean_title(title: str) -> str:
    """Trim a task title; blank titles are rejected."""
    title = title.strip()
    if not title:
        raise ValueError("Task title must not be blank")
    return title

TaskTitle = Annotated[str, AfterValidator(_clean_title)]

class Task(BaseModel):
    id: str
    title: str
    done: bool = False
    priority: Optional[Priority] = None
    position: int = 0  # 0-based order inside its plan

class TaskIn(BaseModel):
    id: Optional[str] = None  # generated when missing
    title: TaskTitle
    done: bool = False
    priority: Optional[Priority] = None

class TaskUpdate(BaseModel):
    # An explicit null only clears priority; null title/done are ignored
    title: Optional[TaskTitle] = None
    done: Optional[bool] = None
    priority: Optional[Priority] = None

    def changes(self) -> dict:
        """Fields sent in the request that should be applied."""
        return {
            field: value
            for field, value in self.model_dump(exclude_unset=True).items()
            if value is not None or field == "priority"
        }

class PlanSave(BaseModel):
    tasks: list[TaskIn]

class ReorderRequest(BaseModel):
    task_ids: list[str]

class ParagraphRequest(BaseModel):
    paragraph: str

class GeneratedTasksResponse(BaseModel):
    tasks: list[Task]
    count: int

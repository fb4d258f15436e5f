import logging

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)

from contextlib import asynccontextmanager  # noqa: E402
from datetime import date  # noqa: E402
import uuid  # noqa: E402

from fastapi import Depends, FastAPI, HTTPException  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from models import (  # noqa: E402
    Task,
    TaskUpdate,
    PlanSave,
    ReorderRequest,
    ParagraphRequest,
    GeneratedTasksResponse,
)
from database import (  # noqa: E402
    init_db,
    get_plans,
    get_plan,
    save_plan,
    delete_plan,
    reorder_plan,
    update_task_db,
    delete_task_db,
)
from ai_service import (  # noqa: E402
    AIServiceError,
    TaskListConverter,
    UserErrorCategory,
    check_api_key,
    get_default_converter,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    init_db()
    if not check_api_key():
        logger.warning("No Gemini API key configured; AI task generation is unavailable")
    yield
    # Shutdown (nothing to do)


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# HTTP status for each user-facing AI error category
AI_ERROR_STATUS = {
    UserErrorCategory.CREDENTIAL_MISSING: 503,
    UserErrorCategory.MALFORMED_RESPONSE: 502,
    UserErrorCategory.NETWORK_FAILURE: 504,
    UserErrorCategory.COMMUNICATION_FAILURE: 502,
}


def get_converter() -> TaskListConverter:
    return get_default_converter()


@app.get("/plans")
def get_plans_endpoint() -> dict[str, list[Task]]:
    return get_plans()


@app.get("/plans/{plan_date}")
def get_plan_endpoint(plan_date: date) -> list[Task]:
    return get_plan(plan_date.isoformat())


@app.put("/plans/{plan_date}")
def save_plan_endpoint(plan_date: date, plan_data: PlanSave) -> list[Task]:
    """Replace the plan for a date with the given tasks."""
    if not plan_data.tasks:
        raise HTTPException(status_code=400, detail="Add at least one task to the plan")
    try:
        return save_plan(plan_date.isoformat(), plan_data.tasks)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/plans/{plan_date}")
def delete_plan_endpoint(plan_date: date) -> dict:
    if not delete_plan(plan_date.isoformat()):
        raise HTTPException(status_code=404, detail="Plan not found")
    return {"status": "deleted"}


@app.post("/plans/{plan_date}/reorder")
def reorder_plan_endpoint(plan_date: date, reorder: ReorderRequest) -> list[Task]:
    try:
        result = reorder_plan(plan_date.isoformat(), reorder.task_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="Plan not found")
    return result


@app.patch("/tasks/{task_id}")
def update_task(task_id: str, task_data: TaskUpdate) -> Task:
    result = update_task_db(task_id, **task_data.changes())
    if not result:
        raise HTTPException(status_code=404, detail="Task not found")
    return result


@app.delete("/tasks/{task_id}")
def delete_task(task_id: str) -> dict:
    if not delete_task_db(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"status": "deleted"}


@app.get("/ai/status")
def ai_status() -> dict:
    """Whether AI task generation can be used (an API key is configured)."""
    return {"available": check_api_key()}


@app.post("/ai/tasks")
async def generate_tasks(
    request: ParagraphRequest,
    converter: TaskListConverter = Depends(get_converter),
) -> GeneratedTasksResponse:
    """
    Turn a paragraph into draft tasks. Drafts are not saved; the client adds
    them to its plan and saves it with PUT /plans/{date}.
    """
    if not request.paragraph.strip():
        raise HTTPException(status_code=400, detail="Please write a paragraph")

    try:
        titles = await converter.convert(request.paragraph)
    except AIServiceError as e:
        raise HTTPException(
            status_code=AI_ERROR_STATUS[e.category],
            detail={"error": e.category.value, "message": e.user_message},
        )

    tasks = [
        Task(id=str(uuid.uuid4()), title=title, done=False, position=position)
        for position, title in enumerate(titles)
    ]
    return GeneratedTasksResponse(tasks=tasks, count=len(tasks))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

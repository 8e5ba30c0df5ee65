import logging

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskboard.cache.decorators import async_cached, async_cached_expire
from taskboard.cache.layer import CacheLayer
from taskboard.core.errors import NotFoundError
from taskboard.models import Task, TaskCreate, TaskResponse, TaskUpdate, get_utc_now

logger = logging.getLogger(__name__)

TASKS_CACHE_KEY = "tasks"


def _tasks_key(*_, **__) -> str:
    return TASKS_CACHE_KEY


class TaskService:
    """
    Task CRUD. The full task list is cached under a single key; every write
    drops that key once the database commit has succeeded.
    """

    def __init__(self, db: AsyncSession, cache: CacheLayer):
        self.db = db
        self.cache = cache

    async def fetch_all_tasks(self) -> list[dict]:
        result = await self.db.exec(select(Task).order_by(Task.id))
        tasks = result.all()
        logger.debug("Loaded %d tasks from the database", len(tasks))
        return [TaskResponse.model_validate(t).model_dump(mode="json") for t in tasks]

    @async_cached(_tasks_key)
    async def list_tasks(self) -> list[dict]:
        return await self.fetch_all_tasks()

    async def get_task(self, task_id: int) -> Task:
        task = await self.db.get(Task, task_id)
        if not task:
            raise NotFoundError(f"Task with id {task_id} not found")
        return task

    @async_cached_expire(_tasks_key)
    async def create_task(self, task_data: TaskCreate) -> Task:
        task = Task.model_validate(task_data)
        self.db.add(task)
        await self.db.commit()
        await self.db.refresh(task)
        logger.info("Created task %s", task.id)
        return task

    @async_cached_expire(_tasks_key)
    async def update_task(self, task_id: int, task_data: TaskUpdate) -> Task:
        task = await self.get_task(task_id)
        update_data = task_data.model_dump(exclude_unset=True, exclude_none=True)
        task.sqlmodel_update(update_data)
        task.updated_at = get_utc_now()
        await self.db.commit()
        await self.db.refresh(task)
        logger.info("Updated task %s", task_id)
        return task

    @async_cached_expire(_tasks_key)
    async def delete_task(self, task_id: int) -> None:
        task = await self.get_task(task_id)
        await self.db.delete(task)
        await self.db.commit()
        logger.info("Deleted task %s", task_id)

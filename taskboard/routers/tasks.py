from fastapi import APIRouter, Depends, status

from taskboard.dependencies import CacheDep, SessionDep
from taskboard.models import TaskCreate, TaskResponse, TaskUpdate
from taskboard.services.task_service import TaskService

router = APIRouter(prefix="/tasks", tags=["tasks"])


def get_task_service(db: SessionDep, cache: CacheDep) -> TaskService:
    return TaskService(db, cache)


@router.get("", response_model=list[TaskResponse])
async def get_tasks(service: TaskService = Depends(get_task_service)):
    """List every task (served from the cache when warm)"""
    return await service.list_tasks()


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(task_data: TaskCreate, service: TaskService = Depends(get_task_service)):
    """Create a new task"""
    return await service.create_task(task_data)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: int, service: TaskService = Depends(get_task_service)):
    """Get a specific task by ID"""
    return await service.get_task(task_id)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: int, task_data: TaskUpdate, service: TaskService = Depends(get_task_service)
):
    return await service.update_task(task_id, task_data)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: int, service: TaskService = Depends(get_task_service)):
    """Delete a task"""
    await service.delete_task(task_id)

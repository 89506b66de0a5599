"""Task list and task directive interpreter"""
import logging
import time
from dataclasses import dataclass
from typing import List, Optional
from laila.models import Task, TaskDirective
from laila.storage import Storage

logger = logging.getLogger(__name__)

TASKS_KEY = "tasks"

def _new_task_id(tasks: List[Task]) -> str:
    """Time-ordered id, unique within the list"""
    candidate = time.time_ns() // 1000
    existing = {t.id for t in tasks}
    while str(candidate) in existing:
        candidate += 1
    return str(candidate)

def add_task(tasks: List[Task], title: str, priority: str = "medium", due_date: Optional[str] = None) -> List[Task]:
    task = Task(id=_new_task_id(tasks), title=title, priority=priority, due_date=due_date)
    return [task] + tasks

def toggle_task(tasks: List[Task], task_id: str) -> List[Task]:
    return [
        t.model_copy(update={"completed": not t.completed}) if t.id == task_id else t
        for t in tasks
    ]

def delete_task(tasks: List[Task], task_id: str) -> List[Task]:
    return [t for t in tasks if t.id != task_id]

def pending_tasks(tasks: List[Task]) -> List[Task]:
    return [t for t in tasks if not t.completed]

def find_by_title(tasks: List[Task], title: str, include_completed: bool) -> Optional[Task]:
    """First task whose title matches case-insensitively"""
    wanted = title.strip().lower()
    for task in tasks:
        if not include_completed and task.completed:
            continue
        if task.title.lower() == wanted:
            return task
    return None

def tasks_summary(tasks: List[Task]) -> str:
    pending = pending_tasks(tasks)
    completed = [t for t in tasks if t.completed]
    high = [t for t in pending if t.priority == "high"]

    if not pending:
        return "You have no pending tasks. You're all caught up!"

    summary = f"You have {len(pending)} pending task{'s' if len(pending) > 1 else ''}"
    if completed:
        summary += f" and {len(completed)} completed"
    summary += ".\n\n"

    if high:
        summary += "High priority:\n" + "\n".join(f"- {t.title}" for t in high) + "\n\n"

    summary += "All pending:\n" + "\n".join(f"- [{t.priority}] {t.title}" for t in pending)
    return summary

@dataclass
class DirectiveResult:
    tasks: List[Task]
    changed: bool = False
    show_panel: bool = False
    summary: Optional[str] = None

def apply_directive(tasks: List[Task], directive: TaskDirective) -> DirectiveResult:
    """Apply a model task directive; unmatched titles are a silent no-op"""
    if directive.action == "list":
        return DirectiveResult(tasks=tasks, show_panel=True, summary=tasks_summary(tasks))

    if not directive.title:
        return DirectiveResult(tasks=tasks)

    if directive.action == "add":
        updated = add_task(tasks, directive.title, directive.priority, directive.due_date)
        return DirectiveResult(tasks=updated, changed=True)

    include_completed = directive.action == "delete"
    match = find_by_title(tasks, directive.title, include_completed=include_completed)
    if match is None:
        return DirectiveResult(tasks=tasks)

    if directive.action == "complete":
        return DirectiveResult(tasks=toggle_task(tasks, match.id), changed=True)
    return DirectiveResult(tasks=delete_task(tasks, match.id), changed=True)

class TaskList:
    """Persisted task list, newest first"""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def load(self) -> List[Task]:
        raw = await self.storage.get_setting(TASKS_KEY, [])
        return [Task.model_validate(item) for item in raw]

    async def save(self, tasks: List[Task]):
        await self.storage.save_setting(TASKS_KEY, [t.model_dump(mode="json") for t in tasks])

    async def add(self, title: str, priority: str = "medium", due_date: Optional[str] = None) -> List[Task]:
        tasks = add_task(await self.load(), title, priority, due_date)
        await self.save(tasks)
        return tasks

    async def toggle(self, task_id: str) -> List[Task]:
        tasks = toggle_task(await self.load(), task_id)
        await self.save(tasks)
        return tasks

    async def delete(self, task_id: str) -> List[Task]:
        tasks = delete_task(await self.load(), task_id)
        await self.save(tasks)
        return tasks

    async def apply(self, directive: TaskDirective) -> DirectiveResult:
        result = apply_directive(await self.load(), directive)
        if result.changed:
            await self.save(result.tasks)
            logger.info("Applied task directive %s %r", directive.action, directive.title)
        return result

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware

import config
import database
from commands import handle_text
from line_client import LineMessenger
from messages import render_result
from models import AccountContext, TaskUpdate, WebhookRequest
from reminders import (
    dispatch_due_reminders,
    generate_recurring_instances,
    refresh_one_shot_reminders,
    reschedule_task,
    retire_task,
    run_cleanup,
    send_daily_summary,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    database.init_db()
    yield
    # Shutdown
    messenger.close()

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

messenger = LineMessenger()


def current_context() -> AccountContext:
    """Account timezone and the current instant, fixed for one request."""
    return AccountContext.at(config.get_timezone())


def require_cron_key(x_api_key: Optional[str], authorization: Optional[str]) -> None:
    expected = config.CRON_API_KEY
    if not expected:
        return
    bearer = None
    if authorization and authorization.lower().startswith("bearer "):
        bearer = authorization[7:].strip()
    if expected not in (x_api_key, bearer):
        raise HTTPException(status_code=401, detail="Invalid API key")


def require_account() -> None:
    if not config.LINE_USER_ID:
        raise HTTPException(status_code=503, detail="LINE_USER_ID is not configured")


def push_to_account(text: str) -> None:
    messenger.push_text(config.LINE_USER_ID, text)


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "timezone": config.TIMEZONE}


@app.get("/tasks")
def get_tasks() -> list[dict]:
    """Active tasks in display order; ``index`` is the ID used by update/delete."""
    return [
        {"index": index, **task.model_dump(mode="json")}
        for index, task in enumerate(database.list_active_tasks(), start=1)
    ]


@app.patch("/tasks/{task_id}")
def update_task(task_id: str, task_data: TaskUpdate) -> dict:
    """Edit a task directly; its pending reminders are rebuilt."""
    ctx = current_context()
    changes = task_data.to_changes(ctx.timezone)
    if not changes:
        raise HTTPException(status_code=400, detail="No valid update fields provided")
    task = reschedule_task(task_id, changes, ctx)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task.model_dump(mode="json")


@app.delete("/tasks/{task_id}")
def delete_task(task_id: str) -> dict:
    if not retire_task(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"status": "deleted"}


@app.post("/webhook")
def webhook(payload: WebhookRequest) -> dict:
    """Run each incoming text message as a command and reply with the result."""
    handled = 0
    for event in payload.events:
        if event.type != "message" or event.message is None or event.message.type != "text":
            logger.debug("Ignoring webhook event of type %s", event.type)
            continue

        ctx = current_context()
        result = handle_text(event.message.text or "", ctx)
        reply = render_result(result, ctx)
        handled += 1

        try:
            if event.reply_token:
                messenger.reply_text(event.reply_token, reply)
            elif event.source and event.source.user_id:
                messenger.push_text(event.source.user_id, reply)
        except httpx.HTTPError:
            logger.exception("Failed to deliver reply for %s command", result.kind.value)

    return {"status": "ok", "handled": handled}


@app.get("/cron/reminders")
def cron_reminders(
    x_api_key: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
) -> dict:
    require_cron_key(x_api_key, authorization)
    require_account()

    summary = dispatch_due_reminders(current_context(), push_to_account)
    logger.info(
        "Reminder dispatch: due=%s sent=%s skipped=%s expired=%s failed=%s",
        summary["due"], summary["sent"], summary["skipped"], summary["expired"], summary["failed"],
    )
    return {"status": "ok", **summary}


@app.get("/cron/daily")
def cron_daily(
    x_api_key: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
) -> dict:
    """Morning summary of today's tasks, sent once a day."""
    require_cron_key(x_api_key, authorization)
    require_account()
    return {"status": "ok", **send_daily_summary(current_context(), push_to_account)}


@app.get("/cron/recurring")
def cron_recurring(
    x_api_key: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
) -> dict:
    require_cron_key(x_api_key, authorization)
    ctx = current_context()
    return {
        "status": "ok",
        "recurring": generate_recurring_instances(ctx),
        "one_shot": refresh_one_shot_reminders(ctx),
    }


@app.get("/cron/cleanup")
def cron_cleanup(
    x_api_key: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
) -> dict:
    require_cron_key(x_api_key, authorization)
    return {"status": "ok", **run_cleanup(current_context())}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

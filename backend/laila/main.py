"""Laila - Main FastAPI Application"""
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from contextlib import asynccontextmanager
from typing import Optional
import logging

from laila.config import settings
from laila.models import (
    AuthorizationRequest, ChatRequest, MessagesUpdateRequest, PreferencesRequest,
    RenameRequest, SessionCreateRequest, SystemCommandRequest, TaskCreateRequest,
    TTSRequest, WhatsAppRequest, YouTubeRequest
)
from laila.assistant import ACTIVE_SESSION_KEY, Assistant, AssistantBusyError
from laila.gate import GateError
from laila.speech import synthesize
from laila.storage import Storage
from laila.tools import YouTubeSearchError

logger = logging.getLogger(__name__)

PREFERENCE_KEYS = ("theme", "onboarding_seen", ACTIVE_SESSION_KEY)

def configure_logging():
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

def create_app(assistant: Optional[Assistant] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize on startup"""
        configure_logging()
        if assistant is None:
            storage = Storage()
            app.state.assistant = Assistant(storage)
        else:
            app.state.assistant = assistant
        await app.state.assistant.storage.init_db()
        logger.info("Laila is online (storage: %s)", app.state.assistant.storage.mode)
        yield

    app = FastAPI(
        title="Laila",
        description="Personal AI assistant with gated system commands",
        version="1.0.0",
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.cors_origins == "*" else settings.cors_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        reason = errors[0]["msg"] if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"detail": reason})

    def get_assistant(request: Request) -> Assistant:
        return request.app.state.assistant

    @app.get("/api")
    async def root():
        """Health check"""
        return {"message": "Laila is online"}

    @app.post("/api/chat")
    async def chat(body: ChatRequest, request: Request):
        """Send a user message and get the assistant's turn"""
        if not body.message.strip():
            raise HTTPException(status_code=400, detail="No message provided")
        try:
            return await get_assistant(request).handle_message(body.session_id, body.message)
        except AssistantBusyError as e:
            raise HTTPException(status_code=429, detail=str(e))

    @app.get("/api/command/pending")
    async def pending_command(request: Request, session_id: str = Query(...)):
        """Authorization prompt waiting for the user, if any"""
        return {"pending": get_assistant(request).pending(session_id)}

    @app.post("/api/command/respond")
    async def respond_command(body: AuthorizationRequest, request: Request):
        """Deny, allow, confirm or authenticate the pending command"""
        try:
            return await get_assistant(request).respond(body.session_id, body.action, body.password)
        except GateError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except AssistantBusyError as e:
            raise HTTPException(status_code=429, detail=str(e))

    @app.post("/api/system")
    async def run_system_command(body: SystemCommandRequest, request: Request):
        """Run a command line through the restricted shell"""
        if not body.command or not body.command.strip():
            raise HTTPException(status_code=400, detail="No command provided")

        result = await get_assistant(request).dispatcher.shell.run(body.command, body.type)
        if result.refused:
            raise HTTPException(status_code=403, detail=result.output)
        return {"success": result.success, "output": result.output}

    @app.post("/api/whatsapp")
    async def send_whatsapp(body: WhatsAppRequest, request: Request):
        """Open a WhatsApp chat, send a message or start a call"""
        if not body.contact or not body.contact.strip():
            raise HTTPException(status_code=400, detail="No contact provided")

        result = await get_assistant(request).dispatcher.whatsapp.run(body.contact, body.message)
        return {"success": result.success, "output": result.output}

    @app.post("/api/youtube")
    async def search_youtube(body: YouTubeRequest, request: Request):
        """Resolve a query to a YouTube watch URL"""
        if not body.query or not body.query.strip():
            raise HTTPException(status_code=400, detail="No query")
        try:
            lookup = await get_assistant(request).dispatcher.youtube.lookup(body.query)
        except YouTubeSearchError:
            raise HTTPException(status_code=500, detail="Failed to search YouTube")
        return lookup

    @app.post("/api/tts")
    async def text_to_speech(body: TTSRequest):
        """Synthesize speech audio"""
        if not body.text or not body.text.strip():
            raise HTTPException(status_code=400, detail="No text provided")

        voice = settings.tts_voice_alt if body.voice == "urdu" else settings.tts_voice
        try:
            audio = await synthesize(body.text, voice)
        except Exception as e:
            logger.error("TTS failed: %s", e)
            raise HTTPException(status_code=500, detail="TTS generation failed")
        return Response(content=audio, media_type="audio/mpeg", headers={"Cache-Control": "no-cache"})

    @app.get("/api/sessions")
    async def list_sessions(request: Request):
        """List chat sessions"""
        return {"sessions": await get_assistant(request).storage.list_sessions()}

    @app.post("/api/sessions")
    async def create_session(body: SessionCreateRequest, request: Request):
        """Create a chat session"""
        if not body.id or not body.title:
            raise HTTPException(status_code=400, detail="id and title required")
        session = await get_assistant(request).storage.create_session(body.id, body.title)
        return {"session": session}

    @app.delete("/api/sessions")
    async def clear_sessions(request: Request):
        """Delete every chat session"""
        await get_assistant(request).clear_sessions()
        return {"success": True}

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str, request: Request):
        """Get a session with its messages"""
        session = await get_assistant(request).storage.get_session(session_id)
        if not session:
            raise HTTPException(status_code=404, detail="Session not found")
        return {"session": session}

    @app.put("/api/sessions/{session_id}")
    async def update_messages(session_id: str, body: MessagesUpdateRequest, request: Request):
        """Replace a session's messages"""
        if body.messages is None:
            raise HTTPException(status_code=400, detail="messages array required")
        try:
            await get_assistant(request).storage.replace_messages(session_id, body.messages)
        except KeyError:
            raise HTTPException(status_code=404, detail="Session not found")
        return {"success": True}

    @app.patch("/api/sessions/{session_id}")
    async def rename_session(session_id: str, body: RenameRequest, request: Request):
        """Rename a session"""
        if not body.title or not body.title.strip():
            raise HTTPException(status_code=400, detail="title required")
        try:
            await get_assistant(request).storage.rename_session(session_id, body.title.strip())
        except KeyError:
            raise HTTPException(status_code=404, detail="Session not found")
        return {"success": True}

    @app.delete("/api/sessions/{session_id}")
    async def delete_session(session_id: str, request: Request):
        """Delete a session"""
        await get_assistant(request).delete_session(session_id)
        return {"success": True}

    @app.get("/api/tasks")
    async def list_tasks(request: Request):
        return {"tasks": await get_assistant(request).tasks.load()}

    @app.post("/api/tasks")
    async def add_task(body: TaskCreateRequest, request: Request):
        if not body.title or not body.title.strip():
            raise HTTPException(status_code=400, detail="title required")
        tasks = await get_assistant(request).tasks.add(body.title.strip(), body.priority, body.due_date)
        return {"tasks": tasks}

    @app.post("/api/tasks/{task_id}/toggle")
    async def toggle_task(task_id: str, request: Request):
        return {"tasks": await get_assistant(request).tasks.toggle(task_id)}

    @app.delete("/api/tasks/{task_id}")
    async def delete_task(task_id: str, request: Request):
        return {"tasks": await get_assistant(request).tasks.delete(task_id)}

    @app.get("/api/permissions")
    async def list_permissions(request: Request):
        """Command types with standing approval"""
        return {"allowed": await get_assistant(request).permissions.allowed()}

    @app.delete("/api/permissions")
    async def reset_permissions(request: Request):
        await get_assistant(request).permissions.reset()
        return {"allowed": []}

    @app.get("/api/settings/preferences")
    async def get_preferences(request: Request):
        storage = get_assistant(request).storage
        return {
            "theme": await storage.get_setting("theme", "dark"),
            "onboarding_seen": await storage.get_setting("onboarding_seen", False),
            ACTIVE_SESSION_KEY: await storage.get_setting(ACTIVE_SESSION_KEY),
        }

    @app.post("/api/settings/preferences")
    async def set_preferences(body: PreferencesRequest, request: Request):
        storage = get_assistant(request).storage
        for key in PREFERENCE_KEYS:
            value = getattr(body, key)
            if value is not None:
                await storage.save_setting(key, value)
        return await get_preferences(request)

    return app

app = create_app()

def run():
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)

if __name__ == "__main__":
    run()

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from chatapp.config import settings
from chatapp.database import create_tables, dispose_engine
from chatapp.errors import ChatError, InternalError

def configure_logging():
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(log_level)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        root.addHandler(handler)

configure_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    logger.info(f"{settings.APP_NAME} {settings.VERSION} started")
    yield
    await dispose_engine()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Realtime direct and group chat API",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    error = InternalError("Something went wrong, please try again")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())

from chatapp.api.v1 import auth, users, groups, messages, group_messages, websocket

app.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(users.router, prefix="/api/v1/users", tags=["users"])
app.include_router(groups.router, prefix="/api/v1/groups", tags=["groups"])
app.include_router(messages.router, prefix="/api/v1/messages", tags=["messages"])
app.include_router(group_messages.router, prefix="/api/v1/group-messages", tags=["group-messages"])
app.include_router(websocket.router, prefix="/api/v1/ws", tags=["websocket"])

@app.get("/")
async def root():
    return {"message": f"{settings.APP_NAME} API", "version": settings.VERSION}

@app.get("/health")
async def health():
    return {"status": "ok"}

def run():
    import uvicorn

    uvicorn.run("chatapp.main:app", host=settings.HOST, port=settings.PORT)

if __name__ == "__main__":
    run()

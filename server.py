import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Literal, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from threadnotion.backend import Backend, BadRequestError, ConflictError, NotFoundError
from threadnotion.db_helpers import APP_ENV, FRONTEND_URL, PORT
from threadnotion.llm_client import MaxRetryErrorsException
from threadnotion.llm_schemas import InvalidLlmOutputError

logger = logging.getLogger("threadnotion")

app = FastAPI(title="ThreadNotion API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_backend() -> Backend:
    return Backend()


# --- Request bodies ---

class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    persona_id: str = Field(alias="personaId")
    product_id: Optional[str] = Field(default=None, alias="productId")
    message: str = Field(min_length=1)
    mode: Optional[Literal["roleplay", "assistant"]] = None


class FeedbackRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")


class GenerateScriptRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")
    persona_id: Optional[str] = Field(default=None, alias="personaId")
    tone: Optional[str] = None


# --- Error handling ---

@app.exception_handler(RequestValidationError)
async def validation_error_handler(_request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(_request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(BadRequestError)
async def bad_request_handler(_request: Request, exc: BadRequestError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(_request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"error": str(exc)})


@app.exception_handler(InvalidLlmOutputError)
async def invalid_llm_output_handler(_request: Request, exc: InvalidLlmOutputError):
    logger.error(f"Invalid LLM response: {exc} {exc.details}")
    return JSONResponse(
        status_code=502,
        content={"error": "Invalid LLM response", "details": jsonable_encoder(exc.details)},
    )


@app.exception_handler(MaxRetryErrorsException)
async def llm_unavailable_handler(_request: Request, exc: MaxRetryErrorsException):
    logger.error(f"LLM request failed: {exc!r} caused by {exc.__cause__!r}")
    return JSONResponse(status_code=502, content={"error": "LLM request failed"})


@app.exception_handler(Exception)
async def unhandled_error_handler(_request: Request, exc: Exception):
    logger.exception("Unhandled error", exc_info=exc)
    content = {"error": "Internal server error"}
    if APP_ENV == "development":
        content["message"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# --- Health & catalogue ---

@app.get("/health")
def health(backend: Backend = Depends(get_backend)):
    if backend.check_database():
        return {"ok": True, "db": "connected", "timestamp": datetime.now(timezone.utc).isoformat()}
    return JSONResponse(status_code=500, content={"ok": False, "db": "disconnected"})


@app.get("/personas")
def list_personas(backend: Backend = Depends(get_backend)):
    return {"ok": True, "personas": backend.list_personas()}


@app.get("/products")
def list_products(backend: Backend = Depends(get_backend)):
    return {"ok": True, "products": backend.list_products()}


# --- Conversations ---

@app.get("/conversations")
def list_conversations(backend: Backend = Depends(get_backend)):
    return {"ok": True, "conversations": backend.list_conversations()}


@app.get("/conversations/{conversation_id}")
def get_conversation(conversation_id: str, backend: Backend = Depends(get_backend)):
    return {"ok": True, "conversation": backend.get_conversation(conversation_id)}


@app.post("/chat")
def chat(body: ChatRequest, backend: Backend = Depends(get_backend)):
    return backend.chat(
        persona_id=body.persona_id,
        message=body.message,
        conversation_id=body.conversation_id,
        product_id=body.product_id,
        mode=body.mode,
    )


@app.post("/feedback")
def feedback(body: FeedbackRequest, backend: Backend = Depends(get_backend)):
    return backend.feedback(body.conversation_id)


# --- Scripts ---

@app.post("/generate-script")
def generate_script(body: GenerateScriptRequest, backend: Backend = Depends(get_backend)):
    return backend.generate_script(
        product_id=body.product_id,
        persona_id=body.persona_id,
        tone=body.tone,
    )


# --- Diagnostics ---

@app.get("/test-llm")
def test_llm(backend: Backend = Depends(get_backend)):
    try:
        return {"ok": True, "response": backend.test_llm()}
    except MaxRetryErrorsException as e:
        logger.error(f"LLM ERROR: {e!r} caused by {e.__cause__!r}")
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e.__cause__ or e)})


if __name__ == "__main__":
    import uvicorn
    logger.info(f"ThreadNotion API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)

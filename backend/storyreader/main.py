from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .context import AppContext
from .errors import ErrorKind, GenerationError, ValidationError
from .logging_config import configure_logging
from .routers import audio, definitions, stories, words
from .settings import Settings


logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
	ErrorKind.API_KEY_MISSING: 500,
	ErrorKind.BILLING_ISSUE: 402,
	ErrorKind.RATE_LIMIT: 429,
	ErrorKind.NETWORK_ERROR: 503,
	ErrorKind.GENERATION_FAILED: 502,
	ErrorKind.PARSING_ERROR: 502,
	ErrorKind.DATABASE_ERROR: 500,
	ErrorKind.UNKNOWN_ERROR: 500,
}


def create_app(settings: Optional[Settings] = None, *, context: Optional[AppContext] = None) -> FastAPI:
	settings = settings or (context.settings if context else Settings())
	configure_logging(settings.log_level)

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		ctx = context or AppContext.from_settings(settings)
		ctx.startup()
		app.state.context = ctx
		try:
			yield
		finally:
			await ctx.aclose()
			logger.info("Shut down cleanly")

	app = FastAPI(title="Story Reader API", lifespan=lifespan)
	app.include_router(words.router)
	app.include_router(definitions.router)
	app.include_router(audio.router)
	app.include_router(stories.router)

	@app.exception_handler(GenerationError)
	async def generation_error_handler(request: Request, exc: GenerationError):
		return JSONResponse(status_code=STATUS_BY_KIND[exc.kind], content=exc.to_dict())

	@app.exception_handler(ValidationError)
	async def validation_error_handler(request: Request, exc: ValidationError):
		return JSONResponse(status_code=400, content={"error": str(exc)})

	@app.exception_handler(RequestValidationError)
	async def request_validation_handler(request: Request, exc: RequestValidationError):
		logger.info("Rejected request to %s: %s", request.url.path, exc.errors())
		return JSONResponse(status_code=400, content={"error": "Invalid request", "detail": jsonable_errors(exc)})

	@app.exception_handler(StarletteHTTPException)
	async def http_error_handler(request: Request, exc: StarletteHTTPException):
		return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=getattr(exc, "headers", None))

	@app.get("/info")
	def info(request: Request):
		ctx: AppContext = request.app.state.context
		return {"status": "ok", "gemini_configured": ctx.generator.configured}

	return app


def jsonable_errors(exc: RequestValidationError):
	# errors() may carry exception objects in "ctx"
	return [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]


# uvicorn storyreader.main:app
app = create_app()

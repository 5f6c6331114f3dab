"""
Question Generation API — Main Application
FastAPI application that turns analyzed course material into draft,
evidence-grounded multiple-choice questions for instructor review.
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from database.database import engine, Base
from database import models  # noqa: F401  (registers tables on Base.metadata)

from routers import generation


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables."""
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title="Question Generation API",
    description="Evidence-grounded MCQ generation from analyzed course material",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Routers ───────────────────────────────────────────────────────────────────

app.include_router(generation.router)         # /generation/*


@app.get("/")
def root():
    return {
        "name": "Question Generation API",
        "version": "1.0.0",
        "endpoints": {
            "docs": "/docs",
            "generate": "/generation/generate-questions",
            "jobs": "/generation/jobs/{job_id}",
        },
    }


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "question-generation-api"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
